"""Test helpers shared by the controller and store tests."""

from fullscore.rhythm import ExecutionContext, SessionController
from fullscore.settings import Settings
from fullscore.slot_store import SlotStore
from fullscore.transport import Transport


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_controller(
    store: SlotStore,
    transport: Transport,
    clock: FakeClock,
    settings: Settings,
    path: str = "/",
    name: str = "",
    **kwargs,
) -> SessionController:
    """Controller for a fresh execution context sharing ``store``."""
    context = ExecutionContext(name=name, path=path, user_agent="Mozilla/5.0 (X11; Linux x86_64)", hostname="example.com")
    return SessionController(store, transport, context, settings=settings, clock=clock, **kwargs)
