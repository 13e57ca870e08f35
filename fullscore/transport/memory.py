"""In-memory transport for testing."""

import asyncio
from collections.abc import Mapping


class MemoryTransport:
    """Records delivered bodies and refresh pings instead of sending them.

    Set ``available`` to False to simulate an unreachable collector. A
    positive ``refresh_delay`` keeps refresh tasks in flight for that many
    seconds so cancellation can be observed.
    """

    def __init__(self, *, available: bool = True, refresh_delay: float = 0.0) -> None:
        self.available = available
        self.refresh_delay = refresh_delay
        self.bodies: list[str] = []
        self.refreshes: list[dict[str, str]] = []
        self.attempts = 0

    async def deliver(self, body: str) -> bool:
        self.attempts += 1
        if not self.available:
            return False
        self.bodies.append(body)
        return True

    def refresh(self, cookies: Mapping[str, str]) -> asyncio.Task[None]:
        self.refreshes.append(dict(cookies))
        return asyncio.get_running_loop().create_task(asyncio.sleep(self.refresh_delay))
