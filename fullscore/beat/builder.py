"""Trace accumulation for one actor in one execution context."""

from fullscore._types import Clock, wall_clock_ms
from fullscore.beat.codec import ActionDescriptor, encode_action, encode_position, encode_space, encode_time, fold
from fullscore.beat.maps import BeatMaps


class TraceBuilder:
    """Accumulates tokens, owns the identifier table and the time cursor.

    Every ``record_*`` call first charges the ticks elapsed since the cursor
    as a time token. A sub-tick remainder stays on the cursor so it is
    charged to the next interval.

    Example:
        >>> beat = TraceBuilder()
        >>> beat.record_space("/")
        >>> beat.record_action(ActionDescriptor(tag="button", depth=3))
        >>> beat.serialize()
        '!home*3button1'
    """

    def __init__(self, *, maps: BeatMaps | None = None, tick_ms: int = 100, clock: Clock | None = None) -> None:
        self.notes: list[str] = []
        self.table: dict[str, str] = {}
        self._maps = maps if maps is not None else BeatMaps(spaces={"/": "home"})
        self._tick_ms = tick_ms
        self._clock = clock or wall_clock_ms
        self.tick = self._clock()

    def flush_time(self) -> None:
        """Append a time token for the whole ticks elapsed since the cursor."""
        elapsed = (self._clock() - self.tick) // self._tick_ms
        if token := encode_time(elapsed):
            self.notes.append(token)
            self.tick += elapsed * self._tick_ms

    def record_space(self, identifier: str) -> None:
        self.flush_time()
        self.notes.append(encode_space(identifier, self.table, self._maps))

    def record_action(self, descriptor: ActionDescriptor) -> None:
        self.flush_time()
        fold(self.notes, encode_action(descriptor, self._maps))

    def record_position(self, value: int) -> None:
        """Append a raw position token; positions are never folded."""
        self.flush_time()
        self.notes.append(encode_position(value))

    def serialize(self) -> str:
        return "".join(self.notes)

    def resume(self, serialized: str) -> None:
        """Continue a previously serialized trace.

        The suspension gap is not charged: the cursor restarts at now.
        """
        self.notes = [serialized] if serialized else []
        self.reset_cursor()

    def reset_cursor(self) -> None:
        self.tick = self._clock()
