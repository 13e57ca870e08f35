"""In-memory slot store for testing.

Simple dict-based storage implementing the SlotStore protocol. Several
controllers sharing one instance behave like contexts sharing a cookie jar.
"""

from fullscore._types import Clock, wall_clock_ms
from fullscore.exceptions import SlotCapacityError


class MemorySlotStore:
    """Dict-based slot store with expiry against an injectable clock."""

    def __init__(self, *, clock: Clock | None = None, max_value_size: int | None = None) -> None:
        self._entries: dict[str, tuple[str, int | None]] = {}  # key -> (value, expires_at_ms)
        self._clock = clock or wall_clock_ms
        self._max_value_size = max_value_size

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def read(self, key: str) -> str | None:
        return self._live(key)

    async def write(self, key: str, value: str, ttl: int | None = None) -> None:
        if self._max_value_size is not None and len(key) + len(value) + 1 > self._max_value_size:
            raise SlotCapacityError(f"{key} value of {len(value)} chars exceeds {self._max_value_size}")
        expires_at = self._clock() + ttl * 1000 if ttl is not None else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        pairs = []
        for key in sorted(self._entries):
            if key.startswith(prefix) and (value := self._live(key)) is not None:
                pairs.append((key, value))
        return pairs

    def __repr__(self) -> str:
        return f"MemorySlotStore(keys={len(self._entries)})"
