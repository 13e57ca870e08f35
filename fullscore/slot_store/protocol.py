"""Slot store protocol.

The shared medium offers plain read/write/delete/scan with last-write-wins
semantics. There is no compare-and-swap; every cross-context decision is
re-derived from a fresh read.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SlotStore(Protocol):
    """Protocol for the shared key-value medium.

    Implementations: LocalSlotStore (several processes on one host),
    MemorySlotStore (testing, single process).
    """

    async def read(self, key: str) -> str | None:
        """Return the value for ``key``, or None when absent or expired."""
        ...

    async def write(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``. ``ttl`` in seconds; None keeps it until deleted."""
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is a no-op."""
        ...

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        """Return all live ``(key, value)`` pairs whose key starts with ``prefix``."""
        ...
