"""Transport protocol for delivering archived slots."""

import asyncio
from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """Best-effort delivery of session data.

    Implementations: HttpTransport (production), MemoryTransport (testing).
    """

    async def deliver(self, body: str) -> bool:
        """Hand ``body`` to every endpoint. True when all accepted it.

        Never raises for delivery failures; False leaves the caller's data in
        place for a later attempt.
        """
        ...

    def refresh(self, cookies: Mapping[str, str]) -> asyncio.Task[None]:
        """Start a fire-and-forget refresh ping carrying the shared records.

        The returned task may be cancelled once a newer ping supersedes it.
        """
        ...
