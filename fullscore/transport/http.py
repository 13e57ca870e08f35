"""HTTP transport built on httpx.

Deliveries mimic a browser beacon: bodies up to ``beacon_limit`` bytes are
queued as background POSTs and count as accepted immediately; larger bodies
fall back to a direct POST whose outcome is reported. Failures are logged
and swallowed, never retried here.
"""

import asyncio
from collections.abc import Coroutine, Mapping
from typing import Any

import httpx

from fullscore.logging import get_score_logger
from fullscore.settings import Settings

logger = get_score_logger(__name__)


class HttpTransport:
    """Fire-and-forget delivery to the echo endpoints and refresh pings to the hit path."""

    def __init__(
        self,
        *,
        origin: str,
        echo_endpoints: list[str],
        hit_path: str = "/rhythm",
        beacon_limit: int = 65536,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._origin = origin.rstrip("/")
        self._endpoints = [self._resolve(endpoint) for endpoint in echo_endpoints]
        self._hit_path = "" if hit_path == "/" else hit_path
        self._beacon_limit = beacon_limit
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpTransport":
        return cls(
            origin=settings.origin,
            echo_endpoints=settings.echo_endpoints,
            hit_path=settings.hit_path,
            beacon_limit=settings.beacon_limit,
            timeout=settings.request_timeout,
        )

    def _resolve(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return self._origin + endpoint

    @property
    def endpoints(self) -> list[str]:
        return list(self._endpoints)

    @property
    def refresh_url(self) -> str:
        return f"{self._origin}{self._hit_path}/?livestreaming"

    async def deliver(self, body: str) -> bool:
        """Send ``body`` to every echo endpoint.

        Bodies within ``beacon_limit`` are queued and reported as accepted
        before the POST runs, like ``sendBeacon``. A later failure of such a
        POST is only logged, and the caller has already deleted the delivered
        slots. Only direct posts of larger bodies report failure, which keeps
        the slots archived for the next collection.
        """
        accepted = True
        for url in self._endpoints:
            if len(body.encode("utf-8")) <= self._beacon_limit:
                self._spawn(self._post(url, body))
                continue
            accepted = await self._post(url, body) and accepted
        return accepted

    def refresh(self, cookies: Mapping[str, str]) -> asyncio.Task[None]:
        return self._spawn(self._head(cookies))

    async def _post(self, url: str, body: str) -> bool:
        try:
            response = await self._client.post(url, content=body, headers={"Content-Type": "text/plain;charset=UTF-8"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Delivery to %s failed: %s", url, e)
            return False
        return True

    async def _head(self, cookies: Mapping[str, str]) -> None:
        header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        try:
            await self._client.head(self.refresh_url, headers={"Cookie": header}, follow_redirects=False)
        except httpx.HTTPError as e:
            logger.debug("Refresh ping failed: %s", e)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def aclose(self) -> None:
        """Wait for queued deliveries and pings, then close the client."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()
