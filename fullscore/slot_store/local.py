"""Local filesystem slot store shared by processes on one host.

Layout:
    {base_path}/{key}.json   <- {"value": "...", "expires_at": <ms or null>}

Writes go to a temporary file that is renamed over the target, so readers
see either the previous or the new value, never a partial one. Concurrent
writers to the same key follow last-rename-wins.
"""

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path

from fullscore._types import Clock, wall_clock_ms
from fullscore.exceptions import SlotCapacityError, StoreError
from fullscore.logging import get_score_logger

logger = get_score_logger(__name__)

_VALID_KEY = re.compile(r"^[A-Za-z0-9_-]+$")
_SUFFIX = ".json"


class LocalSlotStore:
    """Directory-backed slot store.

    Blocking file operations run in a worker thread via asyncio.to_thread.
    """

    def __init__(self, base_path: Path | None = None, *, clock: Clock | None = None, max_value_size: int | None = None) -> None:
        self._base_path = base_path or Path.cwd() / ".fullscore"
        self._clock = clock or wall_clock_ms
        self._max_value_size = max_value_size

    @property
    def base_path(self) -> Path:
        """Directory holding one file per key."""
        return self._base_path

    async def read(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def write(self, key: str, value: str, ttl: int | None = None) -> None:
        if self._max_value_size is not None and len(key) + len(value) + 1 > self._max_value_size:
            raise SlotCapacityError(f"{key} value of {len(value)} chars exceeds {self._max_value_size}")
        await asyncio.to_thread(self._write_sync, key, value, ttl)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        return await asyncio.to_thread(self._scan_sync, prefix)

    # --- Sync implementation (called via asyncio.to_thread) ---

    def _key_path(self, key: str) -> Path:
        if not _VALID_KEY.match(key):
            raise ValueError(f"slot store key contains unsupported characters: {key!r}")
        return self._base_path / f"{key}{_SUFFIX}"

    def _read_sync(self, key: str) -> str | None:
        path = self._key_path(key)
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable slot store entry %s: %s", path, e)
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and expires_at <= self._clock():
            path.unlink(missing_ok=True)
            return None
        value = entry.get("value")
        return value if isinstance(value, str) else None

    def _write_sync(self, key: str, value: str, ttl: int | None) -> None:
        path = self._key_path(key)
        expires_at = self._clock() + ttl * 1000 if ttl is not None else None
        payload = json.dumps({"value": value, "expires_at": expires_at})
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._base_path, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"failed to write {key}: {e}") from e

    def _delete_sync(self, key: str) -> None:
        self._key_path(key).unlink(missing_ok=True)

    def _scan_sync(self, prefix: str) -> list[tuple[str, str]]:
        if not self._base_path.is_dir():
            return []
        pairs = []
        for path in sorted(self._base_path.glob(f"{prefix}*{_SUFFIX}")):
            key = path.name[: -len(_SUFFIX)]
            if not _VALID_KEY.match(key):
                continue
            if (value := self._read_sync(key)) is not None:
                pairs.append((key, value))
        return pairs

    def __repr__(self) -> str:
        return f"LocalSlotStore(base_path={str(self._base_path)!r})"
