"""File-backed cache for remote manifest content."""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from pathlib import Path
from typing import Callable, Optional

from ..fileio import atomic_write_text
from ..logging import get_logger
from ..models import CacheEntry

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def cache_key(repo: str, path: str) -> str:
    """Return the deterministic storage key for ``(repo, path)``."""
    return hashlib.sha256(f"{repo}:{path}".encode("utf-8")).hexdigest()


class ContentCache:
    """Stores fetched file content keyed by repository and path, expiring after a TTL."""

    def __init__(
        self,
        directory: Path,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._write_lock = asyncio.Lock()
        self.logger = get_logger("cache")

    async def get(self, repo: str, path: str) -> Optional[CacheEntry]:
        """Return the cached entry, or ``None`` when missing, unreadable, or expired."""
        loop = asyncio.get_running_loop()
        entry = await loop.run_in_executor(None, self._read, cache_key(repo, path))
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            self.logger.debug("Cache entry for %s:%s expired", repo, path)
            return None
        return entry

    async def put(self, repo: str, path: str, content: str, token: Optional[str]) -> None:
        """Persist an entry. Failures are logged and never raised."""
        entry = CacheEntry(content=content, token=token, timestamp=self._clock())
        loop = asyncio.get_running_loop()
        async with self._write_lock:
            try:
                await loop.run_in_executor(None, self._write, cache_key(repo, path), entry)
            except OSError as exc:
                self.logger.warning("Failed to persist cache entry for %s:%s: %s", repo, path, exc)

    def clear(self) -> int:
        """Remove every cache file and return how many were deleted."""
        if not self.directory.exists():
            return 0
        removed = 0
        for candidate in self.directory.glob("*.json"):
            try:
                candidate.unlink()
            except FileNotFoundError:
                continue
            removed += 1
        return removed

    # ------------------------------------------------------------------
    # Internal helpers

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            data = json.loads(self._entry_path(key).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        content = data.get("content")
        token = data.get("token")
        timestamp = data.get("timestamp")
        if not isinstance(content, str) or not isinstance(timestamp, (int, float)):
            return None
        if token is not None and not isinstance(token, str):
            token = None
        return CacheEntry(content=content, token=token, timestamp=float(timestamp))

    def _write(self, key: str, entry: CacheEntry) -> None:
        payload = {
            "content": entry.content,
            "token": entry.token,
            "timestamp": entry.timestamp,
        }
        atomic_write_text(self._entry_path(key), json.dumps(payload))


__all__ = ["ContentCache", "cache_key"]
