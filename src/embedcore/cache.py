"""
Cache backends.

The engine needs only ``await cache.get(key)`` and ``await cache.set(key,
value)``. ``NullCache`` is the default and never remembers anything;
``MemoryCache`` keeps values in process, optionally expiring them.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class NullCache:
    """Always misses; writes are discarded."""

    async def get(self, key: str) -> Any:
        return None

    async def set(self, key: str, value: Any) -> None:
        return None


class MemoryCache:
    """In-process dict cache.

    Args:
        ttl_seconds: Entries older than this are treated as missing and
            evicted on read. Each write also sweeps out expired entries.
            ``None`` keeps entries until :meth:`clear`.
    """

    def __init__(self, ttl_seconds: Optional[float] = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._data: Dict[str, Tuple[float, Any]] = {}

    async def get(self, key: str) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds:
            del self._data[key]
            logger.debug("Cache entry expired", key=key)
            return None
        return value

    async def set(self, key: str, value: Any) -> None:
        now = time.monotonic()
        if self.ttl_seconds is not None:
            self._sweep(now)
        self._data[key] = (now, value)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (stored_at, _) in self._data.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._data[key]
        if expired:
            logger.debug("Cache entries swept", count=len(expired))

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
