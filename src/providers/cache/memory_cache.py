"""In-memory cache provider using cachetools.TTLCache.

Holds material status payloads between client polls.  Entries expire
after the configured TTL and are dropped explicitly by the queue
manager's status-change hook.  Not shared across processes; swap in a
network-backed ICacheProvider for multi-process deployments.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Time-to-live in seconds applied to every entry.
    """

    def __init__(self, max_size: int = 1000, ttl: int = 300) -> None:
        self._ttl = ttl
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl)
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Any | None:
        value = self._cache.get(key)
        if value is None:
            self._misses += 1
            logger.debug("cache_miss", key=key)
        else:
            self._hits += 1
            logger.debug("cache_hit", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        ``TTLCache`` applies one TTL to every entry, so a per-call *ttl*
        different from the constructor's is logged and ignored.
        """
        if ttl is not None and ttl != self._ttl:
            logger.debug("cache_ttl_override_ignored", key=key, requested=ttl, applied=self._ttl)
        self._cache[key] = value

    async def delete(self, key: str) -> None:
        if self._cache.pop(key, None) is not None:
            logger.debug("cache_delete", key=key)

    async def exists(self, key: str) -> bool:
        return key in self._cache

    def stats(self) -> dict[str, int]:
        """Return hit/miss counters and the current entry count."""
        return {"hits": self._hits, "misses": self._misses, "size": len(self._cache)}
