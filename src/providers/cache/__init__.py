"""Cache providers.

In-memory TTL cache for material status reports that clients poll while
a PDF is processed.  The queue manager invalidates an entry on every
status transition.

MemoryCacheProvider is not shared across processes.  For multi-process
deployments, swap in a Redis adapter implementing ICacheProvider without
changing any service code.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
