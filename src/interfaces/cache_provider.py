"""Abstract base class for cache service providers.

Used to memoise material status payloads that clients poll while a PDF
is being processed.  The queue manager invalidates an entry every time
the material's processing status changes, so a stale status is never
served for longer than one transition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async so that a network-backed store (e.g. Redis)
    can be swapped in without blocking the event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value under *key*, or ``None`` if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        key:
            The cache key.
        value:
            Any picklable/JSON-able value.
        ttl:
            Time-to-live in seconds; ``None`` uses the provider default.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key* (no-op if absent)."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
