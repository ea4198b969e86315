"""Transport-level retry for provider calls.

Provider adapters wrap each remote call in :func:`retry_transient` so that
short-lived server hiccups (5xx, dropped connections) are retried with
exponential backoff plus jitter.  Rate limits, timeouts and client errors
are never retried here: they surface immediately so the queue manager
can schedule the whole job with an error-aware delay instead.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.errors import ProviderAPIError, ProviderError
from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)

# Upper bound on a single sleep between transport retries.
_MAX_DELAY = 30.0


def is_transient(exc: ProviderError) -> bool:
    """Return ``True`` when *exc* is worth retrying at the transport level.

    Only :class:`ProviderAPIError` qualifies, and only when it has no
    status (network failure) or a 5xx status.
    """
    if not isinstance(exc, ProviderAPIError):
        return False
    return exc.status_code is None or exc.status_code >= 500


async def retry_transient(
    call: Callable[[], Awaitable[_T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    operation: str = "provider_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> _T:
    """Await ``call()`` and retry transient provider failures.

    Parameters
    ----------
    call:
        Zero-argument factory returning a fresh awaitable per attempt.
    max_retries:
        Retries after the first attempt (``0`` disables retrying).
    base_delay:
        Delay before the first retry; doubles on each further retry.
    operation:
        Label used in log events.
    sleep:
        Injected for tests.

    Raises
    ------
    ProviderError
        The last error once retries are exhausted, or immediately for
        non-transient errors.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except ProviderError as exc:
            if not is_transient(exc) or attempt >= max_retries:
                raise
            delay = min(base_delay * (2**attempt), _MAX_DELAY)
            delay += random.uniform(0, delay * 0.1)
            attempt += 1
            _logger.warning(
                "provider_retry",
                operation=operation,
                attempt=attempt,
                max_retries=max_retries,
                delay_s=round(delay, 2),
                error=str(exc),
            )
            await sleep(delay)
