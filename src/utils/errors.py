"""Custom exception hierarchy for Lectern.

All application exceptions inherit from :class:`LecternError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "cohere", "sqlite") caused the failure.

The hierarchy is organized by the stage that raises it:

    LecternError  (base -- catch-all for any lectern error)
    +-- FetchError               (source PDF could not be downloaded)
    +-- ParseError               (PDF unreadable or without text)
    +-- ProviderError            (embedding / generation service failure)
    |   +-- RateLimitError       (HTTP 429, carries retry_after_seconds)
    |   +-- ProviderTimeoutError (call exceeded its deadline)
    |   +-- ProviderAPIError     (every other provider failure)
    +-- PersistenceError         (SQLite read/write failed)
    +-- ConfigurationError       (startup / missing config)
    +-- MaterialNotFoundError    (lookup of an unknown material)
    +-- JobNotFoundError         (lookup of an unknown queue job)

The ingestion pipeline never lets these escape: it converts them into an
``Err`` value (see :mod:`src.utils.result`) so the queue manager can
decide between retrying and failing the job.
"""

from __future__ import annotations


class LecternError(Exception):
    """Base exception for all Lectern errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[cohere] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class FetchError(LecternError):
    """Raised when a material's file URL cannot be downloaded."""

    def __init__(
        self,
        message: str = "Failed to fetch document",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class ParseError(LecternError):
    """Raised when a document is corrupt or contains no extractable text."""

    def __init__(
        self,
        message: str = "Failed to parse document",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External provider errors
# ---------------------------------------------------------------------------

class ProviderError(LecternError):
    """Base class for failures of the embedding or generation service."""

    def __init__(
        self,
        message: str = "Provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(ProviderError):
    """Raised when a provider answers HTTP 429.

    ``retry_after_seconds`` mirrors the ``Retry-After`` header when the
    provider sent one; the queue manager uses it as the minimum delay
    before the job becomes eligible again.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retry_after_seconds = retry_after_seconds

    @property
    def retry_after_seconds(self) -> float | None:
        return self._retry_after_seconds


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its configured deadline."""

    def __init__(
        self,
        message: str = "Provider request timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderAPIError(ProviderError):
    """Raised for any other provider failure (HTTP error, bad payload, network)."""

    def __init__(
        self,
        message: str = "Provider API error",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Storage / configuration errors
# ---------------------------------------------------------------------------

class PersistenceError(LecternError):
    """Raised when a database read or write fails."""

    def __init__(
        self,
        message: str = "Persistence operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(LecternError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MaterialNotFoundError(LecternError):
    """Raised when a material id does not exist."""

    def __init__(
        self,
        message: str = "Material not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobNotFoundError(LecternError):
    """Raised when a processing job id does not exist."""

    def __init__(
        self,
        message: str = "Processing job not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
