"""Utility modules for Lectern.

- **errors** -- Domain exception hierarchy rooted at LecternError; each
  stage raises its own subclass so callers can tell retriable provider
  failures from bad input.
- **result** -- ``Ok`` / ``Err`` values returned by the ingestion pipeline
  instead of raising.
- **retry** -- exponential backoff for transient provider failures.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from src.utils.errors import (
    ConfigurationError,
    FetchError,
    JobNotFoundError,
    LecternError,
    MaterialNotFoundError,
    ParseError,
    PersistenceError,
    ProviderAPIError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.result import Err, Ok, Result
from src.utils.retry import retry_transient

__all__ = [
    "ConfigurationError",
    "Err",
    "FetchError",
    "JobNotFoundError",
    "LecternError",
    "MaterialNotFoundError",
    "Ok",
    "ParseError",
    "PersistenceError",
    "ProviderAPIError",
    "ProviderError",
    "ProviderTimeoutError",
    "RateLimitError",
    "Result",
    "configure_logging",
    "get_logger",
    "retry_transient",
]
