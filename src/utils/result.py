"""Tagged success/failure values for operations that must not raise.

The ingestion pipeline returns ``Ok(IngestionResult)`` or
``Err(error)`` instead of raising, so the queue manager receives a
structured outcome for every job and can branch on the error kind::

    outcome = await pipeline.ingest(material)
    if isinstance(outcome, Ok):
        ...  # outcome.value
    else:
        ...  # outcome.error

Both variants are frozen dataclasses; ``is_ok`` / ``is_err`` are provided
for call sites that only need the tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying ``value``."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_err(self) -> bool:
        return False


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying the ``error`` that caused it."""

    error: E

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_err(self) -> bool:
        return True


Result = Union[Ok[T], Err[E]]
