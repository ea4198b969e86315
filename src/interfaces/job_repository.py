"""Abstract base class for processing-queue persistence.

Claiming is a database-level operation: :meth:`IJobRepository.claim_next_job`
switches a due ``pending`` job to ``processing`` only if it is still
``pending``, so two workers sharing the database can never process the
same job.  Claims carry a lease that a crashed worker stops renewing;
:meth:`IJobRepository.reclaim_expired_leases` hands such jobs back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.material import ProcessingQueueJob, QueueStats


# Concrete implementation: SQLiteJobRepository
# Located in: src/providers/persistence/
class IJobRepository(ABC):
    """Contract for storing and transitioning processing jobs."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    @abstractmethod
    async def create_job_if_absent(
        self,
        job_id: str,
        material_id: str,
        max_attempts: int,
        now: datetime,
    ) -> tuple[ProcessingQueueJob, bool]:
        """Insert a ``pending`` job unless one exists for *material_id*.

        Returns
        -------
        tuple[ProcessingQueueJob, bool]
            The job for the material and whether it was created by this call.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> ProcessingQueueJob | None:
        """Return the job, or ``None`` if absent."""

    @abstractmethod
    async def get_job_by_material(self, material_id: str) -> ProcessingQueueJob | None:
        """Return the job for *material_id*, or ``None`` if absent."""

    @abstractmethod
    async def claim_next_job(
        self,
        now: datetime,
        lease_until: datetime,
    ) -> ProcessingQueueJob | None:
        """Claim the oldest due ``pending`` job.

        The claimed job is ``processing`` with ``attempts`` incremented,
        ``started_at=now`` and ``lease_expires_at=lease_until``.  Returns
        ``None`` when nothing is due.
        """

    @abstractmethod
    async def renew_lease(self, job_id: str, lease_until: datetime) -> bool:
        """Extend the lease of a ``processing`` job; ``False`` if it is no longer held."""

    @abstractmethod
    async def complete_job(self, job_id: str, now: datetime) -> ProcessingQueueJob:
        """Transition ``processing → completed``."""

    @abstractmethod
    async def release_for_retry(
        self,
        job_id: str,
        error: str,
        available_at: datetime,
        now: datetime,
    ) -> ProcessingQueueJob:
        """Transition ``processing → pending`` with the error and next eligible time."""

    @abstractmethod
    async def fail_job(self, job_id: str, error: str, now: datetime) -> ProcessingQueueJob:
        """Transition ``processing → failed`` (terminal)."""

    @abstractmethod
    async def requeue_failed(
        self,
        now: datetime,
        reset_attempts: bool = False,
    ) -> list[ProcessingQueueJob]:
        """Transition ``failed → pending`` and return the re-queued jobs.

        Only jobs with ``attempts < max_attempts`` qualify unless
        *reset_attempts* is set, in which case every failed job is
        re-queued with ``attempts=0``.
        """

    @abstractmethod
    async def reclaim_expired_leases(self, now: datetime) -> list[ProcessingQueueJob]:
        """Return ``processing`` jobs whose lease expired before *now* to the queue.

        Jobs with attempts left go back to ``pending``; exhausted ones
        become ``failed``.  Returns the updated jobs.
        """

    @abstractmethod
    async def get_stats(self) -> QueueStats:
        """Return the number of jobs per status."""
