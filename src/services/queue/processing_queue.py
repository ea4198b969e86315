"""Processing queue manager: one durable job per material, bounded retries.

# ─── JOB STATE MACHINE ────────────────────────────────────────────────
#
#     add_job ──► pending ──claim──► processing ──ok──► completed
#                   ▲                    │
#                   │   retriable error  │  attempts exhausted
#                   └────────────────────┤──────────────────► failed
#                   ▲                                            │
#                   └──────────── retry_failed (manual) ─────────┘
#
# ``attempts`` counts claims: it is incremented when a job moves to
# ``processing``, so a job that fails on its third claim (max_attempts=3)
# ends ``failed`` with attempts == 3, and one that succeeds on its third
# claim ends ``completed`` with attempts == 3.
#
# Every transition is mirrored onto the material's processing_status and
# reported to the status-change hook (cache invalidation):
#
#     job pending    → material queued    (processing_error = last error)
#     job processing → material processing
#     job completed  → material completed (processed, chunks_count)
#     job failed     → material failed    (processing_error)
# ──────────────────────────────────────────────────────────────────────

Concurrency: ``process_next`` is single-flight within this instance (an
in-memory flag) and the claim itself is a conditional database update,
so separate instances sharing the database never process the same job.
While a job runs, a heartbeat task renews its lease; a job whose worker
died is handed back by :meth:`ProcessingQueueManager.reclaim_expired_leases`.

Retry scheduling depends on what failed:

- ``RateLimitError``: eligible again after ``retry_after_seconds``
  (``retry_base_delay`` when the provider sent none).
- ``ProviderTimeoutError``, ``ProviderAPIError`` and every other kind:
  exponential, ``retry_base_delay * 2 ** (attempts - 1)`` capped at
  ``retry_max_delay``.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import structlog

from src.interfaces.job_repository import IJobRepository
from src.interfaces.material_repository import IMaterialRepository
from src.models.material import JobStatus, ProcessingQueueJob, QueueStats
from src.models.rag import IngestionResult
from src.services.ingestion.ingestion_service import IngestionService
from src.utils.errors import (
    LecternError,
    MaterialNotFoundError,
    PersistenceError,
    RateLimitError,
)
from src.utils.logging import bind_job_context, get_logger
from src.utils.result import Ok

Clock = Callable[[], datetime]
StatusChangeHook = Callable[[str], Awaitable[None]]

MATERIAL_NOT_FOUND_ERROR = "Material not found"

_logger: structlog.BoundLogger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class ProcessingQueueManager:
    """Owns the processing-job lifecycle and the material status mirror.

    Parameters
    ----------
    jobs:
        Queue persistence.
    materials:
        Material persistence (status mirror, lookups).
    pipeline:
        Runs the ingestion of one material and returns a result value.
    max_attempts:
        Attempts allowed per job before it fails terminally.
    retry_base_delay / retry_max_delay:
        Backoff parameters in seconds (see module docstring).
    lease_seconds:
        How long a claim stays valid without a heartbeat.
    on_status_change:
        Awaited with the material id after every material status change.
    clock:
        Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        jobs: IJobRepository,
        materials: IMaterialRepository,
        pipeline: IngestionService,
        *,
        max_attempts: int = 3,
        retry_base_delay: float = 5.0,
        retry_max_delay: float = 300.0,
        lease_seconds: float = 600.0,
        on_status_change: StatusChangeHook | None = None,
        clock: Clock | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")
        self._jobs = jobs
        self._materials = materials
        self._pipeline = pipeline
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._lease = timedelta(seconds=lease_seconds)
        self._on_status_change = on_status_change
        self._clock = clock or _utc_now
        self._is_processing = False

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def add_job(
        self,
        material_id: str,
        file_url: str | None = None,
        title: str | None = None,
        course_id: str | None = None,
    ) -> str:
        """Ensure *material_id* has a processing job and return the job id.

        Idempotent: an existing job (in any state) is returned unchanged.
        When the material record does not exist yet and *file_url*,
        *title* and *course_id* are all given, it is registered first.

        Raises
        ------
        MaterialNotFoundError
            If the material is unknown and cannot be registered.
        """
        existing = await self._jobs.get_job_by_material(material_id)
        if existing is not None:
            _logger.debug("job_already_queued", material_id=material_id, job_id=existing.id)
            return existing.id

        material = await self._materials.get_material(material_id)
        if material is None:
            if not (file_url and title and course_id):
                raise MaterialNotFoundError(message=f"Material {material_id} not found")
            await self._materials.create_material(material_id, title, file_url, course_id)

        job, created = await self._jobs.create_job_if_absent(
            job_id=str(uuid.uuid4()),
            material_id=material_id,
            max_attempts=self._max_attempts,
            now=self._clock(),
        )
        if created:
            await self._materials.mark_queued(material_id)
            await self._notify(material_id)
            _logger.info("job_enqueued", job_id=job.id, material_id=material_id)
        return job.id

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_next(self) -> ProcessingQueueJob | None:
        """Claim and process the oldest due ``pending`` job.

        Returns the job in its final state for this attempt, or ``None``
        when nothing was due or another call is already in flight.
        """
        if self._is_processing:
            _logger.debug("process_next_skipped", reason="already_processing")
            return None

        self._is_processing = True
        try:
            now = self._clock()
            job = await self._jobs.claim_next_job(now=now, lease_until=now + self._lease)
            if job is None:
                return None
            return await self._process_job(job)
        finally:
            self._is_processing = False

    async def process_all(self, max_jobs: int | None = None) -> int:
        """Process due jobs until the queue is drained; return how many ran."""
        processed = 0
        while max_jobs is None or processed < max_jobs:
            job = await self.process_next()
            if job is None:
                break
            processed += 1
        return processed

    async def _process_job(self, job: ProcessingQueueJob) -> ProcessingQueueJob:
        with bind_job_context(job.id, job.material_id):
            material = await self._materials.get_material(job.material_id)
            if material is None:
                _logger.error("job_material_missing")
                return await self._jobs.fail_job(job.id, MATERIAL_NOT_FOUND_ERROR, self._clock())

            await self._materials.mark_processing(material.id, job.started_at or self._clock())
            await self._notify(material.id)
            _logger.info("job_processing", attempt=job.attempts, max_attempts=job.max_attempts)

            heartbeat = asyncio.create_task(self._heartbeat(job.id))
            try:
                outcome = await self._pipeline.ingest(material)
            finally:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat

            if isinstance(outcome, Ok):
                return await self._on_success(job, outcome.value)
            return await self._on_failure(job, outcome.error)

    async def _on_success(self, job: ProcessingQueueJob, result: IngestionResult) -> ProcessingQueueJob:
        now = self._clock()
        completed = await self._jobs.complete_job(job.id, now)
        await self._materials.mark_completed(job.material_id, result.chunks_created, now)
        await self._notify(job.material_id)
        _logger.info(
            "job_completed",
            attempts=completed.attempts,
            chunks=result.chunks_created,
        )
        return completed

    async def _on_failure(self, job: ProcessingQueueJob, error: LecternError) -> ProcessingQueueJob:
        now = self._clock()
        message = str(error)

        if job.attempts_exhausted:
            failed = await self._jobs.fail_job(job.id, message, now)
            await self._materials.mark_failed(job.material_id, message, now)
            await self._notify(job.material_id)
            _logger.error(
                "job_failed",
                attempts=job.attempts,
                error_type=type(error).__name__,
                error=message,
            )
            return failed

        delay = self.retry_delay(error, job.attempts)
        released = await self._jobs.release_for_retry(
            job.id,
            message,
            available_at=now + timedelta(seconds=delay),
            now=now,
        )
        await self._materials.mark_queued(job.material_id, error=message)
        await self._notify(job.material_id)
        _logger.warning(
            "job_retry_scheduled",
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            delay_s=delay,
            error_type=type(error).__name__,
            error=message,
        )
        return released

    def retry_delay(self, error: BaseException, attempts: int) -> float:
        """Seconds before a job that failed with *error* may be claimed again."""
        if isinstance(error, RateLimitError):
            if error.retry_after_seconds is not None:
                return max(error.retry_after_seconds, 0.0)
            return self._retry_base_delay
        exponent = max(attempts - 1, 0)
        return min(self._retry_base_delay * (2**exponent), self._retry_max_delay)

    async def _heartbeat(self, job_id: str) -> None:
        interval = self._lease.total_seconds() / 3
        while True:
            await asyncio.sleep(interval)
            try:
                renewed = await self._jobs.renew_lease(job_id, self._clock() + self._lease)
            except PersistenceError as exc:
                _logger.warning("lease_renewal_failed", error=str(exc))
                continue
            if not renewed:
                _logger.warning("lease_lost")
                return

    # ------------------------------------------------------------------
    # Operator actions / maintenance
    # ------------------------------------------------------------------

    async def retry_failed(self, reset_attempts: bool = False) -> int:
        """Re-queue failed jobs and return how many were re-queued.

        Only jobs with attempts left qualify unless *reset_attempts* is
        set, which re-queues every failed job with ``attempts=0``.
        """
        jobs = await self._jobs.requeue_failed(self._clock(), reset_attempts=reset_attempts)
        for job in jobs:
            await self._materials.mark_queued(job.material_id)
            await self._notify(job.material_id)
        _logger.info("retry_failed", requeued=len(jobs), reset_attempts=reset_attempts)
        return len(jobs)

    async def reclaim_expired_leases(self) -> int:
        """Return jobs whose worker stopped renewing its lease to the queue."""
        now = self._clock()
        jobs = await self._jobs.reclaim_expired_leases(now)
        for job in jobs:
            if job.status is JobStatus.FAILED:
                await self._materials.mark_failed(job.material_id, job.error or "", now)
            else:
                await self._materials.mark_queued(job.material_id, error=job.error)
            await self._notify(job.material_id)
        return len(jobs)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_job_status(self, job_id: str) -> ProcessingQueueJob | None:
        return await self._jobs.get_job(job_id)

    async def get_job_status_by_material_id(self, material_id: str) -> ProcessingQueueJob | None:
        return await self._jobs.get_job_by_material(material_id)

    async def get_queue_stats(self) -> QueueStats:
        return await self._jobs.get_stats()

    async def _notify(self, material_id: str) -> None:
        if self._on_status_change is not None:
            await self._on_status_change(material_id)
