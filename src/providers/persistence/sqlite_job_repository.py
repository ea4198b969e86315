"""SQLite-backed processing-queue repository.

Implements the job state machine's storage side.  The claim runs inside a
``BEGIN IMMEDIATE`` transaction and the ``UPDATE`` re-checks
``status = 'pending'``, so even several worker processes pointed at the
same database file can never claim the same job twice.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.job_repository import IJobRepository
from src.models.material import JobStatus, ProcessingQueueJob, QueueStats
from src.providers.persistence.sqlite_schema import (
    PROVIDER_NAME,
    from_db_time,
    initialize_database,
    open_db,
    to_db_time,
    transaction,
)
from src.utils.errors import JobNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/lectern.db")

LEASE_EXPIRED_ERROR = "Processing lease expired before the job finished"

_JOB_COLUMNS = (
    "id, material_id, status, attempts, max_attempts, error, created_at, updated_at, "
    "started_at, completed_at, available_at, lease_expires_at"
)

_INSERT_JOB_SQL = """\
INSERT OR IGNORE INTO processing_queue
    (id, material_id, status, attempts, max_attempts, created_at, updated_at, available_at)
VALUES (?, ?, 'pending', 0, ?, ?, ?, ?);
"""

_NEXT_DUE_SQL = """\
SELECT id FROM processing_queue
WHERE status = 'pending'
  AND attempts < max_attempts
  AND (available_at IS NULL OR available_at <= ?)
ORDER BY created_at ASC, id ASC
LIMIT 1;
"""

_CLAIM_SQL = """\
UPDATE processing_queue
SET status = 'processing',
    attempts = attempts + 1,
    started_at = ?,
    updated_at = ?,
    lease_expires_at = ?,
    completed_at = NULL
WHERE id = ? AND status = 'pending';
"""


def _row_to_job(row: aiosqlite.Row) -> ProcessingQueueJob:
    return ProcessingQueueJob(
        id=row["id"],
        material_id=row["material_id"],
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        error=row["error"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        started_at=from_db_time(row["started_at"]),
        completed_at=from_db_time(row["completed_at"]),
        available_at=from_db_time(row["available_at"]),
        lease_expires_at=from_db_time(row["lease_expires_at"]),
    )


class SQLiteJobRepository(IJobRepository):
    """SQLite persistence for the processing queue."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        await initialize_database(self._db_path)

    async def create_job_if_absent(
        self,
        job_id: str,
        material_id: str,
        max_attempts: int,
        now: datetime,
    ) -> tuple[ProcessingQueueJob, bool]:
        stamp = to_db_time(now)
        async with open_db(self._db_path) as db:
            async with transaction(db):
                cursor = await db.execute(
                    _INSERT_JOB_SQL,
                    (job_id, material_id, max_attempts, stamp, stamp, stamp),
                )
                created = cursor.rowcount == 1
                job = await self._fetch_one(db, "material_id = ?", (material_id,))

        return job, created  # type: ignore[return-value]

    async def get_job(self, job_id: str) -> ProcessingQueueJob | None:
        async with open_db(self._db_path) as db:
            return await self._fetch_one(db, "id = ?", (job_id,))

    async def get_job_by_material(self, material_id: str) -> ProcessingQueueJob | None:
        async with open_db(self._db_path) as db:
            return await self._fetch_one(db, "material_id = ?", (material_id,))

    async def claim_next_job(
        self,
        now: datetime,
        lease_until: datetime,
    ) -> ProcessingQueueJob | None:
        stamp = to_db_time(now)
        async with open_db(self._db_path) as db:
            async with transaction(db):
                cursor = await db.execute(_NEXT_DUE_SQL, (stamp,))
                row = await cursor.fetchone()
                if row is None:
                    return None
                job_id = row["id"]
                cursor = await db.execute(
                    _CLAIM_SQL,
                    (stamp, stamp, to_db_time(lease_until), job_id),
                )
                if cursor.rowcount != 1:
                    return None
                job = await self._fetch_one(db, "id = ?", (job_id,))

        logger.info("job_claimed", job_id=job_id, attempts=job.attempts if job else None)
        return job

    async def renew_lease(self, job_id: str, lease_until: datetime) -> bool:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE processing_queue SET lease_expires_at = ? "
                "WHERE id = ? AND status = 'processing'",
                (to_db_time(lease_until), job_id),
            )
            return cursor.rowcount == 1

    async def complete_job(self, job_id: str, now: datetime) -> ProcessingQueueJob:
        stamp = to_db_time(now)
        return await self._transition(
            job_id,
            "status = 'completed', completed_at = ?, updated_at = ?, "
            "lease_expires_at = NULL, error = NULL",
            (stamp, stamp),
        )

    async def release_for_retry(
        self,
        job_id: str,
        error: str,
        available_at: datetime,
        now: datetime,
    ) -> ProcessingQueueJob:
        return await self._transition(
            job_id,
            "status = 'pending', error = ?, available_at = ?, updated_at = ?, "
            "lease_expires_at = NULL",
            (error, to_db_time(available_at), to_db_time(now)),
        )

    async def fail_job(self, job_id: str, error: str, now: datetime) -> ProcessingQueueJob:
        stamp = to_db_time(now)
        return await self._transition(
            job_id,
            "status = 'failed', error = ?, completed_at = ?, updated_at = ?, "
            "lease_expires_at = NULL",
            (error, stamp, stamp),
        )

    async def requeue_failed(
        self,
        now: datetime,
        reset_attempts: bool = False,
    ) -> list[ProcessingQueueJob]:
        stamp = to_db_time(now)
        where = "status = 'failed'" if reset_attempts else "status = 'failed' AND attempts < max_attempts"
        attempts_clause = "attempts = 0, " if reset_attempts else ""

        async with open_db(self._db_path) as db:
            async with transaction(db):
                cursor = await db.execute(f"SELECT id FROM processing_queue WHERE {where}")
                ids = [r["id"] for r in await cursor.fetchall()]
                for job_id in ids:
                    await db.execute(
                        f"UPDATE processing_queue SET status = 'pending', {attempts_clause}"
                        "error = NULL, completed_at = NULL, available_at = ?, updated_at = ? "
                        "WHERE id = ?",
                        (stamp, stamp, job_id),
                    )
                jobs = [await self._fetch_one(db, "id = ?", (job_id,)) for job_id in ids]

        if ids:
            logger.info("failed_jobs_requeued", count=len(ids), reset_attempts=reset_attempts)
        return [j for j in jobs if j is not None]

    async def reclaim_expired_leases(self, now: datetime) -> list[ProcessingQueueJob]:
        stamp = to_db_time(now)
        async with open_db(self._db_path) as db:
            async with transaction(db):
                cursor = await db.execute(
                    "SELECT id, attempts, max_attempts FROM processing_queue "
                    "WHERE status = 'processing' AND lease_expires_at IS NOT NULL "
                    "AND lease_expires_at < ?",
                    (stamp,),
                )
                expired = await cursor.fetchall()
                for row in expired:
                    if row["attempts"] >= row["max_attempts"]:
                        await db.execute(
                            "UPDATE processing_queue SET status = 'failed', error = ?, "
                            "completed_at = ?, updated_at = ?, lease_expires_at = NULL WHERE id = ?",
                            (LEASE_EXPIRED_ERROR, stamp, stamp, row["id"]),
                        )
                    else:
                        await db.execute(
                            "UPDATE processing_queue SET status = 'pending', error = ?, "
                            "available_at = ?, updated_at = ?, lease_expires_at = NULL WHERE id = ?",
                            (LEASE_EXPIRED_ERROR, stamp, stamp, row["id"]),
                        )
                jobs = [await self._fetch_one(db, "id = ?", (row["id"],)) for row in expired]

        if expired:
            logger.warning("expired_leases_reclaimed", count=len(expired))
        return [j for j in jobs if j is not None]

    async def get_stats(self) -> QueueStats:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "SELECT status, COUNT(*) AS n FROM processing_queue GROUP BY status"
            )
            rows = await cursor.fetchall()

        counts = {r["status"]: r["n"] for r in rows}
        return QueueStats(
            pending=counts.get(JobStatus.PENDING.value, 0),
            processing=counts.get(JobStatus.PROCESSING.value, 0),
            completed=counts.get(JobStatus.COMPLETED.value, 0),
            failed=counts.get(JobStatus.FAILED.value, 0),
            total=sum(counts.values()),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _fetch_one(
        db: aiosqlite.Connection,
        where: str,
        params: tuple,
    ) -> ProcessingQueueJob | None:
        cursor = await db.execute(
            f"SELECT {_JOB_COLUMNS} FROM processing_queue WHERE {where}",
            params,
        )
        row = await cursor.fetchone()
        return _row_to_job(row) if row is not None else None

    async def _transition(self, job_id: str, assignments: str, params: tuple) -> ProcessingQueueJob:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                f"UPDATE processing_queue SET {assignments} WHERE id = ?",
                (*params, job_id),
            )
            if cursor.rowcount == 0:
                raise JobNotFoundError(
                    message=f"Processing job {job_id} not found",
                    provider_name=PROVIDER_NAME,
                )
            job = await self._fetch_one(db, "id = ?", (job_id,))

        logger.debug("job_transitioned", job_id=job_id, status=job.status.value if job else None)
        return job  # type: ignore[return-value]
