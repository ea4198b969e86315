"""Course material and processing-queue domain models.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Models (bottom of the dependency graph; no imports from upper layers).
#
# A Material is an uploaded PDF belonging to a course.  Its processing is
# tracked by exactly one ProcessingQueueJob (material_id is unique in the
# queue table).  The material's processing_status mirrors the job status:
#
#     job pending    ↔ material queued (or pending before enqueue)
#     job processing ↔ material processing
#     job completed  ↔ material completed, processed=True, chunks_count > 0
#     job failed     ↔ material failed, processing_error set
#
# All models are frozen; repositories return new instances after updates.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MaterialStatus(str, Enum):
    """Processing lifecycle of a material."""

    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    """States of the processing-job state machine.

    Valid transitions: pending → processing → completed;
    processing → pending (retriable failure); processing → failed
    (attempts exhausted); failed → pending (manual retry only).
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Material(BaseModel):
    """An uploaded course document (PDF) and its processing state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique material identifier.")
    title: str = Field(description="Human-readable document title.")
    file_url: str = Field(description="Fetchable URL of the PDF.")
    course_id: str = Field(description="Course the material belongs to.")
    processing_status: MaterialStatus = Field(default=MaterialStatus.PENDING)
    chunks_count: int = Field(default=0, ge=0)
    processing_error: str | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processed: bool = False
    created_at: datetime
    updated_at: datetime


class MaterialChunk(BaseModel):
    """One embedded text segment of a material."""

    model_config = ConfigDict(frozen=True)

    id: str
    material_id: str
    content: str
    embedding: list[float]
    chunk_index: int = Field(ge=0, description="Position within the material, contiguous from 0.")
    page_number: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProcessingQueueJob(BaseModel):
    """The single processing job owned by a material."""

    model_config = ConfigDict(frozen=True)

    id: str
    material_id: str
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(default=0, ge=0, description="Processing attempts started so far.")
    max_attempts: int = Field(default=3, ge=1)
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    # Earliest time the job may be claimed again (error-aware backoff).
    available_at: datetime | None = None
    # Claim expiry while processing; renewed by the heartbeat.
    lease_expires_at: datetime | None = None

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


class MaterialStatusReport(BaseModel):
    """What a client polling a material's progress sees."""

    model_config = ConfigDict(frozen=True)

    material_id: str
    title: str
    course_id: str
    processing_status: MaterialStatus
    processing_error: str | None = None
    chunks_count: int = 0
    processed: bool = False
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_duration_seconds: float | None = None
    queue_job: ProcessingQueueJob | None = None


class QueueStats(BaseModel):
    """Count of jobs per status."""

    model_config = ConfigDict(frozen=True)

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
