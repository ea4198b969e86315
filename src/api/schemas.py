"""Pydantic request/response schemas for the Lectern API.

Defines the public contract for the REST endpoints: material
registration and enqueueing, status polling, RAG queries, statistics,
queue administration and health.

Domain models that are already frozen pydantic models
(``MaterialStatusReport``, ``RAGResponse``, ``CourseStats``,
``QueueStats``, ``ProcessingQueueJob``) are returned as-is; the classes
below cover request bodies and the few responses with no domain
counterpart.

Convention: request schemas end with "Request", response schemas end
with "Response".
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.material import ProcessingQueueJob
from src.models.rag import ChatTurn


class CreateMaterialRequest(BaseModel):
    """A newly uploaded material to register and queue for processing."""

    material_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Optional caller-chosen id; generated when omitted.",
    )
    title: str = Field(..., min_length=1, max_length=500)
    file_url: str = Field(..., min_length=1, description="Fetchable http(s) URL of the PDF.")
    course_id: str = Field(..., min_length=1, max_length=128)


class EnqueueResponse(BaseModel):
    """Returned by both enqueue endpoints."""

    job_id: str
    material_id: str


class RAGQueryRequest(BaseModel):
    """A question about a course's materials."""

    question: str = Field(..., min_length=1, max_length=2000)
    chat_history: list[ChatTurn] = Field(default_factory=list)
    course_id: str | None = None


class RetryFailedRequest(BaseModel):
    reset_attempts: bool = Field(
        default=False,
        description="Also re-queue jobs that used all their attempts, starting again from zero.",
    )


class RetryFailedResponse(BaseModel):
    requeued: int


class ProcessNextResponse(BaseModel):
    """Outcome of a manually triggered ``process_next``."""

    processed: bool
    job: ProcessingQueueJob | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
    worker: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
