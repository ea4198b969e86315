"""FastAPI API routes for Lectern.

Provides REST endpoints for registering and enqueueing course materials,
polling their processing status, asking RAG questions, reading course
and queue statistics, queue administration and health.  Service
dependencies are resolved from ``app.state`` via FastAPI's ``Depends``
using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/materials                          POST    Register + enqueue a material
# /api/v1/materials/{material_id}/enqueue    POST    Enqueue an existing material
# /api/v1/materials/{material_id}/status     GET     Poll processing status
# /api/v1/rag/query                          POST    Ask a question (RAG)
# /api/v1/rag/stats                          GET     Course statistics
# /api/v1/queue/stats                        GET     Job counts per status
# /api/v1/queue/jobs/{job_id}                GET     One queue job
# /api/v1/queue/retry-failed                 POST    Re-queue failed jobs
# /api/v1/queue/process-next                 POST    Process one due job now
# /api/v1/health                             GET     Providers + worker status
#
# Identity and course authorization are enforced upstream; course_id is
# trusted as given.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from src.api.schemas import (
    CreateMaterialRequest,
    EnqueueResponse,
    ErrorResponse,
    HealthResponse,
    ProcessNextResponse,
    RAGQueryRequest,
    RetryFailedRequest,
    RetryFailedResponse,
)
from src.models.material import MaterialStatusReport, ProcessingQueueJob, QueueStats
from src.models.rag import CourseStats, RAGResponse
from src.services.material_status_service import MaterialStatusService
from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.rag_service import RAGService
from src.utils.errors import MaterialNotFoundError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve services from app.state
# ---------------------------------------------------------------------------


def _get_queue_manager(request: Request) -> ProcessingQueueManager:
    """Return the processing queue manager from application state."""
    return request.app.state.queue_manager


def _get_status_service(request: Request) -> MaterialStatusService:
    """Return the material status service from application state."""
    return request.app.state.status_service


def _get_rag_service(request: Request) -> RAGService:
    """Return the RAG service from application state."""
    return request.app.state.rag_service


def _get_queue_worker(request: Request) -> Any:
    """Return the background queue worker, or ``None`` when disabled."""
    return getattr(request.app.state, "queue_worker", None)


QueueDep = Annotated[ProcessingQueueManager, Depends(_get_queue_manager)]
StatusServiceDep = Annotated[MaterialStatusService, Depends(_get_status_service)]
RAGServiceDep = Annotated[RAGService, Depends(_get_rag_service)]
WorkerDep = Annotated[Any, Depends(_get_queue_worker)]


async def _drain_queue(queue: ProcessingQueueManager) -> None:
    """Background task: process due jobs after the response is sent."""
    processed = await queue.process_all()
    _logger.info("background_drain_done", processed=processed)


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------


@router.post(
    "/materials",
    response_model=EnqueueResponse,
    status_code=202,
    summary="Register a material and queue it for processing",
)
async def create_material(
    body: CreateMaterialRequest,
    queue: QueueDep,
    background_tasks: BackgroundTasks,
) -> EnqueueResponse:
    """Register the material (if new) and enqueue it.

    Ingestion runs after the response has been sent; poll the status
    endpoint for progress.
    """
    material_id = body.material_id or str(uuid.uuid4())
    job_id = await queue.add_job(
        material_id,
        file_url=body.file_url,
        title=body.title,
        course_id=body.course_id,
    )
    background_tasks.add_task(_drain_queue, queue)
    return EnqueueResponse(job_id=job_id, material_id=material_id)


@router.post(
    "/materials/{material_id}/enqueue",
    response_model=EnqueueResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Enqueue an existing material (idempotent)",
)
async def enqueue_material(
    material_id: str,
    queue: QueueDep,
    background_tasks: BackgroundTasks,
) -> EnqueueResponse:
    try:
        job_id = await queue.add_job(material_id)
    except MaterialNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    background_tasks.add_task(_drain_queue, queue)
    return EnqueueResponse(job_id=job_id, material_id=material_id)


@router.get(
    "/materials/{material_id}/status",
    response_model=MaterialStatusReport,
    responses={404: {"model": ErrorResponse}},
    summary="Get a material's processing status",
)
async def get_material_status(
    material_id: str,
    status_service: StatusServiceDep,
) -> MaterialStatusReport:
    """Return processing status, last error, chunk count and the queue job."""
    try:
        return await status_service.get_status(material_id)
    except MaterialNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc


# ---------------------------------------------------------------------------
# RAG
# ---------------------------------------------------------------------------


@router.post(
    "/rag/query",
    response_model=RAGResponse,
    summary="Ask a question about a course's materials",
)
async def rag_query(body: RAGQueryRequest, rag_service: RAGServiceDep) -> RAGResponse:
    return await rag_service.query_with_history(
        body.question,
        chat_history=body.chat_history,
        course_id=body.course_id,
    )


@router.get(
    "/rag/stats",
    response_model=CourseStats,
    summary="Material and chunk statistics, optionally for one course",
)
async def rag_stats(
    rag_service: RAGServiceDep,
    course_id: Annotated[str | None, Query(min_length=1)] = None,
) -> CourseStats:
    return await rag_service.get_course_stats(course_id)


# ---------------------------------------------------------------------------
# Queue administration
# ---------------------------------------------------------------------------


@router.get("/queue/stats", response_model=QueueStats, summary="Job counts per status")
async def queue_stats(queue: QueueDep) -> QueueStats:
    return await queue.get_queue_stats()


@router.get(
    "/queue/jobs/{job_id}",
    response_model=ProcessingQueueJob,
    responses={404: {"model": ErrorResponse}},
    summary="Get one processing job",
)
async def get_job(job_id: str, queue: QueueDep) -> ProcessingQueueJob:
    job = await queue.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Processing job {job_id} not found")
    return job


@router.post(
    "/queue/retry-failed",
    response_model=RetryFailedResponse,
    summary="Re-queue failed jobs",
)
async def retry_failed(
    queue: QueueDep,
    background_tasks: BackgroundTasks,
    body: RetryFailedRequest | None = None,
) -> RetryFailedResponse:
    reset = body.reset_attempts if body is not None else False
    requeued = await queue.retry_failed(reset_attempts=reset)
    if requeued:
        background_tasks.add_task(_drain_queue, queue)
    return RetryFailedResponse(requeued=requeued)


@router.post(
    "/queue/process-next",
    response_model=ProcessNextResponse,
    summary="Process the oldest due job now",
)
async def process_next(queue: QueueDep) -> ProcessNextResponse:
    """Run one job in the request (operator/debug use).

    ``processed`` is ``False`` when nothing was due or a job is already
    in flight in this process.
    """
    job = await queue.process_next()
    return ProcessNextResponse(processed=job is not None, job=job)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request, worker: WorkerDep) -> HealthResponse:
    """Return provider availability and the queue worker's state."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    worker_status = worker.get_status() if worker is not None else None

    if providers.get("embedding", False) and providers.get("llm", False):
        status = "healthy"
        if worker_status is not None and not worker_status["is_running"]:
            status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=_VERSION,
        providers=providers,
        worker=worker_status,
    )
