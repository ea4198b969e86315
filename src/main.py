"""Lectern FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` / environment variables, configures
structured logging, and owns the background queue worker's lifecycle.

Also exposes :func:`build_components` / :func:`initialize_components` /
:func:`close_components` for the CLI, which runs the same object graph
outside the web server.

# ─── OBJECT GRAPH ─────────────────────────────────────────────────────
#
#   Settings ─┬─► SQLiteMaterialRepository ─┬─► IngestionService ──┐
#             ├─► SQLiteJobRepository ──────┤                      ▼
#             ├─► MemoryCacheProvider ──► MaterialStatusService ► ProcessingQueueManager ► QueueWorker
#             ├─► embedding provider (Cohere | OpenAI) ──┬─► IngestionService
#             │                                          └─► RAGService ◄── VectorRetriever
#             └─► OpenAILLMProvider ──────────────────────────► RAGService
#
# Nothing is a module-level singleton except ``settings`` and ``app``;
# every service receives its collaborators through its constructor.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.fetch.http_document_fetcher import HttpDocumentFetcher
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.persistence.sqlite_job_repository import SQLiteJobRepository
from src.providers.persistence.sqlite_material_repository import SQLiteMaterialRepository
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.pdf_extractor import PDFTextExtractor
from src.services.material_status_service import MaterialStatusService
from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.queue.queue_worker import QueueWorker
from src.services.rag_service import RAGService
from src.services.retrieval.vector_retriever import VectorRetriever
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Return the OpenAI(-compatible) chat provider.

    Built even without an API key so the health endpoint can report it
    as unavailable; queries then degrade to the fallback answer.
    """
    provider = OpenAILLMProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning("llm_provider_unconfigured", provider=provider.get_provider_name())
    return provider


def _build_embedding_provider(
    app_settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> IEmbeddingProvider:
    """Select the embedding provider named by ``EMBEDDING_PROVIDER``.

    ``auto`` prefers Cohere, then OpenAI, by configured API key.

    Raises
    ------
    ConfigurationError
        If the requested provider has no API key, or none is configured.
    """
    choice = app_settings.embedding_provider.strip().lower()
    available = app_settings.get_available_embedding_providers()

    if choice == "auto":
        if not available:
            raise ConfigurationError(
                message="No embedding provider configured: set COHERE_API_KEY or OPENAI_API_KEY"
            )
        choice = available[0]

    if choice not in ("cohere", "openai"):
        raise ConfigurationError(message=f"Unknown EMBEDDING_PROVIDER: {app_settings.embedding_provider!r}")
    if choice not in available:
        raise ConfigurationError(
            message=f"EMBEDDING_PROVIDER={choice} but its API key is not set",
            provider_name=choice,
        )

    if choice == "cohere":
        return CohereEmbeddingProvider(settings=app_settings, http_client=http_client)
    return OpenAIEmbeddingProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the web app stores them on
    ``app.state`` and the CLI uses them directly.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.provider_timeout_seconds)

    # -- Persistence --
    material_repository = SQLiteMaterialRepository(db_path=app_settings.database_path)
    job_repository = SQLiteJobRepository(db_path=app_settings.database_path)
    cache = MemoryCacheProvider(
        max_size=app_settings.status_cache_size,
        ttl=app_settings.status_cache_ttl,
    )

    # -- External providers --
    embedding_provider = _build_embedding_provider(app_settings, http_client=http_client)
    llm = _build_llm_provider(app_settings)
    fetcher = HttpDocumentFetcher(
        http_client=http_client,
        timeout=app_settings.fetch_timeout_seconds,
        max_bytes=app_settings.max_document_bytes,
    )

    # -- Ingestion --
    chunker = TextChunker(
        chunk_size=app_settings.chunk_size,
        overlap=app_settings.chunk_overlap,
        lookback=app_settings.chunk_break_lookback,
    )
    ingestion_service = IngestionService(
        fetcher=fetcher,
        extractor=PDFTextExtractor(),
        chunker=chunker,
        embedding_provider=embedding_provider,
        repository=material_repository,
        embedding_batch_size=app_settings.embedding_batch_size,
    )

    # -- Queue --
    status_service = MaterialStatusService(
        materials=material_repository,
        jobs=job_repository,
        cache=cache,
        ttl=app_settings.status_cache_ttl,
    )
    queue_manager = ProcessingQueueManager(
        jobs=job_repository,
        materials=material_repository,
        pipeline=ingestion_service,
        max_attempts=app_settings.queue_max_attempts,
        retry_base_delay=app_settings.queue_retry_base_delay,
        retry_max_delay=app_settings.queue_retry_max_delay,
        lease_seconds=app_settings.queue_lease_seconds,
        on_status_change=status_service.invalidate,
    )
    queue_worker = QueueWorker(
        queue=queue_manager,
        poll_interval=app_settings.queue_poll_interval,
        backoff_multiplier=app_settings.queue_backoff_multiplier,
        max_backoff=app_settings.queue_max_poll_backoff,
    )

    # -- RAG --
    retriever = VectorRetriever(
        repository=material_repository,
        min_similarity=app_settings.rag_min_similarity,
    )
    rag_service = RAGService(
        embedding_provider=embedding_provider,
        llm=llm,
        retriever=retriever,
        repository=material_repository,
        top_k=app_settings.rag_top_k,
        max_context_chars=app_settings.rag_max_context_chars,
        history_turns=app_settings.rag_history_turns,
        history_budget_ratio=app_settings.rag_history_budget_ratio,
        temperature=app_settings.rag_temperature,
        max_answer_tokens=app_settings.rag_max_answer_tokens,
    )

    provider_registry: dict[str, Any] = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "llm": llm.is_available(),
        "llm_provider": llm.get_provider_name(),
    }

    return {
        "http_client": http_client,
        "material_repository": material_repository,
        "job_repository": job_repository,
        "cache": cache,
        "embedding_provider": embedding_provider,
        "llm": llm,
        "ingestion_service": ingestion_service,
        "status_service": status_service,
        "queue_manager": queue_manager,
        "queue_worker": queue_worker,
        "retriever": retriever,
        "rag_service": rag_service,
        "provider_registry": provider_registry,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create the database schema (idempotent)."""
    await components["material_repository"].initialize()
    await components["job_repository"].initialize()


async def close_components(components: dict[str, Any]) -> None:
    """Stop the worker (if running) and close the shared HTTP client."""
    await components["queue_worker"].stop()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise providers and services on startup, clean up on shutdown."""
    components = build_components(settings)
    await initialize_components(components)

    for key, value in components.items():
        setattr(application.state, key, value)

    if settings.queue_worker_enabled:
        components["queue_worker"].start()
    else:
        # Health reports no worker when it is run out of process.
        application.state.queue_worker = None

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        database=settings.database_path,
        embedding_provider=components["provider_registry"]["embedding_provider"],
        worker_enabled=settings.queue_worker_enabled,
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Lectern API",
        version=_VERSION,
        description=(
            "Ingest PDF course materials into searchable embedded chunks and "
            "answer questions about them, scoped per course."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    application.include_router(api_router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
