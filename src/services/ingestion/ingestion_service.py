"""Ingestion pipeline: fetch → extract → chunk → embed → persist.

Turns one :class:`~src.models.material.Material` into a persisted set of
embedded chunks.  The pipeline never raises past :meth:`IngestionService.ingest`:
every failure comes back as ``Err(error)`` where ``error`` is one of the
:data:`IngestionError` kinds, so the queue manager can choose between a
retry and a terminal failure.

Marking the material ``processed`` is left to the queue manager, which
owns every material status transition.  The chunk set itself is written
atomically by the repository, so a failure after embedding leaves the
previous chunk set (if any) untouched.
"""

from __future__ import annotations

import time
import uuid
from typing import Union

import structlog

from src.interfaces.document_fetcher import IDocumentExtractor, IDocumentFetcher
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.material_repository import IMaterialRepository
from src.models.material import Material, MaterialChunk
from src.models.rag import IngestionResult, TextChunk
from src.services.ingestion.chunker import TextChunker
from src.utils.errors import (
    FetchError,
    LecternError,
    ParseError,
    PersistenceError,
    ProviderAPIError,
    ProviderTimeoutError,
    RateLimitError,
)
from src.utils.logging import get_logger
from src.utils.result import Err, Ok, Result

IngestionError = Union[
    FetchError,
    ParseError,
    RateLimitError,
    ProviderTimeoutError,
    ProviderAPIError,
    PersistenceError,
]

_INGESTION_ERRORS = (
    FetchError,
    ParseError,
    RateLimitError,
    ProviderTimeoutError,
    ProviderAPIError,
    PersistenceError,
)

# Error kind reported for an unexpected exception, by the stage it escaped from.
_STAGE_ERRORS: dict[str, type[LecternError]] = {
    "fetch": FetchError,
    "extract": ParseError,
    "chunk": ParseError,
    "embed": ProviderAPIError,
    "persist": PersistenceError,
}

_logger: structlog.BoundLogger = get_logger(__name__)


class IngestionService:
    """Orchestrates the ingestion of a single material.

    Parameters
    ----------
    fetcher:
        Resolves the material's ``file_url`` to bytes.
    extractor:
        Turns PDF bytes into ``(page_number, text)`` pairs.
    chunker:
        Splits page text into bounded, overlapping chunks.
    embedding_provider:
        Embeds chunk texts (document embeddings).
    repository:
        Persists the chunk set atomically.
    embedding_batch_size:
        Chunks sent per ``embed`` call, bounding the request count.
    """

    def __init__(
        self,
        fetcher: IDocumentFetcher,
        extractor: IDocumentExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        repository: IMaterialRepository,
        embedding_batch_size: int = 10,
    ) -> None:
        if embedding_batch_size <= 0:
            raise ValueError("embedding_batch_size must be positive")
        self._fetcher = fetcher
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._repository = repository
        self._batch_size = embedding_batch_size

    async def ingest(self, material: Material) -> Result[IngestionResult, IngestionError]:
        """Run the full pipeline for *material*.

        Returns
        -------
        Ok[IngestionResult]
            With the number of chunks written.
        Err[IngestionError]
            With the failure; nothing was persisted.
        """
        start = time.perf_counter()
        stage = "fetch"
        try:
            data = await self._fetcher.fetch(material.file_url)

            stage = "extract"
            pages = await self._extractor.extract_pages(data)

            stage = "chunk"
            text_chunks = self._chunker.chunk_pages(pages)
            if not text_chunks:
                raise ParseError(message="Document produced no text chunks")

            stage = "embed"
            vectors = await self._embed_chunks(text_chunks)

            stage = "persist"
            chunks = self._build_chunks(material, text_chunks, vectors)
            written = await self._repository.replace_chunks(material.id, chunks)
        except LecternError as exc:
            error = exc if isinstance(exc, _INGESTION_ERRORS) else self._wrap(stage, exc)
            _logger.warning(
                "ingestion_failed",
                material_id=material.id,
                stage=stage,
                error_type=type(error).__name__,
                error=str(error),
            )
            return Err(error)
        except Exception as exc:  # noqa: BLE001 -- converted to a structured result
            _logger.exception("ingestion_unexpected_error", material_id=material.id, stage=stage)
            return Err(self._wrap(stage, exc))

        elapsed = time.perf_counter() - start
        _logger.info(
            "ingestion_complete",
            material_id=material.id,
            pages=len(pages),
            chunks=written,
            seconds=round(elapsed, 2),
        )
        return Ok(
            IngestionResult(
                material_id=material.id,
                chunks_created=written,
                pages_extracted=len(pages),
                ingestion_time=elapsed,
            )
        )

    async def _embed_chunks(self, text_chunks: list[TextChunk]) -> list[list[float]]:
        """Embed chunk texts in batches and validate the returned vectors."""
        vectors: list[list[float]] = []
        for start in range(0, len(text_chunks), self._batch_size):
            batch = [c.content for c in text_chunks[start : start + self._batch_size]]
            batch_vectors = await self._embedding_provider.embed(batch)
            if len(batch_vectors) != len(batch):
                raise ProviderAPIError(
                    message=f"Expected {len(batch)} embeddings, got {len(batch_vectors)}",
                    provider_name=self._embedding_provider.get_provider_name(),
                )
            vectors.extend(batch_vectors)
            _logger.debug("embedding_batch_done", done=len(vectors), total=len(text_chunks))

        dimensions = {len(v) for v in vectors}
        if len(dimensions) != 1 or 0 in dimensions:
            raise ProviderAPIError(
                message=f"Inconsistent embedding dimensions: {sorted(dimensions)}",
                provider_name=self._embedding_provider.get_provider_name(),
            )
        return vectors

    @staticmethod
    def _build_chunks(
        material: Material,
        text_chunks: list[TextChunk],
        vectors: list[list[float]],
    ) -> list[MaterialChunk]:
        return [
            MaterialChunk(
                id=str(uuid.uuid4()),
                material_id=material.id,
                content=tc.content,
                embedding=vector,
                chunk_index=tc.chunk_index,
                page_number=tc.page_number,
                metadata={
                    "material_title": material.title,
                    "course_id": material.course_id,
                    "start_char": tc.start_char,
                    "end_char": tc.end_char,
                },
            )
            for tc, vector in zip(text_chunks, vectors)
        ]

    @staticmethod
    def _wrap(stage: str, exc: Exception) -> IngestionError:
        error_cls = _STAGE_ERRORS.get(stage, PersistenceError)
        provider = exc.provider_name if isinstance(exc, LecternError) else None
        return error_cls(message=f"{type(exc).__name__}: {exc}", provider_name=provider)  # type: ignore[return-value]
