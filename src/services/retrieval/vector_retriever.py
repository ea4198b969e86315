"""Cosine-similarity ranking over persisted chunk embeddings.

Only chunks of processed materials are loaded from the repository, and
the course filter is applied by the repository query before any score is
computed, so chunks of another course are never ranked at all.

Ordering is fully deterministic: descending similarity, then the owning
material's ``created_at`` (newest first), then ``chunk_index``.
"""

from __future__ import annotations

import numpy as np
import structlog

from src.interfaces.material_repository import IMaterialRepository, SearchableChunk
from src.models.rag import RetrievedChunk
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of *matrix*.

    Rows (or a query) with zero norm score ``0.0``.
    """
    query_norm = float(np.linalg.norm(query))
    row_norms = np.linalg.norm(matrix, axis=1)
    if query_norm == 0.0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    dots = matrix @ query
    denom = row_norms * query_norm
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = denom > 0
    scores[nonzero] = dots[nonzero] / denom[nonzero]
    return scores


class VectorRetriever:
    """Ranks chunks of processed materials against a query embedding."""

    def __init__(self, repository: IMaterialRepository, min_similarity: float = 0.0) -> None:
        self._repository = repository
        self._min_similarity = min_similarity

    @property
    def min_similarity(self) -> float:
        return self._min_similarity

    async def retrieve(
        self,
        query_embedding: list[float],
        course_id: str | None = None,
        top_k: int = 5,
    ) -> list[RetrievedChunk]:
        """Return at most *top_k* chunks, most similar first.

        An empty list is returned when nothing is eligible; a course
        with no processed material is not an error.
        """
        if top_k <= 0 or not query_embedding:
            return []

        candidates = await self._repository.list_searchable_chunks(course_id=course_id)
        query = np.asarray(query_embedding, dtype=np.float64)
        eligible = [c for c in candidates if c.embedding.shape == query.shape]
        skipped = len(candidates) - len(eligible)
        if skipped:
            _logger.warning("retrieval_dimension_mismatch", skipped=skipped, expected=query.shape[0])
        if not eligible:
            return []

        matrix = np.vstack([c.embedding.astype(np.float64) for c in eligible])
        scores = cosine_similarity(query, matrix)

        ranked: list[tuple[float, SearchableChunk]] = [
            (float(score), chunk)
            for score, chunk in zip(scores, eligible)
            if score >= self._min_similarity
        ]
        # Stable sorts: least significant key first.
        ranked.sort(key=lambda pair: pair[1].chunk_index)
        ranked.sort(key=lambda pair: pair[1].material_created_at, reverse=True)
        ranked.sort(key=lambda pair: pair[0], reverse=True)

        results = [self._to_result(score, chunk) for score, chunk in ranked[:top_k]]
        _logger.debug(
            "retrieval_done",
            course_id=course_id,
            candidates=len(eligible),
            returned=len(results),
            top_score=results[0].similarity_score if results else None,
        )
        return results

    @staticmethod
    def _to_result(score: float, chunk: SearchableChunk) -> RetrievedChunk:
        return RetrievedChunk(
            chunk_id=chunk.chunk_id,
            material_id=chunk.material_id,
            material_title=chunk.material_title,
            course_id=chunk.course_id,
            content=chunk.content,
            chunk_index=chunk.chunk_index,
            page_number=chunk.page_number,
            similarity_score=score,
            material_created_at=chunk.material_created_at,
        )
