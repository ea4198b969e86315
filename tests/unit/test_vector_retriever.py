"""Unit tests for cosine_similarity and VectorRetriever."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from src.interfaces.material_repository import IMaterialRepository, SearchableChunk
from src.services.retrieval.vector_retriever import VectorRetriever, cosine_similarity

_T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def _chunk(
    chunk_id: str,
    vector: list[float],
    *,
    material_id: str = "m1",
    chunk_index: int = 0,
    created_offset_s: int = 0,
    course_id: str = "cs101",
) -> SearchableChunk:
    return SearchableChunk(
        chunk_id=chunk_id,
        material_id=material_id,
        material_title=f"Title {material_id}",
        course_id=course_id,
        content=f"content of {chunk_id}",
        chunk_index=chunk_index,
        page_number=1,
        embedding=np.asarray(vector, dtype=np.float32),
        material_created_at=_T0 + timedelta(seconds=created_offset_s),
    )


def _retriever(chunks: list[SearchableChunk], **kwargs) -> tuple[VectorRetriever, MagicMock]:
    repo = MagicMock(spec=IMaterialRepository)
    repo.list_searchable_chunks = AsyncMock(return_value=chunks)
    return VectorRetriever(repo, **kwargs), repo


class TestCosineSimilarity:
    def test_basic_scores(self) -> None:
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0], [-1.0, 0.0]])
        scores = cosine_similarity(np.array([1.0, 0.0]), matrix)
        assert scores == pytest.approx([1.0, 0.0, 0.70710678, -1.0])

    def test_zero_norms_score_zero(self) -> None:
        matrix = np.array([[0.0, 0.0], [1.0, 0.0]])
        assert cosine_similarity(np.array([1.0, 0.0]), matrix) == pytest.approx([0.0, 1.0])
        assert cosine_similarity(np.array([0.0, 0.0]), matrix) == pytest.approx([0.0, 0.0])


class TestVectorRetriever:
    @pytest.mark.asyncio
    async def test_ranks_by_similarity_and_truncates(self) -> None:
        retriever, _ = _retriever(
            [
                _chunk("far", [0.0, 1.0]),
                _chunk("close", [1.0, 0.1], chunk_index=1),
                _chunk("exact", [2.0, 0.0], chunk_index=2),
            ]
        )
        results = await retriever.retrieve([1.0, 0.0], top_k=2)

        assert [r.chunk_id for r in results] == ["exact", "close"]
        assert results[0].similarity_score == pytest.approx(1.0)
        assert results[0].material_title == "Title m1"

    @pytest.mark.asyncio
    async def test_passes_course_filter_to_repository(self) -> None:
        retriever, repo = _retriever([])
        assert await retriever.retrieve([1.0, 0.0], course_id="bio200") == []
        repo.list_searchable_chunks.assert_awaited_once_with(course_id="bio200")

    @pytest.mark.asyncio
    async def test_ties_prefer_newer_material_then_lower_index(self) -> None:
        retriever, _ = _retriever(
            [
                _chunk("old-0", [1.0, 0.0], material_id="old", chunk_index=0, created_offset_s=0),
                _chunk("new-1", [1.0, 0.0], material_id="new", chunk_index=1, created_offset_s=60),
                _chunk("new-0", [1.0, 0.0], material_id="new", chunk_index=0, created_offset_s=60),
            ]
        )
        results = await retriever.retrieve([3.0, 0.0], top_k=3)
        assert [r.chunk_id for r in results] == ["new-0", "new-1", "old-0"]

    @pytest.mark.asyncio
    async def test_min_similarity_filters(self) -> None:
        retriever, _ = _retriever(
            [_chunk("a", [1.0, 0.0]), _chunk("b", [0.0, 1.0], chunk_index=1)],
            min_similarity=0.5,
        )
        results = await retriever.retrieve([1.0, 0.0], top_k=5)
        assert [r.chunk_id for r in results] == ["a"]

    @pytest.mark.asyncio
    async def test_configured_threshold_drops_weak_matches(self) -> None:
        retriever, _ = _retriever(
            [
                _chunk("close", [0.9, 0.1]),
                _chunk("weak", [0.6, 0.8], chunk_index=1),
                _chunk("orthogonal", [0.0, 1.0], chunk_index=2),
            ],
            min_similarity=0.7,
        )
        results = await retriever.retrieve([1.0, 0.0], top_k=5)
        assert [r.chunk_id for r in results] == ["close"]
        assert results[0].similarity_score >= 0.7

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_skipped(self) -> None:
        retriever, _ = _retriever([_chunk("three", [1.0, 0.0, 0.0]), _chunk("two", [1.0, 0.0], chunk_index=1)])
        results = await retriever.retrieve([1.0, 0.0])
        assert [r.chunk_id for r in results] == ["two"]

    @pytest.mark.asyncio
    async def test_degenerate_requests_return_empty(self) -> None:
        retriever, repo = _retriever([_chunk("a", [1.0, 0.0])])
        assert await retriever.retrieve([1.0, 0.0], top_k=0) == []
        assert await retriever.retrieve([], top_k=3) == []
        repo.list_searchable_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        chunks = [_chunk(f"c{i}", [1.0, float(i % 3)], chunk_index=i) for i in range(12)]
        retriever, _ = _retriever(chunks)
        first = await retriever.retrieve([1.0, 1.0], top_k=6)
        second = await retriever.retrieve([1.0, 1.0], top_k=6)
        assert [r.chunk_id for r in first] == [r.chunk_id for r in second]
