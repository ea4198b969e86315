"""End-to-end queue scenarios over real SQLite, PDF parsing and chunking.

The only fakes are the network edges: documents are served by an
``httpx.MockTransport``, embeddings come from the keyword embedder in
conftest (optionally made to fail), and the LLM is a mock.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.interfaces.llm_provider import ILLMProvider
from src.models.material import JobStatus, MaterialStatus
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.fetch.http_document_fetcher import HttpDocumentFetcher
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.pdf_extractor import PDFTextExtractor
from src.services.material_status_service import MaterialStatusService
from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.queue.queue_worker import QueueWorker
from src.services.rag_service import NO_CONTENT_IN_COURSE_ANSWER, RAGService
from src.services.retrieval.vector_retriever import VectorRetriever
from src.utils.errors import ProviderAPIError, RateLimitError
from tests.conftest import KeywordEmbeddingProvider, lecture_pages, make_pdf

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DOCUMENTS = {
    "/cs101/heaps.pdf": make_pdf(lecture_pages(10, topic="heap")),
    "/bio200/cells.pdf": make_pdf(lecture_pages(4, topic="cell")),
}


def _serve(request: httpx.Request) -> httpx.Response:
    body = _DOCUMENTS.get(request.url.path)
    if body is None:
        return httpx.Response(404)
    return httpx.Response(200, content=body, headers={"content-type": "application/pdf"})


class FailingEmbedder(KeywordEmbeddingProvider):
    """Keyword embedder whose first ``failures`` embed calls raise ``error``."""

    def __init__(self, error: Exception, failures: int) -> None:
        super().__init__()
        self._error = error
        self._failures = failures
        self.attempted = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.attempted += 1
        if self.attempted <= self._failures:
            raise self._error
        return await super().embed(texts)


def _wire(material_repo, job_repo, clock, embedder):
    fetcher = HttpDocumentFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(_serve)))
    pipeline = IngestionService(
        fetcher=fetcher,
        extractor=PDFTextExtractor(),
        chunker=TextChunker(chunk_size=400, overlap=80),
        embedding_provider=embedder,
        repository=material_repo,
        embedding_batch_size=10,
    )
    status = MaterialStatusService(material_repo, job_repo, cache=MemoryCacheProvider(ttl=60), ttl=60)
    queue = ProcessingQueueManager(
        job_repo,
        material_repo,
        pipeline,
        max_attempts=3,
        retry_base_delay=5.0,
        lease_seconds=600.0,
        on_status_change=status.invalidate,
        clock=clock,
    )
    return queue, status


async def _enqueue(queue, material_id="M1", course_id="C1", path="/cs101/heaps.pdf") -> str:
    return await queue.add_job(
        material_id,
        file_url=f"https://files.example.edu{path}",
        title=f"{material_id} lecture notes",
        course_id=course_id,
    )


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestQueueScenarios:
    @pytest.mark.asyncio
    async def test_enqueue_valid_pdf_completes(self, material_repo, job_repo, clock, keyword_embedder) -> None:
        queue, status = _wire(material_repo, job_repo, clock, keyword_embedder)
        job_id = await _enqueue(queue)

        assert (await status.get_status("M1")).processing_status == MaterialStatus.QUEUED

        job = await queue.process_next()
        assert job.id == job_id
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1

        material = await material_repo.get_material("M1")
        assert material.processed is True
        assert material.chunks_count > 0
        assert material.processing_status == MaterialStatus.COMPLETED

        chunks = await material_repo.list_chunks("M1")
        assert len(chunks) == material.chunks_count
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert {c.page_number for c in chunks} == set(range(1, 11))

        report = await status.get_status("M1")
        assert report.processing_status == MaterialStatus.COMPLETED
        assert report.queue_job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_rate_limited_twice_then_succeeds(self, material_repo, job_repo, clock) -> None:
        embedder = FailingEmbedder(RateLimitError(retry_after_seconds=20, provider_name="cohere"), failures=2)
        queue, _ = _wire(material_repo, job_repo, clock, embedder)
        await _enqueue(queue)

        first = await queue.process_next()
        assert first.status == JobStatus.PENDING
        assert (await material_repo.get_material("M1")).processing_status == MaterialStatus.QUEUED

        # Not eligible again until Retry-After has passed.
        assert await queue.process_next() is None
        clock.advance(20)
        second = await queue.process_next()
        assert second.status == JobStatus.PENDING
        assert second.attempts == 2

        clock.advance(20)
        final = await queue.process_next()
        assert final.status == JobStatus.COMPLETED
        assert final.attempts == 3
        assert (await material_repo.get_material("M1")).processed is True

    @pytest.mark.asyncio
    async def test_failing_every_attempt_fails_material(self, material_repo, job_repo, clock) -> None:
        embedder = FailingEmbedder(ProviderAPIError(message="embed API error 400", status_code=400), failures=99)
        queue, status = _wire(material_repo, job_repo, clock, embedder)
        await _enqueue(queue)

        for _ in range(3):
            job = await queue.process_next()
            clock.advance(3600)

        assert job.status == JobStatus.FAILED
        assert job.attempts == 3
        assert embedder.attempted == 3

        material = await material_repo.get_material("M1")
        assert material.processing_status == MaterialStatus.FAILED
        assert material.processing_error
        assert material.processed is False
        assert await material_repo.list_chunks("M1") == []
        assert (await status.get_status("M1")).processing_status == MaterialStatus.FAILED

    @pytest.mark.asyncio
    async def test_unreachable_document_fails_after_retries(self, material_repo, job_repo, clock, keyword_embedder) -> None:
        queue, _ = _wire(material_repo, job_repo, clock, keyword_embedder)
        await _enqueue(queue, path="/cs101/missing.pdf")

        for _ in range(3):
            await queue.process_next()
            clock.advance(3600)

        material = await material_repo.get_material("M1")
        assert material.processing_status == MaterialStatus.FAILED
        assert "404" in material.processing_error
        assert keyword_embedder.embed_calls == []

    @pytest.mark.asyncio
    async def test_query_other_course_gets_fallback(self, material_repo, job_repo, clock, keyword_embedder) -> None:
        queue, _ = _wire(material_repo, job_repo, clock, keyword_embedder)
        await _enqueue(queue, "M1", "C1")
        assert await QueueWorker(queue).trigger() == 1

        llm = MagicMock(spec=ILLMProvider)
        llm.generate = AsyncMock(side_effect=["Heaps keep the minimum at the root.", "1. What is sift-down?\n2. What is sift-up?"])
        rag = RAGService(keyword_embedder, llm, VectorRetriever(material_repo), material_repo, top_k=4)

        elsewhere = await rag.query_with_history("What is a heap?", course_id="C2")
        assert elsewhere.source_documents == []
        assert elsewhere.answer == NO_CONTENT_IN_COURSE_ANSWER
        llm.generate.assert_not_awaited()

        here = await rag.query_with_history("What is a heap?", course_id="C1")
        assert here.answer == "Heaps keep the minimum at the root."
        assert 0 < len(here.source_documents) <= 4
        assert {s.material_id for s in here.source_documents} == {"M1"}
        scores = [s.relevance_score for s in here.source_documents]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_courses_are_isolated(self, material_repo, job_repo, clock, keyword_embedder) -> None:
        queue, _ = _wire(material_repo, job_repo, clock, keyword_embedder)
        await _enqueue(queue, "M1", "C1", "/cs101/heaps.pdf")
        await _enqueue(queue, "B1", "BIO", "/bio200/cells.pdf")
        assert await queue.process_all() == 2

        retriever = VectorRetriever(material_repo)
        query = await keyword_embedder.embed_single("What is a cell?")
        bio = await retriever.retrieve(query, course_id="BIO", top_k=10)
        cs = await retriever.retrieve(query, course_id="C1", top_k=10)

        assert bio and {r.course_id for r in bio} == {"BIO"}
        assert {r.course_id for r in cs} <= {"C1"}

        stats = await RAGService(keyword_embedder, MagicMock(spec=ILLMProvider), retriever, material_repo).get_course_stats()
        assert stats.total_materials == 2
        assert stats.processed_materials == 2
