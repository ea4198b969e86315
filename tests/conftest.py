"""Shared pytest fixtures for the Lectern test suite."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.providers.persistence.sqlite_job_repository import SQLiteJobRepository
from src.providers.persistence.sqlite_material_repository import SQLiteMaterialRepository

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Topic words used by KeywordEmbeddingProvider; one vector dimension each.
VOCABULARY = (
    "heap",
    "tree",
    "graph",
    "sorting",
    "photosynthesis",
    "cell",
    "market",
    "inflation",
)


def make_pdf(pages: list[str]) -> bytes:
    """Build an in-memory PDF with one page per string (empty = blank page)."""
    doc = fitz.open()
    try:
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_textbox(fitz.Rect(50, 50, 550, 800), text, fontsize=10)
        return doc.tobytes()
    finally:
        doc.close()


def lecture_pages(count: int = 10, topic: str = "heap") -> list[str]:
    """Multi-paragraph lecture text, long enough to produce several chunks."""
    pages = []
    for n in range(1, count + 1):
        paragraphs = [
            f"Lecture {n} covers the {topic} in detail. A {topic} is a structure that "
            f"students meet early. This section explains why the {topic} matters.",
            f"Worked example {n}. We insert keys one at a time and observe how the {topic} "
            "changes. Each step is checked against the invariant before moving on.",
            f"Summary of page {n}. Review the {topic} operations, their costs, and the "
            "common mistakes listed in the exercises at the end of the chapter.",
        ]
        pages.append("\n\n".join(paragraphs))
    return pages


class KeywordEmbeddingProvider(IEmbeddingProvider):
    """Deterministic embeddings: counts of each VOCABULARY word in the text."""

    def __init__(self) -> None:
        self.embed_calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return self._vector(text)

    def get_dimension(self) -> int:
        return len(VOCABULARY)

    def get_provider_name(self) -> str:
        return "keyword"

    def is_available(self) -> bool:
        return True

    @staticmethod
    def _vector(text: str) -> list[float]:
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(term)) for term in VOCABULARY]


class MutableClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Return a fresh SQLite database path inside pytest's tmp dir."""
    return tmp_path / "lectern-test.db"


@pytest.fixture
async def material_repo(db_path: Path) -> SQLiteMaterialRepository:
    repo = SQLiteMaterialRepository(db_path=db_path)
    await repo.initialize()
    return repo


@pytest.fixture
async def job_repo(db_path: Path, material_repo: SQLiteMaterialRepository) -> SQLiteJobRepository:
    repo = SQLiteJobRepository(db_path=db_path)
    await repo.initialize()
    return repo


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def keyword_embedder() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def mock_embedding_provider() -> MagicMock:
    """Create a mock embedding provider returning 4-dim vectors."""
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.embed = AsyncMock(side_effect=lambda texts: [[0.1, 0.2, 0.3, 0.4] for _ in texts])
    provider.embed_single = AsyncMock(return_value=[0.1, 0.2, 0.3, 0.4])
    provider.get_dimension.return_value = 4
    provider.get_provider_name.return_value = "mock-embed"
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM provider with a canned answer and follow-ups."""
    llm = MagicMock(spec=ILLMProvider)
    llm.generate = AsyncMock(
        side_effect=[
            "A binary heap keeps the smallest key at the root (see Week 1 Notes).",
            "1. How is a heap stored in an array?\n"
            "2. What is the cost of heapify?\n"
            "3. When would you prefer a balanced tree?",
        ]
    )
    llm.get_provider_name.return_value = "mock-llm"
    llm.is_available.return_value = True
    return llm


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return make_pdf(lecture_pages(3))
