"""RAG data models: chunks, retrieval hits, answers and statistics.

Defines Pydantic v2 models that flow through ingestion (``TextChunk``,
``IngestionResult``) and querying (``RetrievedChunk``, ``ChatTurn``,
``SourceDocument``, ``RAGResponse``, ``CourseStats``).  All models use
frozen config to enforce immutability.

RAG overview:
    1. INGESTION: a course PDF is fetched, its pages are extracted and
       split into overlapping character windows (``TextChunk``).
    2. EMBEDDING: each chunk is turned into a vector by the embedding
       provider and stored alongside the chunk in SQLite.
    3. RETRIEVAL: a question is embedded and compared against the stored
       vectors of processed materials in the requested course.
    4. GENERATION: the best chunks (plus recent chat turns) are packed
       into a bounded prompt and the LLM answers from that context.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TextChunk(BaseModel):
    """A chunk produced by the chunker, before embedding."""

    model_config = ConfigDict(frozen=True)

    content: str
    chunk_index: int = Field(ge=0)
    page_number: int | None = None
    # Character offsets within the originating page's text.
    start_char: int = Field(default=0, ge=0)
    end_char: int = Field(default=0, ge=0)


class IngestionResult(BaseModel):
    """Outcome of a successful material ingestion."""

    model_config = ConfigDict(frozen=True)

    material_id: str
    chunks_created: int = Field(ge=0)
    pages_extracted: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Seconds spent ingesting.")


class RetrievedChunk(BaseModel):
    """A stored chunk ranked against a query embedding."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    material_id: str
    material_title: str
    course_id: str
    content: str
    chunk_index: int
    page_number: int | None = None
    similarity_score: float = Field(description="Cosine similarity to the query vector.")
    material_created_at: datetime | None = None


class ChatTurn(BaseModel):
    """A previous question/answer exchange supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str


class SourceDocument(BaseModel):
    """Attribution for a chunk that was placed in the answer's context."""

    model_config = ConfigDict(frozen=True)

    material_id: str
    title: str
    page_number: int | None = None
    chunk_index: int
    relevance_score: float
    excerpt: str = Field(default="", description="First characters of the chunk.")


class RAGResponse(BaseModel):
    """Answer returned by the query engine."""

    model_config = ConfigDict(frozen=True)

    answer: str
    source_documents: list[SourceDocument] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)


class CourseStats(BaseModel):
    """Aggregate ingestion statistics for one course (or all courses)."""

    model_config = ConfigDict(frozen=True)

    total_materials: int = Field(default=0, ge=0)
    processed_materials: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    average_chunks_per_material: float = Field(default=0.0, ge=0.0)
