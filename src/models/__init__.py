"""Lectern domain models: re-exports all public model classes.

The models are organized by concern:
    - material.py: materials, chunks, processing jobs and queue counts
    - rag.py     : chunking, retrieval, answers and course statistics
"""

from __future__ import annotations

from src.models.material import (
    JobStatus,
    Material,
    MaterialChunk,
    MaterialStatus,
    MaterialStatusReport,
    ProcessingQueueJob,
    QueueStats,
)
from src.models.rag import (
    ChatTurn,
    CourseStats,
    IngestionResult,
    RAGResponse,
    RetrievedChunk,
    SourceDocument,
    TextChunk,
)

__all__ = [
    # material
    "JobStatus",
    "Material",
    "MaterialChunk",
    "MaterialStatus",
    "MaterialStatusReport",
    "ProcessingQueueJob",
    "QueueStats",
    # rag
    "ChatTurn",
    "CourseStats",
    "IngestionResult",
    "RAGResponse",
    "RetrievedChunk",
    "SourceDocument",
    "TextChunk",
]
