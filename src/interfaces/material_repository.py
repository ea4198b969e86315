"""Abstract base class for material and chunk persistence.

The queue manager is the only caller of the ``mark_*`` methods, so every
change to ``Material.processing_status`` passes through one place.  The
retrieval engine only ever sees chunks of processed materials via
:meth:`IMaterialRepository.list_searchable_chunks`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from src.models.material import Material, MaterialChunk


@dataclass(frozen=True)
class SearchableChunk:
    """A stored chunk joined with its material, ready for similarity scoring."""

    chunk_id: str
    material_id: str
    material_title: str
    course_id: str
    content: str
    chunk_index: int
    page_number: int | None
    embedding: np.ndarray
    material_created_at: datetime | None = None


@dataclass(frozen=True)
class MaterialCounts:
    """Raw aggregates for course statistics."""

    total_materials: int
    processed_materials: int
    total_chunks: int


# Concrete implementation: SQLiteMaterialRepository
# Located in: src/providers/persistence/
class IMaterialRepository(ABC):
    """Contract for storing materials and their embedded chunks."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    @abstractmethod
    async def create_material(
        self,
        material_id: str,
        title: str,
        file_url: str,
        course_id: str,
    ) -> Material:
        """Insert a new material in ``pending`` state and return it.

        If the id already exists the stored row is returned unchanged.

        Raises
        ------
        src.utils.errors.PersistenceError
            If the write fails.
        """

    @abstractmethod
    async def get_material(self, material_id: str) -> Material | None:
        """Return the material, or ``None`` if absent."""

    @abstractmethod
    async def mark_queued(self, material_id: str, error: str | None = None) -> None:
        """Set status ``queued``; *error* records the last failed attempt, if any."""

    @abstractmethod
    async def mark_processing(self, material_id: str, started_at: datetime) -> None:
        """Set status ``processing`` and ``processing_started_at``."""

    @abstractmethod
    async def mark_completed(
        self,
        material_id: str,
        chunks_count: int,
        completed_at: datetime,
    ) -> None:
        """Set status ``completed``, ``processed=True`` and the chunk count; clear errors."""

    @abstractmethod
    async def mark_failed(self, material_id: str, error: str, completed_at: datetime) -> None:
        """Set status ``failed`` with ``processing_error``."""

    @abstractmethod
    async def replace_chunks(self, material_id: str, chunks: list[MaterialChunk]) -> int:
        """Atomically swap the material's chunk set and update ``chunks_count``.

        Either every chunk is written or none is.

        Returns
        -------
        int
            Number of chunks written.

        Raises
        ------
        src.utils.errors.PersistenceError
            If the transaction fails; the previous chunk set is left intact.
        """

    @abstractmethod
    async def list_chunks(self, material_id: str) -> list[MaterialChunk]:
        """Return a material's chunks ordered by ``chunk_index``."""

    @abstractmethod
    async def list_searchable_chunks(self, course_id: str | None = None) -> list[SearchableChunk]:
        """Return chunks of processed materials, optionally restricted to a course."""

    @abstractmethod
    async def count_materials(self, course_id: str | None = None) -> MaterialCounts:
        """Return material / processed / chunk totals, optionally per course."""
