"""SQLite-backed material and chunk repository.

Persists materials and their embedded chunks with ``aiosqlite``.  Chunk
sets are swapped in one transaction so the retrieval engine never sees a
partially written set, and only chunks of ``processed`` materials are
returned for search.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.material_repository import (
    IMaterialRepository,
    MaterialCounts,
    SearchableChunk,
)
from src.models.material import Material, MaterialChunk, MaterialStatus
from src.providers.persistence.sqlite_schema import (
    PROVIDER_NAME,
    decode_embedding,
    encode_embedding,
    from_db_time,
    initialize_database,
    open_db,
    to_db_time,
    transaction,
)
from src.utils.errors import MaterialNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/lectern.db")

_MATERIAL_COLUMNS = (
    "id, title, file_url, course_id, processing_status, chunks_count, "
    "processing_error, processing_started_at, processing_completed_at, "
    "processed, created_at, updated_at"
)

_INSERT_MATERIAL_SQL = """\
INSERT OR IGNORE INTO materials (id, title, file_url, course_id, processing_status, created_at, updated_at)
VALUES (?, ?, ?, ?, 'pending', ?, ?);
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO material_chunks
    (id, material_id, content, embedding, chunk_index, page_number, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_SEARCHABLE_SQL = """\
SELECT c.id, c.material_id, m.title, m.course_id, c.content, c.chunk_index,
       c.page_number, c.embedding, m.created_at AS material_created_at
FROM material_chunks c
JOIN materials m ON m.id = c.material_id
WHERE m.processed = 1 {course_filter}
ORDER BY m.created_at DESC, c.material_id, c.chunk_index;
"""

_COUNTS_SQL = """\
SELECT COUNT(*) AS total_materials,
       COALESCE(SUM(CASE WHEN processed = 1 THEN 1 ELSE 0 END), 0) AS processed_materials,
       COALESCE(SUM(CASE WHEN processed = 1 THEN chunks_count ELSE 0 END), 0) AS total_chunks
FROM materials {course_filter};
"""


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _row_to_material(row: aiosqlite.Row) -> Material:
    return Material(
        id=row["id"],
        title=row["title"],
        file_url=row["file_url"],
        course_id=row["course_id"],
        processing_status=MaterialStatus(row["processing_status"]),
        chunks_count=row["chunks_count"],
        processing_error=row["processing_error"],
        processing_started_at=from_db_time(row["processing_started_at"]),
        processing_completed_at=from_db_time(row["processing_completed_at"]),
        processed=bool(row["processed"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


class SQLiteMaterialRepository(IMaterialRepository):
    """SQLite persistence for materials and chunks."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        await initialize_database(self._db_path)

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------

    async def create_material(
        self,
        material_id: str,
        title: str,
        file_url: str,
        course_id: str,
    ) -> Material:
        now = to_db_time(_now())
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                _INSERT_MATERIAL_SQL,
                (material_id, title, file_url, course_id, now, now),
            )
            created = cursor.rowcount == 1
            material = await self._fetch_material(db, material_id)

        if created:
            logger.info("material_created", material_id=material_id, course_id=course_id)
        else:
            logger.debug("material_exists", material_id=material_id)
        return material  # type: ignore[return-value]

    async def get_material(self, material_id: str) -> Material | None:
        async with open_db(self._db_path) as db:
            return await self._fetch_material(db, material_id)

    async def mark_queued(self, material_id: str, error: str | None = None) -> None:
        await self._update_status(
            material_id,
            "processing_status = ?, processing_error = ?",
            (MaterialStatus.QUEUED.value, error),
        )

    async def mark_processing(self, material_id: str, started_at: datetime) -> None:
        await self._update_status(
            material_id,
            "processing_status = ?, processing_started_at = ?, processing_completed_at = NULL",
            (MaterialStatus.PROCESSING.value, to_db_time(started_at)),
        )

    async def mark_completed(
        self,
        material_id: str,
        chunks_count: int,
        completed_at: datetime,
    ) -> None:
        await self._update_status(
            material_id,
            "processing_status = ?, processed = 1, chunks_count = ?, "
            "processing_error = NULL, processing_completed_at = ?",
            (MaterialStatus.COMPLETED.value, chunks_count, to_db_time(completed_at)),
        )

    async def mark_failed(self, material_id: str, error: str, completed_at: datetime) -> None:
        await self._update_status(
            material_id,
            "processing_status = ?, processing_error = ?, processing_completed_at = ?",
            (MaterialStatus.FAILED.value, error, to_db_time(completed_at)),
        )

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def replace_chunks(self, material_id: str, chunks: list[MaterialChunk]) -> int:
        indexes = sorted(c.chunk_index for c in chunks)
        if indexes != list(range(len(chunks))):
            raise ValueError("chunk_index values must be contiguous from 0")
        if any(c.material_id != material_id for c in chunks):
            raise ValueError("all chunks must belong to the material being replaced")

        now = to_db_time(_now())
        rows = [
            (
                c.id,
                material_id,
                c.content,
                encode_embedding(c.embedding),
                c.chunk_index,
                c.page_number,
                json.dumps(c.metadata) if c.metadata else None,
                now,
            )
            for c in chunks
        ]

        async with open_db(self._db_path) as db:
            async with transaction(db):
                cursor = await db.execute("SELECT 1 FROM materials WHERE id = ?", (material_id,))
                if await cursor.fetchone() is None:
                    raise MaterialNotFoundError(
                        message=f"Material {material_id} not found",
                        provider_name=PROVIDER_NAME,
                    )
                await db.execute("DELETE FROM material_chunks WHERE material_id = ?", (material_id,))
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.execute(
                    "UPDATE materials SET chunks_count = ?, updated_at = ? WHERE id = ?",
                    (len(rows), now, material_id),
                )

        logger.info("chunks_replaced", material_id=material_id, chunks=len(rows))
        return len(rows)

    async def list_chunks(self, material_id: str) -> list[MaterialChunk]:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "SELECT id, material_id, content, embedding, chunk_index, page_number, metadata "
                "FROM material_chunks WHERE material_id = ? ORDER BY chunk_index",
                (material_id,),
            )
            rows = await cursor.fetchall()

        return [
            MaterialChunk(
                id=r["id"],
                material_id=r["material_id"],
                content=r["content"],
                embedding=decode_embedding(r["embedding"]).tolist(),
                chunk_index=r["chunk_index"],
                page_number=r["page_number"],
                metadata=json.loads(r["metadata"]) if r["metadata"] else {},
            )
            for r in rows
        ]

    async def list_searchable_chunks(self, course_id: str | None = None) -> list[SearchableChunk]:
        params: tuple = ()
        course_filter = ""
        if course_id is not None:
            course_filter = "AND m.course_id = ?"
            params = (course_id,)

        async with open_db(self._db_path) as db:
            cursor = await db.execute(_SEARCHABLE_SQL.format(course_filter=course_filter), params)
            rows = await cursor.fetchall()

        return [
            SearchableChunk(
                chunk_id=r["id"],
                material_id=r["material_id"],
                material_title=r["title"],
                course_id=r["course_id"],
                content=r["content"],
                chunk_index=r["chunk_index"],
                page_number=r["page_number"],
                embedding=decode_embedding(r["embedding"]),
                material_created_at=from_db_time(r["material_created_at"]),
            )
            for r in rows
        ]

    async def count_materials(self, course_id: str | None = None) -> MaterialCounts:
        params: tuple = ()
        course_filter = ""
        if course_id is not None:
            course_filter = "WHERE course_id = ?"
            params = (course_id,)

        async with open_db(self._db_path) as db:
            cursor = await db.execute(_COUNTS_SQL.format(course_filter=course_filter), params)
            row = await cursor.fetchone()

        return MaterialCounts(
            total_materials=row["total_materials"],
            processed_materials=row["processed_materials"],
            total_chunks=row["total_chunks"],
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _fetch_material(db: aiosqlite.Connection, material_id: str) -> Material | None:
        cursor = await db.execute(
            f"SELECT {_MATERIAL_COLUMNS} FROM materials WHERE id = ?",
            (material_id,),
        )
        row = await cursor.fetchone()
        return _row_to_material(row) if row is not None else None

    async def _update_status(self, material_id: str, assignments: str, params: tuple) -> None:
        now = to_db_time(_now())
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                f"UPDATE materials SET {assignments}, updated_at = ? WHERE id = ?",
                (*params, now, material_id),
            )
            updated = cursor.rowcount

        if updated == 0:
            raise MaterialNotFoundError(
                message=f"Material {material_id} not found",
                provider_name=PROVIDER_NAME,
            )
        logger.debug("material_status_updated", material_id=material_id, fields=assignments)
