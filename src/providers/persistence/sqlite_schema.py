"""Shared SQLite schema and connection helpers.

Materials, their chunks and the processing queue live in one database
file so that a material and its job can be joined and so that a single
``BEGIN IMMEDIATE`` transaction serialises competing queue claims.

Connections are opened per call (``async with open_db(path)``) in
autocommit mode; multi-statement writes use :func:`transaction`.
Every ``sqlite3``/``aiosqlite`` error leaving :func:`open_db` is
re-raised as :class:`~src.utils.errors.PersistenceError`.

Timestamps are stored as fixed-width UTC ISO-8601 strings so that
lexical order equals chronological order (used by ``available_at`` and
``lease_expires_at`` comparisons).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import numpy as np
import structlog

from src.utils.errors import PersistenceError

logger = structlog.get_logger(logger_name=__name__)

PROVIDER_NAME = "sqlite"

_CREATE_SQL = [
    """\
CREATE TABLE IF NOT EXISTS materials (
    id                       TEXT    PRIMARY KEY,
    title                    TEXT    NOT NULL,
    file_url                 TEXT    NOT NULL,
    course_id                TEXT    NOT NULL,
    processing_status        TEXT    NOT NULL DEFAULT 'pending',
    chunks_count             INTEGER NOT NULL DEFAULT 0,
    processing_error         TEXT,
    processing_started_at    TEXT,
    processing_completed_at  TEXT,
    processed                INTEGER NOT NULL DEFAULT 0,
    created_at               TEXT    NOT NULL,
    updated_at               TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS material_chunks (
    id           TEXT    PRIMARY KEY,
    material_id  TEXT    NOT NULL REFERENCES materials(id) ON DELETE CASCADE,
    content      TEXT    NOT NULL,
    embedding    BLOB    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    page_number  INTEGER,
    metadata     TEXT,
    created_at   TEXT    NOT NULL,
    UNIQUE(material_id, chunk_index)
);
""",
    """\
CREATE TABLE IF NOT EXISTS processing_queue (
    id                TEXT    PRIMARY KEY,
    material_id       TEXT    NOT NULL UNIQUE REFERENCES materials(id) ON DELETE CASCADE,
    status            TEXT    NOT NULL DEFAULT 'pending',
    attempts          INTEGER NOT NULL DEFAULT 0,
    max_attempts      INTEGER NOT NULL DEFAULT 3,
    error             TEXT,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    started_at        TEXT,
    completed_at      TEXT,
    available_at      TEXT,
    lease_expires_at  TEXT
);
""",
    "CREATE INDEX IF NOT EXISTS idx_materials_course ON materials(course_id);",
    "CREATE INDEX IF NOT EXISTS idx_materials_status ON materials(processing_status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_material ON material_chunks(material_id);",
    "CREATE INDEX IF NOT EXISTS idx_queue_status ON processing_queue(status);",
    "CREATE INDEX IF NOT EXISTS idx_queue_created ON processing_queue(created_at);",
]


def to_db_time(value: datetime | None) -> str | None:
    """Serialise an aware datetime as a fixed-width UTC string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def encode_embedding(vector: list[float]) -> bytes:
    """Pack an embedding as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f4")


@asynccontextmanager
async def open_db(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    """Open an autocommit connection with row access by column name."""
    try:
        async with aiosqlite.connect(str(db_path), isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            await db.execute("PRAGMA busy_timeout = 5000")
            yield db
    except aiosqlite.Error as exc:
        logger.error("sqlite_error", path=str(db_path), error=str(exc))
        raise PersistenceError(message=f"SQLite error: {exc}", provider_name=PROVIDER_NAME) from exc


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """Run the block inside ``BEGIN IMMEDIATE``; roll back on any exception."""
    await db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        await db.execute("ROLLBACK")
        raise
    await db.execute("COMMIT")


async def initialize_database(db_path: str | Path) -> None:
    """Create every table and index used by the repositories."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with open_db(db_path) as db:
        await db.execute("PRAGMA journal_mode = WAL")
        for statement in _CREATE_SQL:
            await db.execute(statement)
    logger.info("database_initialized", path=str(db_path))
