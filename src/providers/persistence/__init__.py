"""SQLite persistence providers.

Materials, chunks and processing jobs share one database file (see
``sqlite_schema.py``).  Each repository opens a short-lived ``aiosqlite``
connection per call, so they are safe to share across tasks.
"""

from src.providers.persistence.sqlite_job_repository import SQLiteJobRepository
from src.providers.persistence.sqlite_material_repository import SQLiteMaterialRepository

__all__ = ["SQLiteJobRepository", "SQLiteMaterialRepository"]
