"""Cached material status lookups for polling clients.

Clients poll a material's status while it is being processed.  Each
report is memoised in the injected cache under ``material:status:<id>``;
the queue manager calls :meth:`MaterialStatusService.invalidate` on every
status transition, so a cached report is dropped as soon as it is stale.
"""

from __future__ import annotations

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.job_repository import IJobRepository
from src.interfaces.material_repository import IMaterialRepository
from src.models.material import MaterialStatusReport
from src.utils.errors import MaterialNotFoundError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_CACHE_PREFIX = "material:status:"


def status_cache_key(material_id: str) -> str:
    return f"{_CACHE_PREFIX}{material_id}"


class MaterialStatusService:
    """Builds and caches :class:`MaterialStatusReport` payloads.

    Parameters
    ----------
    materials:
        Material persistence.
    jobs:
        Queue persistence, for the job snapshot.
    cache:
        Optional cache; without one every call reads the database.
    ttl:
        Seconds a report stays cached when no transition invalidates it.
    """

    def __init__(
        self,
        materials: IMaterialRepository,
        jobs: IJobRepository,
        cache: ICacheProvider | None = None,
        ttl: int = 300,
    ) -> None:
        self._materials = materials
        self._jobs = jobs
        self._cache = cache
        self._ttl = ttl

    async def get_status(self, material_id: str) -> MaterialStatusReport:
        """Return the processing status of *material_id*.

        Raises
        ------
        MaterialNotFoundError
            If no such material exists.
        """
        key = status_cache_key(material_id)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.debug("status_cache_hit", material_id=material_id)
                return MaterialStatusReport.model_validate_json(cached)

        material = await self._materials.get_material(material_id)
        if material is None:
            raise MaterialNotFoundError(message=f"Material {material_id} not found")
        job = await self._jobs.get_job_by_material(material_id)

        duration: float | None = None
        if material.processing_started_at and material.processing_completed_at:
            duration = (
                material.processing_completed_at - material.processing_started_at
            ).total_seconds()

        report = MaterialStatusReport(
            material_id=material.id,
            title=material.title,
            course_id=material.course_id,
            processing_status=material.processing_status,
            processing_error=material.processing_error,
            chunks_count=material.chunks_count,
            processed=material.processed,
            processing_started_at=material.processing_started_at,
            processing_completed_at=material.processing_completed_at,
            processing_duration_seconds=duration,
            queue_job=job,
        )
        if self._cache is not None:
            await self._cache.set(key, report.model_dump_json(), ttl=self._ttl)
        return report

    async def invalidate(self, material_id: str) -> None:
        """Drop the cached report for *material_id* (status-change hook)."""
        if self._cache is not None:
            await self._cache.delete(status_cache_key(material_id))
