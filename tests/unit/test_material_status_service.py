"""Unit tests for MaterialStatusService and MemoryCacheProvider."""

from __future__ import annotations

import pytest

from src.models.material import MaterialStatus
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.services.material_status_service import MaterialStatusService, status_cache_key
from src.utils.errors import MaterialNotFoundError


@pytest.fixture
def cache() -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=10, ttl=60)


@pytest.fixture
def service(material_repo, job_repo, cache) -> MaterialStatusService:
    return MaterialStatusService(material_repo, job_repo, cache=cache, ttl=60)


class TestMemoryCacheProvider:
    @pytest.mark.asyncio
    async def test_set_get_delete(self, cache) -> None:
        assert await cache.get("k") is None
        await cache.set("k", "v")
        assert await cache.get("k") == "v"
        assert await cache.exists("k") is True

        await cache.delete("k")
        await cache.delete("k")
        assert await cache.exists("k") is False
        assert cache.stats() == {"hits": 1, "misses": 1, "size": 0}

    @pytest.mark.asyncio
    async def test_evicts_beyond_max_size(self) -> None:
        small = MemoryCacheProvider(max_size=2, ttl=60)
        for key in ("a", "b", "c"):
            await small.set(key, key)
        assert small.stats()["size"] == 2


class TestMaterialStatusService:
    @pytest.mark.asyncio
    async def test_unknown_material_raises(self, service) -> None:
        with pytest.raises(MaterialNotFoundError):
            await service.get_status("ghost")

    @pytest.mark.asyncio
    async def test_report_includes_job_and_duration(self, service, material_repo, job_repo, clock) -> None:
        await material_repo.create_material("m1", "Week 1", "https://x/1.pdf", "cs101")
        await job_repo.create_job_if_absent("j1", "m1", 3, clock())
        await material_repo.mark_processing("m1", clock())
        clock.advance(12.5)
        await material_repo.mark_completed("m1", 9, clock())

        report = await service.get_status("m1")

        assert report.processing_status == MaterialStatus.COMPLETED
        assert report.chunks_count == 9
        assert report.processed is True
        assert report.processing_duration_seconds == pytest.approx(12.5)
        assert report.queue_job.id == "j1"

    @pytest.mark.asyncio
    async def test_report_is_cached_until_invalidated(self, service, material_repo, cache, clock) -> None:
        await material_repo.create_material("m1", "Week 1", "https://x/1.pdf", "cs101")

        first = await service.get_status("m1")
        assert first.processing_status == MaterialStatus.PENDING
        assert await cache.exists(status_cache_key("m1"))

        await material_repo.mark_queued("m1")
        assert (await service.get_status("m1")).processing_status == MaterialStatus.PENDING

        await service.invalidate("m1")
        assert (await service.get_status("m1")).processing_status == MaterialStatus.QUEUED

    @pytest.mark.asyncio
    async def test_works_without_cache(self, material_repo, job_repo) -> None:
        service = MaterialStatusService(material_repo, job_repo)
        await material_repo.create_material("m1", "Week 1", "https://x/1.pdf", "cs101")
        assert (await service.get_status("m1")).queue_job is None
        await service.invalidate("m1")
