"""Unit tests for QueueWorker: start/stop, ticks and error backoff."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.queue.queue_worker import QueueWorker
from src.utils.errors import PersistenceError


@pytest.fixture
def queue() -> MagicMock:
    mock = MagicMock(spec=ProcessingQueueManager)
    mock.reclaim_expired_leases = AsyncMock(return_value=0)
    mock.process_all = AsyncMock(return_value=0)
    return mock


class TestQueueWorker:
    def test_poll_interval_has_floor(self, queue) -> None:
        worker = QueueWorker(queue, poll_interval=0.01)
        assert worker.get_status()["poll_interval"] == 1.0

        worker.set_poll_interval(0.5)
        assert worker.get_status()["poll_interval"] == 1.0
        worker.set_poll_interval(12)
        assert worker.get_status()["current_backoff"] == 12

    @pytest.mark.asyncio
    async def test_trigger_reclaims_then_drains(self, queue) -> None:
        queue.reclaim_expired_leases.return_value = 1
        queue.process_all.return_value = 3

        assert await QueueWorker(queue).trigger() == 3
        queue.reclaim_expired_leases.assert_awaited_once()
        queue.process_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, queue) -> None:
        worker = QueueWorker(queue, poll_interval=1)
        worker.start()
        worker.start()
        await asyncio.sleep(0.05)

        assert worker.is_running is True
        assert queue.process_all.await_count == 1

        await worker.stop()
        await worker.stop()
        assert worker.is_running is False
        assert worker.get_status()["is_running"] is False

    @pytest.mark.asyncio
    async def test_tick_errors_grow_backoff_and_keep_running(self, queue) -> None:
        queue.process_all.side_effect = PersistenceError(message="database is locked")
        worker = QueueWorker(queue, poll_interval=1, backoff_multiplier=2, max_backoff=3)
        worker.start()
        await asyncio.sleep(0.05)

        status = worker.get_status()
        assert status["is_running"] is True
        assert status["consecutive_errors"] == 1
        assert status["current_backoff"] == 2

        await worker.stop()

    @pytest.mark.asyncio
    async def test_clean_tick_resets_backoff(self, queue) -> None:
        queue.process_all.side_effect = [PersistenceError(), 0]
        worker = QueueWorker(queue, poll_interval=1, backoff_multiplier=1.5)
        await worker.stop()

        worker.start()
        await asyncio.sleep(0.05)
        assert worker.get_status()["consecutive_errors"] == 1
        await worker.stop()

        worker.start()
        await asyncio.sleep(0.05)
        status = worker.get_status()
        assert status["consecutive_errors"] == 0
        assert status["current_backoff"] == 1
        await worker.stop()
