"""Background polling loop that drives the processing queue.

One ``QueueWorker`` runs per process, either inside the FastAPI lifespan
or as the standalone ``python -m src.cli worker`` command.  Each tick
sweeps expired leases and then drains every due job.  Unexpected
failures (the database going away, for instance) stretch the poll
interval by ``backoff_multiplier`` up to ``max_backoff``; the first clean
tick restores the configured interval.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import structlog

from src.services.queue.processing_queue import ProcessingQueueManager
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_MIN_POLL_INTERVAL = 1.0


class QueueWorker:
    """Polls a :class:`ProcessingQueueManager` until stopped."""

    def __init__(
        self,
        queue: ProcessingQueueManager,
        poll_interval: float = 5.0,
        backoff_multiplier: float = 1.5,
        max_backoff: float = 60.0,
    ) -> None:
        self._queue = queue
        self._poll_interval = max(poll_interval, _MIN_POLL_INTERVAL)
        self._backoff_multiplier = max(backoff_multiplier, 1.0)
        self._max_backoff = max(max_backoff, self._poll_interval)
        self._current_backoff = self._poll_interval
        self._consecutive_errors = 0
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop on the running event loop (idempotent)."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="lectern-queue-worker")
        _logger.info("queue_worker_started", poll_interval=self._poll_interval)

    async def stop(self) -> None:
        """Signal the loop to exit and wait for the current tick (idempotent)."""
        if self._task is None:
            return
        self._stop_event.set()
        task, self._task = self._task, None
        try:
            await task
        except asyncio.CancelledError:
            pass
        _logger.info("queue_worker_stopped")

    async def trigger(self) -> int:
        """Run one tick now and return the number of jobs processed."""
        return await self.tick()

    async def tick(self) -> int:
        reclaimed = await self._queue.reclaim_expired_leases()
        if reclaimed:
            _logger.warning("leases_reclaimed", count=reclaimed)
        return await self._queue.process_all()

    def set_poll_interval(self, seconds: float) -> None:
        self._poll_interval = max(seconds, _MIN_POLL_INTERVAL)
        self._max_backoff = max(self._max_backoff, self._poll_interval)
        if self._consecutive_errors == 0:
            self._current_backoff = self._poll_interval

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "poll_interval": self._poll_interval,
            "current_backoff": self._current_backoff,
            "consecutive_errors": self._consecutive_errors,
        }

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                processed = await self.tick()
            except Exception as exc:
                self._consecutive_errors += 1
                self._current_backoff = min(
                    self._current_backoff * self._backoff_multiplier,
                    self._max_backoff,
                )
                _logger.error(
                    "queue_worker_tick_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    consecutive_errors=self._consecutive_errors,
                    next_poll_s=self._current_backoff,
                )
            else:
                if processed:
                    _logger.info("queue_worker_tick", processed=processed)
                self._consecutive_errors = 0
                self._current_backoff = self._poll_interval

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._current_backoff)
