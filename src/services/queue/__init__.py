"""Durable processing queue and its background worker."""

from src.services.queue.processing_queue import ProcessingQueueManager
from src.services.queue.queue_worker import QueueWorker

__all__ = ["ProcessingQueueManager", "QueueWorker"]
