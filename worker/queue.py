"""Job queue service for managing background jobs."""

import uuid
from enum import Enum
from functools import lru_cache
from typing import Any

from redis.exceptions import RedisError
from rq import Queue
from rq.job import Job

from worker.redis import (
    JOB_RESULT_TTL,
    QUEUE_DEFAULT,
    QUEUE_HIGH,
    QUEUE_LOW,
    get_redis_connection_bytes,
)


class QueuePriority(str, Enum):
    """Queue priority levels."""

    HIGH = "high"
    DEFAULT = "default"
    LOW = "low"


class JobQueue:
    """Service for managing RQ job queues."""

    def __init__(self) -> None:
        self._conn = get_redis_connection_bytes()
        self._queues = {
            QueuePriority.HIGH: Queue(QUEUE_HIGH, connection=self._conn),
            QueuePriority.DEFAULT: Queue(QUEUE_DEFAULT, connection=self._conn),
            QueuePriority.LOW: Queue(QUEUE_LOW, connection=self._conn),
        }

    def get_queue(self, priority: QueuePriority = QueuePriority.DEFAULT) -> Queue:
        return self._queues[priority]

    def enqueue(
        self,
        func: Any,
        *args: Any,
        priority: QueuePriority = QueuePriority.DEFAULT,
        job_id: str | None = None,
        job_timeout: int = 1800,
        result_ttl: int = JOB_RESULT_TTL,
        meta: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Job:
        """
        Enqueue a job for background processing.

        Args:
            func: The function to execute
            *args: Positional arguments for the function
            priority: Queue priority (high, default, low)
            job_id: Optional custom job ID
            job_timeout: Job timeout in seconds
            result_ttl: How long to keep results
            meta: Additional metadata to store with job
            **kwargs: Keyword arguments for the function

        Returns:
            The enqueued RQ Job
        """
        queue = self.get_queue(priority)
        return queue.enqueue(
            func,
            *args,
            job_id=job_id or str(uuid.uuid4()),
            job_timeout=job_timeout,
            result_ttl=result_ttl,
            meta=meta or {},
            **kwargs,
        )

    def ping(self) -> bool:
        try:
            return bool(self._conn.ping())
        except RedisError:
            return False


@lru_cache
def get_job_queue() -> JobQueue:
    """Shared queue instance, created on first use."""
    return JobQueue()
