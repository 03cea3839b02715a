"""Job service for managing background jobs from the API."""

import uuid
from functools import lru_cache

from api.config import get_settings
from api.models import EffectivenessRun
from worker.queue import JobQueue, QueuePriority, get_job_queue
from worker.tasks.effectiveness import run_effectiveness_sync


class JobService:
    """Service for managing background jobs."""

    def __init__(self, queue: JobQueue | None = None):
        self._queue = queue

    @property
    def queue(self) -> JobQueue:
        if self._queue is None:
            self._queue = get_job_queue()
        return self._queue

    def enqueue_effectiveness_run(
        self,
        run: EffectivenessRun,
        priority: QueuePriority = QueuePriority.DEFAULT,
    ) -> str:
        """
        Enqueue an effectiveness run group (client plus competitors).

        Returns:
            The job ID
        """
        job = self.queue.enqueue(
            run_effectiveness_sync,
            str(run.id),
            priority=priority,
            job_id=self.get_effectiveness_job_id(run.id),
            job_timeout=get_settings().effectiveness_job_timeout,
            meta={
                "run_id": str(run.id),
                "client_id": str(run.client_id),
            },
        )
        return job.id  # type: ignore[no-any-return]

    def get_effectiveness_job_id(self, run_id: uuid.UUID) -> str:
        return f"effectiveness-{run_id}"


@lru_cache
def get_job_service() -> JobService:
    return JobService()
