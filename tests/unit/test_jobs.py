"""Tests for job enqueueing."""

import uuid
from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from api.config import get_settings
from api.models import EffectivenessRun
from api.services.job_service import JobService
from worker.queue import JobQueue, QueuePriority
from worker.tasks.effectiveness import run_effectiveness_sync


class TestJobService:
    def test_enqueue_effectiveness_run(self, job_queue):
        run = EffectivenessRun(id=uuid.uuid4(), client_id=uuid.uuid4(), status="pending")

        job_id = JobService(queue=job_queue).enqueue_effectiveness_run(run)

        assert job_id == "job-123"
        job_queue.enqueue.assert_called_once_with(
            run_effectiveness_sync,
            str(run.id),
            priority=QueuePriority.DEFAULT,
            job_id=f"effectiveness-{run.id}",
            job_timeout=get_settings().effectiveness_job_timeout,
            meta={"run_id": str(run.id), "client_id": str(run.client_id)},
        )

    def test_job_id_is_deterministic(self):
        run_id = uuid.uuid4()
        service = JobService(queue=MagicMock())
        assert service.get_effectiveness_job_id(run_id) == f"effectiveness-{run_id}"


class TestJobQueue:
    @staticmethod
    def build(conn: MagicMock) -> JobQueue:
        with (
            patch("worker.queue.get_redis_connection_bytes", return_value=conn),
            patch("worker.queue.Queue") as queue_cls,
        ):
            queue_cls.side_effect = lambda name, connection: MagicMock(name=name)
            return JobQueue()

    def test_enqueue_routes_by_priority(self):
        queue = self.build(MagicMock())

        queue.enqueue(print, "a", priority=QueuePriority.HIGH, job_id="j1", meta={"k": "v"})

        high = queue.get_queue(QueuePriority.HIGH)
        high.enqueue.assert_called_once()
        assert high.enqueue.call_args.kwargs["job_id"] == "j1"
        assert high.enqueue.call_args.kwargs["meta"] == {"k": "v"}
        queue.get_queue(QueuePriority.DEFAULT).enqueue.assert_not_called()

    def test_ping(self):
        conn = MagicMock()
        conn.ping.return_value = True
        assert self.build(conn).ping() is True

    def test_ping_swallows_redis_errors(self):
        conn = MagicMock()
        conn.ping.side_effect = RedisConnectionError("refused")
        assert self.build(conn).ping() is False
