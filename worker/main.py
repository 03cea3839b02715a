"""RQ Worker entrypoint."""

import os
import platform
import sys

import structlog
from rq import SimpleWorker, Worker

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.config import get_settings  # noqa: E402
from api.logging import setup_logging  # noqa: E402
from api.sentry import init_sentry  # noqa: E402
from worker.redis import (  # noqa: E402
    QUEUE_DEFAULT,
    QUEUE_HIGH,
    QUEUE_LOW,
    get_redis_connection_bytes,
)

logger = structlog.get_logger(__name__)

QUEUES = [QUEUE_HIGH, QUEUE_DEFAULT, QUEUE_LOW]


def run_worker() -> None:
    """Start the RQ worker."""
    settings = get_settings()
    setup_logging()
    init_sentry()

    logger.info("worker_starting", env=settings.env, queues=QUEUES)

    redis_conn = get_redis_connection_bytes()

    # Use SimpleWorker on Windows (no os.fork() support)
    WorkerClass = SimpleWorker if platform.system() == "Windows" else Worker

    worker = WorkerClass(
        QUEUES,
        connection=redis_conn,
        name=f"effectiveness-worker-{os.getpid()}",
    )

    worker.work(logging_level=settings.log_level)


if __name__ == "__main__":
    run_worker()
