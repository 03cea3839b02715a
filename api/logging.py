"""Structured logging configuration shared by the API and the worker."""

import logging
import sys
from typing import Any

import structlog

from api.config import get_settings

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "asyncio", "rq.worker")


def setup_logging() -> None:
    """Configure structlog once per process."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.is_production:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=not settings.is_test,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run_context(run_id: str, client_id: str | None = None) -> None:
    """Attach run identifiers to every log line emitted by the current task."""
    context: dict[str, str] = {"run_id": run_id}
    if client_id:
        context["client_id"] = client_id
    structlog.contextvars.bind_contextvars(**context)
