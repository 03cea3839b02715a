"""Hard ceiling around a single scorer call."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from api.metrics import record_scorer_duration, record_scorer_failure, record_scorer_timeout
from worker.scoring.types import CriterionResult

logger = structlog.get_logger(__name__)

ScorerCall = Callable[[], Awaitable[CriterionResult]]


def _drain(task: asyncio.Task) -> None:
    # Retrieve the outcome of an abandoned task so asyncio does not warn about it
    if not task.cancelled():
        task.exception()


async def with_timeout(
    scorer_fn: ScorerCall,
    ceiling_seconds: float,
    *,
    criterion: str,
    fallback_score: float,
) -> CriterionResult:
    """
    Run ``scorer_fn`` and return within ``ceiling_seconds``.

    The scorer runs as its own task and is waited on with ``asyncio.wait``,
    so a scorer that swallows cancellation cannot hold the caller past the
    ceiling. On timeout the task is cancelled but not awaited and a neutral
    policy score is returned. An exception from the scorer becomes an
    ``analysis_failed`` result.
    """
    started = time.perf_counter()
    task = asyncio.ensure_future(scorer_fn())

    try:
        done, _ = await asyncio.wait({task}, timeout=ceiling_seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task not in done:
        task.cancel()
        task.add_done_callback(_drain)
        logger.warning(
            "scorer_timeout",
            criterion=criterion,
            timeout_seconds=ceiling_seconds,
            fallback_score=fallback_score,
        )
        record_scorer_timeout(criterion)
        return CriterionResult.timed_out(criterion, fallback_score, ceiling_seconds)

    record_scorer_duration(criterion, time.perf_counter() - started)

    if task.cancelled():
        return CriterionResult.failed(criterion, "scorer was cancelled", criterion)

    error = task.exception()
    if error is not None:
        logger.warning(
            "scorer_exception",
            criterion=criterion,
            error=str(error),
            error_type=type(error).__name__,
        )
        record_scorer_failure(criterion)
        return CriterionResult.failed(criterion, error, criterion)

    return task.result()
