"""Health, readiness and metrics endpoints."""

import asyncio
import time
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel, Field
from sqlalchemy import text

from api.database import get_session_maker
from api.metrics import get_metrics, get_metrics_content_type
from worker.queue import get_job_queue

router = APIRouter(tags=["Health"])
logger = structlog.get_logger()

VERSION = "0.1.0"

# Track server start time for uptime calculation
_server_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status: healthy, degraded, unhealthy")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str = Field(..., description="API version")
    uptime_seconds: int = Field(..., description="Server uptime in seconds")


class DependencyCheck(BaseModel):
    """Individual dependency check result."""

    status: str = Field(..., description="Status: healthy, unhealthy")
    latency_ms: float | None = Field(None, description="Check latency in milliseconds")
    error: str | None = Field(None, description="Error message if unhealthy")


class ReadyResponse(HealthResponse):
    """Readiness check response with dependency status."""

    checks: dict[str, DependencyCheck] = Field(..., description="Individual dependency checks")


def _uptime() -> int:
    return int(time.time() - _server_start_time)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns healthy if the API is running. Does not check dependencies.
    Use /ready for full dependency checks.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC).isoformat(),
        version=VERSION,
        uptime_seconds=_uptime(),
    )


async def _check_database() -> DependencyCheck:
    try:
        start = time.perf_counter()
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        return DependencyCheck(status="healthy", latency_ms=round(latency_ms, 2))
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return DependencyCheck(status="unhealthy", error=str(e))


async def _check_redis() -> DependencyCheck:
    start = time.perf_counter()
    try:
        # Sync redis client; keep it off the event loop
        ok = await asyncio.to_thread(get_job_queue().ping)
    except Exception as e:
        logger.warning("redis_health_check_failed", error=str(e))
        return DependencyCheck(status="unhealthy", error=str(e))
    if not ok:
        return DependencyCheck(status="unhealthy", error="ping failed")
    latency_ms = (time.perf_counter() - start) * 1000
    return DependencyCheck(status="healthy", latency_ms=round(latency_ms, 2))


@router.get("/ready", response_model=ReadyResponse)
async def readiness_check(response: Response) -> ReadyResponse:
    """
    Readiness check with dependency verification.

    Checks:
    - Database connectivity and latency
    - Redis connectivity and latency
    """
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }

    unhealthy_count = sum(1 for c in checks.values() if c.status == "unhealthy")
    if unhealthy_count == 0:
        overall_status = "healthy"
    elif unhealthy_count < len(checks):
        overall_status = "degraded"
    else:
        overall_status = "unhealthy"

    if overall_status != "healthy":
        response.status_code = 503

    return ReadyResponse(
        status=overall_status,
        timestamp=datetime.now(UTC).isoformat(),
        version=VERSION,
        uptime_seconds=_uptime(),
        checks=checks,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
