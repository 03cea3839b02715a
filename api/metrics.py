"""Prometheus metrics for monitoring and observability."""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

# Request metrics
REQUEST_COUNT = Counter(
    "effectiveness_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "effectiveness_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUEST_IN_PROGRESS = Gauge(
    "effectiveness_http_requests_in_progress",
    "HTTP requests currently being processed",
    ["method", "endpoint"],
)

# Error metrics
ERROR_COUNT = Counter(
    "effectiveness_errors_total",
    "Total application errors",
    ["error_type", "endpoint"],
)

# Business metrics
RUNS_TOTAL = Counter(
    "effectiveness_runs_total",
    "Total effectiveness runs",
    ["status"],
)

RUNS_IN_PROGRESS = Gauge(
    "effectiveness_runs_in_progress",
    "Effectiveness runs currently in progress",
)

REFRESH_REJECTED_TOTAL = Counter(
    "effectiveness_refresh_rejected_total",
    "Refresh requests rejected by policy",
    ["reason"],
)

SCORER_DURATION = Histogram(
    "effectiveness_scorer_duration_seconds",
    "Criterion scorer duration in seconds",
    ["criterion"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 45.0, 60.0],
)

SCORER_TIMEOUTS_TOTAL = Counter(
    "effectiveness_scorer_timeouts_total",
    "Criterion scorers that exceeded their ceiling",
    ["criterion"],
)

SCORER_FAILURES_TOTAL = Counter(
    "effectiveness_scorer_failures_total",
    "Criterion scorers that raised",
    ["criterion"],
)

INSIGHTS_TOTAL = Counter(
    "effectiveness_insights_total",
    "Insight generation attempts",
    ["status"],
)

# Job metrics
JOB_PROCESSING_TIME = Histogram(
    "effectiveness_job_processing_seconds",
    "Job processing time in seconds",
    ["job_type"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
# Content-addressed screenshot paths: /{shard}/{sha256}.png
HASH_PATH_PATTERN = re.compile(r"/[0-9a-f]{2}/[0-9a-f]{64}(\.\w+)?", re.IGNORECASE)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    metrics: bytes = generate_latest()
    return metrics


def get_metrics_content_type() -> str:
    content_type: str = CONTENT_TYPE_LATEST
    return content_type


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    # Paths to exclude from metrics
    EXCLUDE_PATHS = {"/metrics", "/health", "/ready", "/favicon.ico"}

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in self.EXCLUDE_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=str(response.status_code),
            ).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            return response

        except Exception as e:
            ERROR_COUNT.labels(error_type=type(e).__name__, endpoint=endpoint).inc()
            raise

        finally:
            REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()

    def _normalize_path(self, path: str) -> str:
        """Normalize path by replacing UUIDs and IDs with placeholders."""
        path = HASH_PATH_PATTERN.sub("/{hash}", path)
        path = UUID_PATTERN.sub("{id}", path)
        return re.sub(r"/\d+(/|$)", r"/{id}\1", path)


# Helper functions for recording business metrics


def record_run_started() -> None:
    RUNS_TOTAL.labels(status="started").inc()
    RUNS_IN_PROGRESS.inc()


def record_run_completed(success: bool = True) -> None:
    RUNS_TOTAL.labels(status="completed" if success else "failed").inc()
    RUNS_IN_PROGRESS.dec()


def record_refresh_rejected(reason: str) -> None:
    REFRESH_REJECTED_TOTAL.labels(reason=reason).inc()


def record_scorer_duration(criterion: str, duration: float) -> None:
    SCORER_DURATION.labels(criterion=criterion).observe(duration)


def record_scorer_timeout(criterion: str) -> None:
    SCORER_TIMEOUTS_TOTAL.labels(criterion=criterion).inc()


def record_scorer_failure(criterion: str) -> None:
    SCORER_FAILURES_TOTAL.labels(criterion=criterion).inc()


def record_insights(success: bool) -> None:
    INSIGHTS_TOTAL.labels(status="success" if success else "failed").inc()


def record_job_duration(job_type: str, duration: float) -> None:
    """Record job processing duration."""
    JOB_PROCESSING_TIME.labels(job_type=job_type).observe(duration)
