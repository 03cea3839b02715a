"""
In-process circuit breaker for the classification provider.

States:
  - CLOSED: calls pass through
  - OPEN: too many consecutive failures, calls short-circuit to a fallback
  - HALF_OPEN: after ``reset_seconds``, a single trial call is let through

State lives in the worker process. One rq job scores a whole run group, so
a provider outage trips the breaker for the rest of that group instead of
every remaining scorer waiting out its own retries.
"""

import time
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._state = CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._state == OPEN and self._clock() - self._opened_at >= self.reset_seconds:
            self._state = HALF_OPEN
            self._trial_in_flight = False
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def retry_after(self) -> float:
        if self.state != OPEN:
            return 0.0
        return max(0.0, self.reset_seconds - (self._clock() - self._opened_at))

    def allow(self) -> bool:
        """Whether a call may go out now. Claims the trial slot when half-open."""
        current = self.state
        if current == CLOSED:
            return True
        if current == HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def abandon(self) -> None:
        """A call ended without an outcome (cancelled); free the half-open trial."""
        self._trial_in_flight = False

    def record_success(self) -> None:
        if self._state != CLOSED:
            logger.info("circuit_closed", breaker=self.name)
        self._state = CLOSED
        self._failures = 0
        self._trial_in_flight = False

    def record_failure(self, error: str = "") -> None:
        self._failures += 1
        self._trial_in_flight = False
        if self._state == HALF_OPEN or self._failures >= self.failure_threshold:
            if self._state != OPEN:
                logger.warning(
                    "circuit_opened",
                    breaker=self.name,
                    failures=self._failures,
                    threshold=self.failure_threshold,
                    error=error,
                )
            self._state = OPEN
            self._opened_at = self._clock()
        else:
            logger.info(
                "circuit_failure",
                breaker=self.name,
                failures=self._failures,
                threshold=self.failure_threshold,
            )
