"""Tests for the classifier circuit breaker."""

from worker.classification.breaker import CLOSED, HALF_OPEN, OPEN, CircuitBreaker


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def tripped(clock: FakeClock, threshold: int = 3) -> CircuitBreaker:
    breaker = CircuitBreaker("openai", failure_threshold=threshold, reset_seconds=30, clock=clock)
    for _ in range(threshold):
        breaker.record_failure("503")
    return breaker


class TestCircuitBreaker:
    def test_starts_closed(self):
        breaker = CircuitBreaker("openai")
        assert breaker.state == CLOSED
        assert breaker.allow()
        assert breaker.retry_after() == 0.0

    def test_opens_at_threshold(self):
        clock = FakeClock()
        breaker = CircuitBreaker("openai", failure_threshold=3, reset_seconds=30, clock=clock)

        breaker.record_failure("503")
        breaker.record_failure("503")
        assert breaker.state == CLOSED
        assert breaker.failure_count == 2

        breaker.record_failure("503")
        assert breaker.state == OPEN
        assert not breaker.allow()

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker("openai", failure_threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CLOSED
        assert breaker.failure_count == 1

    def test_retry_after_counts_down(self):
        clock = FakeClock()
        breaker = tripped(clock)
        clock.now += 10
        assert breaker.retry_after() == 20

    def test_half_open_allows_one_trial(self):
        clock = FakeClock()
        breaker = tripped(clock)
        clock.now += 30

        assert breaker.state == HALF_OPEN
        assert breaker.allow()
        assert not breaker.allow()

    def test_trial_success_closes(self):
        clock = FakeClock()
        breaker = tripped(clock)
        clock.now += 30
        breaker.allow()

        breaker.record_success()

        assert breaker.state == CLOSED
        assert breaker.failure_count == 0
        assert breaker.allow()

    def test_trial_failure_reopens(self):
        clock = FakeClock()
        breaker = tripped(clock)
        clock.now += 30
        breaker.allow()

        breaker.record_failure("still down")

        assert breaker.state == OPEN
        assert breaker.retry_after() == 30

    def test_abandoned_trial_frees_slot(self):
        clock = FakeClock()
        breaker = tripped(clock)
        clock.now += 30
        breaker.allow()

        breaker.abandon()

        assert breaker.allow()
