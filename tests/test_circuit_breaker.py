"""Tests for the provider circuit breaker."""

import pytest

from copilot_api.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker("test", failure_threshold=3, recovery_timeout=60, clock=clock)


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    def test_starts_closed(self, breaker: CircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request() is True

    def test_opens_after_threshold(self, breaker: CircuitBreaker) -> None:
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open is True

    def test_success_resets_failure_count(self, breaker: CircuitBreaker) -> None:
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats().consecutive_failures == 1

    def test_open_circuit_rejects_calls(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()
        clock.advance(20)

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.check()

        assert exc_info.value.time_remaining == pytest.approx(40)
        assert breaker.stats().rejected_calls == 1

    def test_half_open_after_timeout(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()
        clock.advance(61)

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request() is True

    def test_half_open_success_closes(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()
        clock.advance(61)
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()
        clock.advance(61)
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_state_change_callback(self, clock: FakeClock) -> None:
        changes: list[tuple[CircuitState, CircuitState]] = []
        breaker = CircuitBreaker(
            "cb",
            failure_threshold=1,
            recovery_timeout=10,
            clock=clock,
            on_state_change=lambda _name, old, new: changes.append((old, new)),
        )

        breaker.record_failure()
        clock.advance(11)
        _ = breaker.state
        breaker.record_success()

        assert changes == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]

    def test_reset(self, breaker: CircuitBreaker) -> None:
        for _ in range(3):
            breaker.record_failure()
        breaker.reset()

        stats = breaker.stats()
        assert stats.state == CircuitState.CLOSED
        assert stats.total_failures == 0
        assert stats.last_failure_at is None
