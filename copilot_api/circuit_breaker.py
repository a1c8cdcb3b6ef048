"""Circuit breaker guarding the generation provider.

States:
- CLOSED: normal operation, calls pass through
- OPEN: provider unhealthy, calls rejected without a network round trip
- HALF_OPEN: recovery timeout elapsed, the next call is let through

Transitions:
- CLOSED -> OPEN: ``failure_threshold`` consecutive failures
- OPEN -> HALF_OPEN: after ``recovery_timeout`` seconds
- HALF_OPEN -> CLOSED: on success
- HALF_OPEN -> OPEN: on failure
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when the circuit is open and a call is rejected."""

    def __init__(self, breaker_name: str, time_remaining: float):
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit '{breaker_name}' is OPEN - service temporarily unavailable. "
            f"Retry in {time_remaining:.1f}s."
        )


@dataclass
class CircuitBreakerStats:
    """Snapshot of a circuit breaker."""

    state: CircuitState
    consecutive_failures: int
    total_failures: int
    total_successes: int
    rejected_calls: int
    last_failure_at: float | None


class CircuitBreaker:
    """Consecutive-failure circuit breaker."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Callable[[str, CircuitState, CircuitState], None] | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.on_state_change = on_state_change
        self._clock = clock
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._total_failures = 0
        self._total_successes = 0
        self._rejected = 0
        self._last_failure_time: float | None = None

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN -> HALF_OPEN once the timeout elapsed."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time is not None:
                if self._clock() - self._last_failure_time > self.recovery_timeout:
                    self._transition_to(CircuitState.HALF_OPEN)
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def time_remaining(self) -> float:
        """Seconds until an open circuit goes half-open."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._last_failure_time is None:
                return 0.0
            elapsed = self._clock() - self._last_failure_time
            return max(0.0, self.recovery_timeout - elapsed)

    def allow_request(self) -> bool:
        """Check whether a call may proceed; counts rejections."""
        with self._lock:
            if self.state == CircuitState.OPEN:
                self._rejected += 1
                return False
            return True

    def check(self) -> None:
        """Raise ``CircuitOpenError`` if the circuit refuses calls."""
        if not self.allow_request():
            raise CircuitOpenError(self.name, self.time_remaining())

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._total_successes += 1
            self._transition_to(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._total_failures += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.error(
                        "Circuit breaker opened due to repeated failures",
                        breaker=self.name,
                        failures=self._failures,
                    )
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker back to CLOSED with clean counters."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failures = 0
            self._total_failures = 0
            self._total_successes = 0
            self._rejected = 0
            self._last_failure_time = None

    def stats(self) -> CircuitBreakerStats:
        with self._lock:
            return CircuitBreakerStats(
                state=self.state,
                consecutive_failures=self._failures,
                total_failures=self._total_failures,
                total_successes=self._total_successes,
                rejected_calls=self._rejected,
                last_failure_at=self._last_failure_time,
            )

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.info(
            "Circuit breaker state change",
            breaker=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
        )
        if self.on_state_change:
            self.on_state_change(self.name, old_state, new_state)
