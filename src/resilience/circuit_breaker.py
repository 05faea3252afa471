"""Circuit breaker implementation with explicit state management."""

import inspect
import time
from typing import Any, Callable, Optional, Protocol

from src.models.data_models import CircuitSnapshot, CircuitState
from src.monitoring.logger import StructuredLogger


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        """Return current monotonic time in seconds."""
        return time.monotonic()


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, message: str = "Circuit breaker is OPEN"):
        super().__init__(message)


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Guards a single shared dependency:
    - Opens once consecutive failures reach failure_threshold
    - Rejects calls while open, without invoking the wrapped function
    - After recovery_timeout, lets the next call through in HALF_OPEN
    - Closes on a successful call; failures keep counting otherwise

    Failures are counted consecutively since the last success.
    monitoring_period is kept for configuration compatibility but does not
    take part in state transitions.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        monitoring_period: float = 10.0,
        name: str = "default",
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before allowing a trial call
            monitoring_period: Reserved, not used by state transitions
            name: Identifier used in log events
            clock: Clock interface for time management (defaults to MonotonicClock)
            logger: Optional structured logger for state changes
        """
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be positive, got: {failure_threshold}")
        if recovery_timeout < 0:
            raise ValueError(f"recovery_timeout must not be negative, got: {recovery_timeout}")

        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.monitoring_period = monitoring_period
        self.name = name
        self.clock = clock or MonotonicClock()
        self.logger = logger or StructuredLogger()

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, func: Callable[[], Any]) -> Any:
        """
        Run func through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open and still cooling down
            Exception: Any error raised by func, after bookkeeping
        """
        if self._state == CircuitState.OPEN:
            elapsed = self.clock.now() - self._last_failure_time
            if elapsed > self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError()

        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._failures = 0
            self._transition(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._failures = 0

    def _on_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = self.clock.now()

        if self._failures >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        self.logger.circuit_breaker_state(self.name, new_state.value, self._failures)

    def get_state(self) -> CircuitSnapshot:
        """Return a read-only snapshot of state, failure count and last failure time."""
        return CircuitSnapshot(
            state=self._state,
            failures=self._failures,
            last_failure_time=self._last_failure_time,
        )

    def reset(self) -> None:
        """Reset circuit breaker to CLOSED (useful for testing)."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time = None
