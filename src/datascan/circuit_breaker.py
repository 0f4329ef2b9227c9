"""Circuit breaker guarding outbound alert delivery."""

import logging
import threading
from enum import Enum
from time import monotonic
from typing import Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # deliveries flow
    OPEN = "open"  # deliveries skipped
    HALF_OPEN = "half_open"  # one trial delivery allowed


class CircuitBreaker:
    """Stops calling a failing receiver until a cool-down has passed.

    Usage:
        breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60)

        if breaker.allow_request():
            ok = deliver()
            breaker.record_success() if ok else breaker.record_failure()
    """

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 60.0, name: str = "default"):
        """Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening circuit.
            reset_timeout: Seconds to wait before allowing a trial call.
            name: Name for logging purposes.
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        """Must be called with lock held."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if monotonic() - self._opened_at >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info(f"Circuit breaker '{self.name}' HALF_OPEN")
        return self._state

    def allow_request(self) -> bool:
        """Check whether a delivery may be attempted now."""
        with self._lock:
            state = self._current_state()
            if state == CircuitState.CLOSED:
                return True
            if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Circuit breaker '{self.name}' CLOSED after successful delivery")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            reopen = self._state == CircuitState.HALF_OPEN
            if reopen or self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit breaker '{self.name}' OPEN after {self._failure_count} failure(s)"
                    )
                self._state = CircuitState.OPEN
                self._opened_at = monotonic()
                self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._trial_in_flight = False
