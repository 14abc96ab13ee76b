"""
Circuit breaker for the pricing source.
Stops hammering the retail prices API while it is failing; cache misses during
that window resolve as fetch failures instead of waiting on timeouts.
"""
from enum import Enum
import logging
import threading
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


FAILURE_THRESHOLD = 3  # Trip breaker after N consecutive failures
OPEN_STATE_DURATION = 60.0  # Seconds to remain OPEN before HALF_OPEN
HALF_OPEN_MAX_REQUESTS = 1  # Trial requests allowed in HALF_OPEN


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Transitions:
    - CLOSED -> OPEN: after `failure_threshold` consecutive failures
    - OPEN -> HALF_OPEN: once `open_duration` seconds have passed
    - HALF_OPEN -> CLOSED: on a successful trial request
    - HALF_OPEN -> OPEN: on a failed trial request

    Shared by concurrent workers, so every transition happens under a lock.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        open_duration: float = OPEN_STATE_DURATION,
        half_open_max_requests: int = HALF_OPEN_MAX_REQUESTS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize circuit breaker.

        Args:
            service_name: Name of the guarded service (e.g. "retail_prices")
            failure_threshold: Consecutive failures before opening
            open_duration: Seconds to remain OPEN before HALF_OPEN
            half_open_max_requests: Trial requests allowed in HALF_OPEN
            clock: Monotonic time source, injectable for tests
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.half_open_max_requests = half_open_max_requests
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.half_open_requests = 0

    def allow_request(self) -> bool:
        """
        Check if a request may go upstream.

        Returns:
            True if the request should proceed, False while the circuit is open
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self.opened_at < self.open_duration:
                    return False
                logger.warning(
                    f"Circuit breaker for {self.service_name}: OPEN -> HALF_OPEN (testing recovery)"
                )
                self._state = CircuitState.HALF_OPEN
                self.half_open_requests = 0

            if self._state == CircuitState.HALF_OPEN:
                if self.half_open_requests >= self.half_open_max_requests:
                    return False
                self.half_open_requests += 1
            return True

    def record_success(self) -> None:
        """Reset the failure count; closes the circuit after a successful trial request."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    f"Circuit breaker for {self.service_name}: HALF_OPEN -> CLOSED (service recovered)"
                )
                self._state = CircuitState.CLOSED
                self.opened_at = None
                self.half_open_requests = 0
            self.failure_count = 0

    def record_failure(self) -> None:
        """Count a failure; opens the circuit at the threshold or on a failed trial request."""
        with self._lock:
            self.failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    f"Circuit breaker for {self.service_name}: HALF_OPEN -> OPEN (service still failing)"
                )
                self._open()
            elif self._state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                logger.warning(
                    f"Circuit breaker for {self.service_name}: "
                    f"CLOSED -> OPEN ({self.failure_count} consecutive failures)"
                )
                self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self.opened_at = self._clock()
        self.half_open_requests = 0

    def current_state(self) -> CircuitState:
        with self._lock:
            return self._state


_circuit_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(service_name: str) -> CircuitBreaker:
    """
    Get or create the process-wide circuit breaker for a service.

    Args:
        service_name: Name of the service

    Returns:
        CircuitBreaker instance for the service
    """
    with _registry_lock:
        if service_name not in _circuit_breakers:
            _circuit_breakers[service_name] = CircuitBreaker(service_name)
        return _circuit_breakers[service_name]


def reset_circuit_breakers() -> None:
    """Forget all breakers (test isolation)."""
    with _registry_lock:
        _circuit_breakers.clear()
