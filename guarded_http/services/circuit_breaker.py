"""
CircuitBreaker - Stops dispatching requests after repeated failures.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Too many consecutive failures, requests are blocked

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are recorded
- OPEN → CLOSED: On the first check after the cooldown has elapsed

There is no probing half-open state: once the cooldown expires the
breaker closes outright and the failure count starts over.
"""

import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    cooldown: timedelta = timedelta(seconds=60)  # Time before closing again


class CircuitBreaker:
    """
    Circuit breaker gating every request of a client.

    Usage:
        cb = CircuitBreaker()

        if cb.check_open():
            raise CircuitOpenError(cb.get_time_until_reset() or 0)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except HttpClientError:
            cb.record_failure()
            raise
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._last_failure_time: float | None = None

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for the cooldown transition."""
        if self._state == CircuitState.OPEN and self._cooldown_elapsed():
            self._close()
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def check_open(self) -> bool:
        """Return True if the request must be rejected."""
        return self.state == CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful request."""
        self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed request."""
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.config.failure_threshold
        ):
            self._open()

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at > self.config.cooldown.total_seconds()

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            f"[CircuitBreaker] Circuit opened after {self._failure_count} failures"
        )

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        logger.info("[CircuitBreaker] Circuit closed after cooldown")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._last_failure_time = None
        logger.info("[CircuitBreaker] Circuit manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until the circuit closes again."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return None

        remaining = self._opened_at + self.config.cooldown.total_seconds() - self._clock()
        return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.config.failure_threshold,
            "last_failure": self._last_failure_time,
            "opened_at": self._opened_at,
            "time_until_reset": self.get_time_until_reset(),
        }
