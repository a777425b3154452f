"""Per-backend circuit breaker.

Provides one breaker per delivery backend with:
- Consecutive-failure threshold
- Cooldown before the backend is tried again
- Optional single-probe HALF_OPEN recovery
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..config import ConfigurationError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Backend failing, skip it
    HALF_OPEN = "HALF_OPEN"  # One probe in flight (probe mode only)


@dataclass
class CircuitBreakerConfig:
    """Configuration for a backend circuit breaker."""

    threshold: int = 3  # Consecutive failures before opening
    timeout: float = 10.0  # Seconds after the last failure before retrying
    half_open_probe: bool = False  # Admit a single probe instead of fully closing

    def __post_init__(self):
        if self.threshold < 1:
            raise ConfigurationError(f"Breaker threshold must be at least 1, got {self.threshold}")
        if self.timeout <= 0:
            raise ConfigurationError(f"Breaker timeout must be positive, got {self.timeout}")


class CircuitBreaker:
    """Circuit breaker guarding one delivery backend.

    By default the breaker has two states: once the cooldown has elapsed,
    ``can_try`` resets it completely. With ``half_open_probe`` enabled the
    cooldown instead admits one probe, and a failed probe reopens it.

    Usage:
        breaker = CircuitBreaker("ProviderA")

        if breaker.can_try():
            try:
                await backend.deliver(message)
                breaker.reset()
            except Exception:
                breaker.record_failure()
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize circuit breaker.

        Args:
            name: Backend name for logging
            config: Circuit breaker configuration
            clock: Time source in seconds (defaults to time.monotonic)
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or time.monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state, without triggering cooldown transitions."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures since the last reset."""
        with self._lock:
            return self._failure_count

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (skipping the backend)."""
        return self.state == CircuitState.OPEN

    def can_try(self) -> bool:
        """Check if the backend may be tried now.

        Returns:
            True if a delivery attempt can proceed
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    return False
                self._probe_in_flight = True
                return True

            if not self._cooldown_elapsed():
                return False

            if self.config.half_open_probe:
                self._transition_to_half_open()
                self._probe_in_flight = True
            else:
                self._transition_to_closed()
            return True

    def record_failure(self) -> None:
        """Record a failed delivery attempt."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                # A failed probe goes straight back to open
                self._transition_to_open()
            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self.config.threshold:
                    self._transition_to_open()

    def reset(self) -> None:
        """Record a success: clear failures and close the circuit."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Circuit breaker {self.name} CLOSED - backend recovered")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False

    def release_probe(self) -> None:
        """Give back an admitted probe that ended without an outcome.

        A HALF_OPEN breaker returns to OPEN with its last failure time
        unchanged, so the next ``can_try`` may admit a new probe. No effect
        in any other state.
        """
        with self._lock:
            if self._state != CircuitState.HALF_OPEN:
                return
            logger.info(f"Circuit breaker {self.name} probe abandoned, back to OPEN")
            self._state = CircuitState.OPEN
            self._probe_in_flight = False

    def _cooldown_elapsed(self) -> bool:
        if self._last_failure_time is None:
            return True
        return self._clock() - self._last_failure_time > self.config.timeout

    def _transition_to_open(self) -> None:
        """Transition to OPEN state."""
        logger.warning(
            f"Circuit breaker {self.name} OPENED after {self._failure_count} failures"
        )
        self._state = CircuitState.OPEN
        self._probe_in_flight = False

    def _transition_to_half_open(self) -> None:
        """Transition to HALF_OPEN state."""
        logger.info(f"Circuit breaker {self.name} entering HALF_OPEN for recovery probe")
        self._state = CircuitState.HALF_OPEN
        self._probe_in_flight = False

    def _transition_to_closed(self) -> None:
        """Transition to CLOSED state after the cooldown."""
        logger.info(f"Circuit breaker {self.name} cooldown elapsed, CLOSED")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._probe_in_flight = False

    def get_status(self) -> dict[str, Any]:
        """Get circuit breaker status.

        Returns:
            Status dictionary
        """
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure": self._last_failure_time,
            }
