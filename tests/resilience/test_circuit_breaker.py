"""Tests for per-backend circuit breaker."""

import pytest

from mailguard.config import ConfigurationError
from mailguard.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)


class TestCircuitBreakerConfig:
    """Test configuration validation."""

    def test_default_values(self):
        """Test defaults: 3 failures, 10 second cooldown, two-state."""
        config = CircuitBreakerConfig()
        assert config.threshold == 3
        assert config.timeout == 10.0
        assert config.half_open_probe is False

    def test_rejects_zero_threshold(self):
        """Test threshold below 1 is a configuration error."""
        with pytest.raises(ConfigurationError):
            CircuitBreakerConfig(threshold=0)

    def test_rejects_negative_timeout(self):
        """Test negative timeout is a configuration error."""
        with pytest.raises(ConfigurationError):
            CircuitBreakerConfig(timeout=-1.0)


class TestCircuitBreakerStates:
    """Test two-state transitions."""

    def test_initial_state_is_closed(self):
        """Test circuit starts in CLOSED state."""
        cb = CircuitBreaker("test")
        assert cb.state == CircuitState.CLOSED
        assert cb.can_try() is True

    def test_opens_after_threshold(self, clock):
        """Test circuit opens after reaching failure threshold."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=3), clock=clock)

        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        assert cb.can_try() is True

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.can_try() is False

    def test_stays_open_until_timeout_exceeded(self, clock):
        """Test circuit refuses attempts until the cooldown has passed."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=1, timeout=10.0), clock=clock)
        cb.record_failure()

        clock.advance(10.0)  # Not yet exceeded
        assert cb.can_try() is False

        clock.advance(0.01)
        assert cb.can_try() is True
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_cooldown_measured_from_last_failure(self, clock):
        """Test a later failure restarts the cooldown."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=2, timeout=10.0), clock=clock)
        cb.record_failure()
        cb.record_failure()
        clock.advance(8.0)
        cb.record_failure()

        clock.advance(5.0)
        assert cb.can_try() is False

    def test_reset_clears_failures(self, clock):
        """Test one success resets the failure counter."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=3), clock=clock)
        cb.record_failure()
        cb.record_failure()

        cb.reset()
        assert cb.failure_count == 0

        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_reset_closes_open_circuit(self, clock):
        """Test reset returns an open circuit to CLOSED."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=1), clock=clock)
        cb.record_failure()
        assert cb.is_open

        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.can_try() is True


class TestHalfOpenProbe:
    """Test optional single-probe recovery."""

    def _tripped(self, clock):
        cb = CircuitBreaker(
            "test",
            CircuitBreakerConfig(threshold=1, timeout=5.0, half_open_probe=True),
            clock=clock,
        )
        cb.record_failure()
        clock.advance(6.0)
        return cb

    def test_admits_single_probe(self, clock):
        """Test only one caller is admitted after the cooldown."""
        cb = self._tripped(clock)

        assert cb.can_try() is True
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.can_try() is False

    def test_probe_failure_reopens(self, clock):
        """Test a failed probe reopens the circuit."""
        cb = self._tripped(clock)
        cb.can_try()

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.can_try() is False

    def test_probe_success_closes(self, clock):
        """Test a successful probe closes the circuit."""
        cb = self._tripped(clock)
        cb.can_try()

        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.can_try() is True
        assert cb.can_try() is True

    def test_released_probe_can_be_readmitted(self, clock):
        """Test an abandoned probe returns to OPEN and a new probe is admitted."""
        cb = self._tripped(clock)
        cb.can_try()
        last_failure = cb.get_status()["last_failure"]

        cb.release_probe()
        assert cb.state == CircuitState.OPEN
        assert cb.get_status()["last_failure"] == last_failure
        assert cb.failure_count == 1

        assert cb.can_try() is True
        assert cb.state == CircuitState.HALF_OPEN

    def test_release_probe_ignored_outside_half_open(self, clock):
        """Test release_probe leaves CLOSED and OPEN breakers alone."""
        cb = CircuitBreaker("test", CircuitBreakerConfig(threshold=1), clock=clock)
        cb.release_probe()
        assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        cb.release_probe()
        assert cb.state == CircuitState.OPEN
        assert cb.can_try() is False


class TestCircuitBreakerStatus:
    """Test status reporting."""

    def test_get_status(self, clock):
        """Test status dictionary."""
        cb = CircuitBreaker("ProviderA", clock=clock)
        cb.record_failure()

        status = cb.get_status()

        assert status["name"] == "ProviderA"
        assert status["state"] == CircuitState.CLOSED.value
        assert status["failure_count"] == 1
        assert status["last_failure"] == clock.now
