"""Pytest configuration and fixtures for mailguard tests."""

import asyncio
import pytest

from mailguard.backends import SimulatedBackend, always_fail, never_fail
from mailguard.message import Message


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Backoff sleep that records delays and advances a fake clock."""

    def __init__(self, clock: FakeClock = None):
        self.delays = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def use_test_environment(monkeypatch):
    """Ensure no MAILGUARD_* variables leak into settings under test."""
    for name in (
        "MAILGUARD_RATE_LIMIT",
        "MAILGUARD_RATE_LIMIT_INTERVAL",
        "MAILGUARD_BREAKER_THRESHOLD",
        "MAILGUARD_BREAKER_TIMEOUT",
        "MAILGUARD_BREAKER_HALF_OPEN_PROBE",
        "MAILGUARD_MAX_RETRIES",
        "MAILGUARD_RETRY_BASE_DELAY",
        "MAILGUARD_ATTEMPT_TIMEOUT",
        "MAILGUARD_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    """Fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def sleep(clock):
    """Recording sleep bound to the fake clock."""
    return RecordingSleep(clock)


@pytest.fixture
def sample_message():
    """Sample message for testing."""
    return Message(
        id="email-1",
        to="user1@example.com",
        subject="Test Email",
        body="Hello, this is a test.",
    )


@pytest.fixture
def failing_backend():
    """Backend that fails every attempt."""
    return SimulatedBackend("A", always_fail())


@pytest.fixture
def working_backend():
    """Backend that succeeds on every attempt."""
    return SimulatedBackend("B", never_fail())
