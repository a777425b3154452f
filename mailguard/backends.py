"""Delivery backends.

A backend is anything with a ``name`` and an ``async deliver(message)``
coroutine that returns on success and raises on failure. The simulated
backends here stand in for real transports; their failures are driven by an
injectable strategy so tests can script them.
"""

import logging
import random
from typing import Callable, Optional, Protocol, runtime_checkable

from .message import Message

logger = logging.getLogger(__name__)

# Decides whether an attempt to deliver the given message should fail
FailureStrategy = Callable[[Message], bool]


@runtime_checkable
class DeliveryBackend(Protocol):
    """Capability required by the dispatcher."""

    name: str

    async def deliver(self, message: Message) -> None:
        ...


def random_failures(rate: float, rng: Optional[random.Random] = None) -> FailureStrategy:
    """Fail each attempt independently with probability ``rate``.

    Args:
        rate: Failure probability between 0 and 1
        rng: Random source (defaults to a fresh ``random.Random``)

    Returns:
        Failure strategy
    """
    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"Failure rate must be between 0 and 1, got {rate}")
    rng = rng or random.Random()
    return lambda message: rng.random() < rate


def always_fail() -> FailureStrategy:
    """Fail every attempt."""
    return lambda message: True


def never_fail() -> FailureStrategy:
    """Succeed on every attempt."""
    return lambda message: False


def fail_times(count: int) -> FailureStrategy:
    """Fail the first ``count`` attempts, then succeed."""
    remaining = [count]

    def strategy(message: Message) -> bool:
        if remaining[0] > 0:
            remaining[0] -= 1
            return True
        return False

    return strategy


class SimulatedBackend:
    """In-memory backend whose failures come from a strategy.

    Usage:
        backend = SimulatedBackend("ProviderA", random_failures(0.7))
        await backend.deliver(message)
    """

    def __init__(self, name: str, failure_strategy: Optional[FailureStrategy] = None):
        """Initialize simulated backend.

        Args:
            name: Backend name, unique within a dispatcher
            failure_strategy: Decides which attempts fail (defaults to never)
        """
        self.name = name
        self._should_fail = failure_strategy or never_fail()
        self.calls = 0
        self.delivered: list[Message] = []

    async def deliver(self, message: Message) -> None:
        """Pretend to send ``message``.

        Raises:
            DeliveryError: If the failure strategy says this attempt fails
        """
        self.calls += 1
        if self._should_fail(message):
            raise DeliveryError(f"{self.name} failed", backend=self.name)

        self.delivered.append(message)
        logger.info(f"[{self.name}] Sent to {message.to}")


def default_backends(rng: Optional[random.Random] = None) -> list[SimulatedBackend]:
    """The two demo providers: ProviderA fails 70% of attempts, ProviderB 50%."""
    rng = rng or random.Random()
    return [
        SimulatedBackend("ProviderA", random_failures(0.7, rng)),
        SimulatedBackend("ProviderB", random_failures(0.5, rng)),
    ]


class DeliveryError(Exception):
    """Raised when a backend fails to deliver a message."""

    def __init__(self, message: str = "", backend: str = ""):
        super().__init__(message)
        self.backend = backend
