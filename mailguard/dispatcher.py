"""Delivery dispatcher: idempotent, rate-limited fallback across backends."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from .backends import DeliveryBackend
from .config import ConfigurationError, Settings
from .ledger import IdempotencyLedger
from .message import Message
from .resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .resilience.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from .resilience.retry import AttemptOutcome, AttemptRecord, RetryConfig, RetryExecutor

logger = logging.getLogger(__name__)


class DispatchStatus(str, Enum):
    """Outcome of one dispatch call."""

    ALREADY_SENT = "ALREADY_SENT"
    RATE_LIMITED = "RATE_LIMITED"
    DELIVERED = "DELIVERED"
    ALL_BACKENDS_FAILED = "ALL_BACKENDS_FAILED"
    CANCELLED = "CANCELLED"


@dataclass
class DispatchResult:
    """Result of dispatching a message."""

    message_id: str
    status: DispatchStatus
    backend: Optional[str] = None  # Set only when DELIVERED
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.status == DispatchStatus.DELIVERED

    def describe(self) -> str:
        """One-line human readable summary."""
        if self.status == DispatchStatus.DELIVERED:
            return f"Email {self.message_id} sent successfully via {self.backend}"
        if self.status == DispatchStatus.ALREADY_SENT:
            return f"Already sent email {self.message_id}"
        if self.status == DispatchStatus.RATE_LIMITED:
            return f"Rate limit exceeded for email {self.message_id}"
        if self.status == DispatchStatus.CANCELLED:
            return f"Sending email {self.message_id} was cancelled"
        return f"Failed to send email {self.message_id} with all providers."


class DeliveryDispatcher:
    """Sends each message at most once through an ordered list of backends.

    A dispatch checks the ledger, then the global rate limiter, then walks
    the backends in order. Backends whose breaker is open are skipped;
    the others get a bounded retry budget. The first success wins.

    Usage:
        dispatcher = DeliveryDispatcher([primary, secondary])
        result = await dispatcher.dispatch(message)
        if result.status == DispatchStatus.DELIVERED:
            print(result.backend)
    """

    def __init__(
        self,
        backends: Sequence[DeliveryBackend],
        rate_limit: Optional[RateLimitConfig] = None,
        circuit_breaker: Union[CircuitBreakerConfig, dict[str, CircuitBreakerConfig], None] = None,
        retry: Optional[RetryConfig] = None,
        ledger: Optional[IdempotencyLedger] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize dispatcher.

        Args:
            backends: Backends in fallback priority order
            rate_limit: Global rate limit configuration
            circuit_breaker: One breaker config for every backend, or configs keyed by backend name
            retry: Per-backend retry configuration
            ledger: Idempotency ledger (a fresh one by default)
            clock: Time source shared by the limiter and breakers
            sleep: Backoff wait coroutine function

        Raises:
            ConfigurationError: If the backend list or any parameter is invalid
        """
        self._backends = tuple(backends)
        self._validate_backends()

        self._rate_limiter = SlidingWindowRateLimiter(rate_limit, clock=clock)
        self._breakers: dict[str, CircuitBreaker] = {
            backend.name: CircuitBreaker(
                backend.name,
                self._breaker_config_for(backend.name, circuit_breaker),
                clock=clock,
            )
            for backend in self._backends
        }
        self._executor = RetryExecutor(retry, sleep=sleep)
        self._ledger = ledger if ledger is not None else IdempotencyLedger()

        logger.info(
            f"Dispatcher ready with backends {[b.name for b in self._backends]}, "
            f"rate limit {self._rate_limiter.config.limit}/{self._rate_limiter.config.interval}s"
        )

    @classmethod
    def from_settings(
        cls,
        backends: Sequence[DeliveryBackend],
        settings: Settings,
        **kwargs: Any,
    ) -> "DeliveryDispatcher":
        """Build a dispatcher from application settings."""
        return cls(
            backends,
            rate_limit=settings.rate_limit_config(),
            circuit_breaker=settings.circuit_breaker_config(),
            retry=settings.retry_config(),
            **kwargs,
        )

    def _validate_backends(self) -> None:
        if not self._backends:
            raise ConfigurationError("At least one delivery backend is required")

        seen: set[str] = set()
        for backend in self._backends:
            if not isinstance(backend, DeliveryBackend):
                raise ConfigurationError(
                    f"{backend!r} is not a delivery backend (needs name and deliver())"
                )
            if not backend.name:
                raise ConfigurationError(f"Backend {backend!r} has an empty name")
            if backend.name in seen:
                raise ConfigurationError(f"Duplicate backend name: {backend.name}")
            seen.add(backend.name)

    @staticmethod
    def _breaker_config_for(
        name: str,
        config: Union[CircuitBreakerConfig, dict[str, CircuitBreakerConfig], None],
    ) -> Optional[CircuitBreakerConfig]:
        if isinstance(config, dict):
            return config.get(name)
        return config

    @property
    def backends(self) -> tuple[DeliveryBackend, ...]:
        return self._backends

    @property
    def ledger(self) -> IdempotencyLedger:
        return self._ledger

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        return self._rate_limiter

    def breaker(self, name: str) -> CircuitBreaker:
        """Get the circuit breaker for a backend.

        Raises:
            KeyError: If no backend has that name
        """
        return self._breakers[name]

    async def dispatch(
        self,
        message: Message,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DispatchResult:
        """Deliver ``message`` through the first backend that accepts it.

        Args:
            message: Message to deliver
            cancel_event: Set to abandon the dispatch mid-retry

        Returns:
            DispatchResult with the status and the attempts made
        """
        async with self._ledger.claim(message.id):
            return await self._dispatch_claimed(message, cancel_event)

    async def _dispatch_claimed(
        self,
        message: Message,
        cancel_event: Optional[asyncio.Event],
    ) -> DispatchResult:
        if self._ledger.has(message.id):
            logger.info(f"Email {message.id} already sent, skipping")
            return DispatchResult(message.id, DispatchStatus.ALREADY_SENT)

        if not self._rate_limiter.allow():
            logger.info(
                f"Rate limit exceeded for email {message.id}, "
                f"next slot in {self._rate_limiter.retry_after():.2f}s"
            )
            return DispatchResult(message.id, DispatchStatus.RATE_LIMITED)

        attempts: list[AttemptRecord] = []

        for backend in self._backends:
            breaker = self._breakers[backend.name]
            if not breaker.can_try():
                logger.debug(f"Skipping {backend.name} for {message.id}: circuit open")
                attempts.append(
                    AttemptRecord(backend.name, 0, AttemptOutcome.SKIPPED_CIRCUIT_OPEN)
                )
                continue

            result = await self._executor.try_send(backend, message, breaker, cancel_event)
            attempts.extend(result.attempts)

            if result.delivered:
                self._ledger.mark_sent(message.id)
                logger.info(f"Email {message.id} sent successfully via {backend.name}")
                return DispatchResult(
                    message.id, DispatchStatus.DELIVERED, backend=backend.name, attempts=attempts
                )

            if result.cancelled:
                return DispatchResult(message.id, DispatchStatus.CANCELLED, attempts=attempts)

        logger.error(f"Failed to send email {message.id} with all providers")
        return DispatchResult(message.id, DispatchStatus.ALL_BACKENDS_FAILED, attempts=attempts)
