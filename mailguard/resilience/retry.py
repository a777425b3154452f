"""Retry with exponential backoff for delivery attempts.

Provides bounded retry of a single backend with:
- Configurable attempt budget
- Exponential backoff between attempts
- Optional per-attempt timeout
- Cooperative cancellation that records neither success nor failure
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..config import ConfigurationError
from .circuit_breaker import CircuitBreaker, CircuitState

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3  # Attempts per backend
    base_delay: float = 0.5  # Base delay in seconds
    exponential_base: float = 2.0  # Exponential backoff base
    attempt_timeout: Optional[float] = None  # Seconds allowed per attempt

    def __post_init__(self):
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.base_delay < 0:
            raise ConfigurationError(f"base_delay must not be negative, got {self.base_delay}")
        if self.exponential_base < 1:
            raise ConfigurationError(
                f"exponential_base must be at least 1, got {self.exponential_base}"
            )
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ConfigurationError(
                f"attempt_timeout must be positive, got {self.attempt_timeout}"
            )


def calculate_backoff(
    attempt: int,
    config: RetryConfig,
) -> float:
    """Calculate backoff delay after a failed attempt.

    Args:
        attempt: Failed attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    # Exponential backoff: base_delay * (exponential_base ^ attempt)
    return config.base_delay * (config.exponential_base**attempt)


class AttemptOutcome(str, Enum):
    """Outcome of a single attempt against a backend."""

    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    SKIPPED_CIRCUIT_OPEN = "SKIPPED_CIRCUIT_OPEN"
    CANCELLED = "CANCELLED"


@dataclass
class AttemptRecord:
    """One entry in the per-dispatch attempt log."""

    backend: str
    attempt: int  # 1-indexed; 0 for skipped backends
    outcome: AttemptOutcome
    error: Optional[str] = None


@dataclass
class RetryResult:
    """Result of retrying one backend."""

    backend: str
    delivered: bool = False
    cancelled: bool = False
    attempts: list[AttemptRecord] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.delivered


class _Cancelled(Exception):
    pass


class RetryExecutor:
    """Bounded retry loop for one backend.

    Every backend exception is recorded into the breaker and turned into
    a failed attempt; nothing raised by a backend escapes ``try_send``.

    Usage:
        executor = RetryExecutor(RetryConfig(max_retries=3, base_delay=0.5))
        if breaker.can_try():
            result = await executor.try_send(backend, message, breaker)
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize retry executor.

        Args:
            config: Retry configuration
            sleep: Coroutine function used for backoff waits (defaults to asyncio.sleep)
        """
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep

    async def try_send(
        self,
        backend: Any,
        message: Any,
        breaker: CircuitBreaker,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RetryResult:
        """Attempt delivery through ``backend`` up to ``max_retries`` times.

        The caller must already have checked ``breaker.can_try()``.

        Args:
            backend: Delivery backend (``name`` plus ``async deliver``)
            message: Message to deliver
            breaker: Circuit breaker for this backend
            cancel_event: Set to abandon the loop

        Returns:
            RetryResult, truthy if the message was delivered
        """
        # Only the caller admitted as the HALF_OPEN probe may hand it back
        probing = breaker.state == CircuitState.HALF_OPEN
        try:
            return await self._retry_loop(backend, message, breaker, probing, cancel_event)
        except asyncio.CancelledError:
            if probing:
                breaker.release_probe()
            raise

    async def _retry_loop(
        self,
        backend: Any,
        message: Any,
        breaker: CircuitBreaker,
        probing: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> RetryResult:
        result = RetryResult(backend=backend.name)

        for attempt in range(self.config.max_retries):
            try:
                await self._run_cancellable(self._deliver(backend, message), cancel_event)
            except _Cancelled:
                logger.info(f"Delivery of {message.id} via {backend.name} cancelled")
                if probing:
                    breaker.release_probe()
                result.attempts.append(
                    AttemptRecord(backend.name, attempt + 1, AttemptOutcome.CANCELLED)
                )
                result.cancelled = True
                return result
            except Exception as e:
                breaker.record_failure()
                error = str(e) or type(e).__name__
                result.attempts.append(
                    AttemptRecord(backend.name, attempt + 1, AttemptOutcome.FAILED, error)
                )

                if attempt == self.config.max_retries - 1:
                    logger.error(
                        f"All {self.config.max_retries} attempts failed for {message.id} "
                        f"via {backend.name}: {error}"
                    )
                    break

                if breaker.config.half_open_probe and breaker.is_open:
                    if probing:
                        logger.warning(
                            f"Recovery probe for {backend.name} failed on {message.id}: {error}"
                        )
                    else:
                        logger.warning(
                            f"Circuit for {backend.name} opened on {message.id}, "
                            f"stopping retries: {error}"
                        )
                    break

                delay = calculate_backoff(attempt, self.config)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.config.max_retries} failed for "
                    f"{message.id} via {backend.name}: {error}. Retrying in {delay:.2f}s"
                )

                try:
                    await self._run_cancellable(self._sleep(delay), cancel_event)
                except _Cancelled:
                    logger.info(f"Backoff for {message.id} via {backend.name} cancelled")
                    if probing:
                        breaker.release_probe()
                    result.cancelled = True
                    return result
                continue

            breaker.reset()
            result.attempts.append(
                AttemptRecord(backend.name, attempt + 1, AttemptOutcome.DELIVERED)
            )
            result.delivered = True
            return result

        return result

    async def _deliver(self, backend: Any, message: Any) -> None:
        if self.config.attempt_timeout is None:
            await backend.deliver(message)
            return

        try:
            await asyncio.wait_for(backend.deliver(message), timeout=self.config.attempt_timeout)
        except asyncio.TimeoutError:
            raise AttemptTimeoutError(
                f"{backend.name} timed out after {self.config.attempt_timeout}s",
                self.config.attempt_timeout,
            ) from None

    async def _run_cancellable(
        self,
        coro: Awaitable[Any],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Await ``coro`` unless ``cancel_event`` fires first."""
        if cancel_event is None:
            return await coro

        if cancel_event.is_set():
            if asyncio.iscoroutine(coro):
                coro.close()
            raise _Cancelled()

        work = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Cancelled delivery raised while unwinding: {e}")
        raise _Cancelled()


class AttemptTimeoutError(Exception):
    """Raised when a delivery attempt exceeds its timeout."""

    def __init__(self, message: str = "", timeout: float = 0.0):
        super().__init__(message)
        self.timeout = timeout
