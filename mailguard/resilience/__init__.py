"""Resilience layer for mailguard.

This module provides:
- Sliding-window rate limiting
- Per-backend circuit breakers
- Retry with exponential backoff
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .rate_limiter import RateLimitConfig, SlidingWindowRateLimiter
from .retry import (
    AttemptOutcome,
    AttemptRecord,
    AttemptTimeoutError,
    RetryConfig,
    RetryExecutor,
    RetryResult,
    calculate_backoff,
)

__all__ = [
    "SlidingWindowRateLimiter",
    "RateLimitConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "RetryExecutor",
    "RetryConfig",
    "RetryResult",
    "AttemptOutcome",
    "AttemptRecord",
    "AttemptTimeoutError",
    "calculate_backoff",
]
