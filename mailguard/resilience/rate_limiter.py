"""Rate limiting for dispatch calls.

Provides:
- Sliding-window admission control
- Lazy pruning of expired admissions
- Retry-after hint for rejected callers
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiter."""

    limit: int = 5  # Max admissions per window
    interval: float = 10.0  # Window length in seconds

    def __post_init__(self):
        if self.limit < 1:
            raise ConfigurationError(f"Rate limit must be at least 1, got {self.limit}")
        if self.interval <= 0:
            raise ConfigurationError(f"Rate limit interval must be positive, got {self.interval}")


class SlidingWindowRateLimiter:
    """Sliding-window rate limiter.

    Keeps the timestamps of admissions made during the trailing ``interval``
    seconds and admits a new call only while fewer than ``limit`` remain.

    Usage:
        limiter = SlidingWindowRateLimiter(RateLimitConfig(limit=5, interval=10.0))
        if limiter.allow():
            # Dispatch the message
            pass
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize sliding-window limiter.

        Args:
            config: Rate limit configuration
            clock: Time source in seconds (defaults to time.monotonic)
        """
        self.config = config or RateLimitConfig()
        self._clock = clock or time.monotonic
        self._admissions: deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        """Drop admissions that have left the window."""
        while self._admissions and now - self._admissions[0] >= self.config.interval:
            self._admissions.popleft()

    def allow(self) -> bool:
        """Try to admit one call.

        Returns:
            True if admitted; False leaves the window unchanged
        """
        with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self._admissions) >= self.config.limit:
                logger.debug(
                    f"Rate limit reached: {len(self._admissions)}/{self.config.limit} "
                    f"in {self.config.interval}s"
                )
                return False

            self._admissions.append(now)
            return True

    def retry_after(self) -> float:
        """Seconds until the next slot frees up (0.0 if one is free now)."""
        with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self._admissions) < self.config.limit:
                return 0.0

            return max(0.0, self._admissions[0] + self.config.interval - now)

    @property
    def in_window(self) -> int:
        """Number of admissions currently inside the window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._admissions)

    def reset(self) -> None:
        """Forget all admissions."""
        with self._lock:
            self._admissions.clear()
