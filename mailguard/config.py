"""Configuration for mailguard."""

from typing import TYPE_CHECKING, Optional

from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from .resilience.circuit_breaker import CircuitBreakerConfig
    from .resilience.rate_limiter import RateLimitConfig
    from .resilience.retry import RetryConfig


class Settings(BaseSettings):
    """Application settings."""

    # Rate Limiting (global, shared by every dispatch)
    rate_limit: int = 5  # Admissions per window
    rate_limit_interval: float = 10.0  # Window length in seconds

    # Circuit Breaker (one per backend)
    breaker_threshold: int = 3  # Consecutive failures before opening
    breaker_timeout: float = 10.0  # Cooldown in seconds
    breaker_half_open_probe: bool = False  # Single probe after cooldown

    # Retry Configuration
    max_retries: int = 3  # Attempts per backend
    retry_base_delay: float = 0.5  # Seconds, doubled after each failure
    attempt_timeout: Optional[float] = None  # Seconds per delivery attempt

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "MAILGUARD_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def rate_limit_config(self) -> "RateLimitConfig":
        """Build the rate limiter configuration."""
        from .resilience.rate_limiter import RateLimitConfig

        return RateLimitConfig(limit=self.rate_limit, interval=self.rate_limit_interval)

    def circuit_breaker_config(self) -> "CircuitBreakerConfig":
        """Build the per-backend circuit breaker configuration."""
        from .resilience.circuit_breaker import CircuitBreakerConfig

        return CircuitBreakerConfig(
            threshold=self.breaker_threshold,
            timeout=self.breaker_timeout,
            half_open_probe=self.breaker_half_open_probe,
        )

    def retry_config(self) -> "RetryConfig":
        """Build the retry configuration."""
        from .resilience.retry import RetryConfig

        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            attempt_timeout=self.attempt_timeout,
        )


class ConfigurationError(ValueError):
    """Raised when a component is constructed with invalid parameters."""

    pass


settings = Settings()
