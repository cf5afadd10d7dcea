"""Utility modules for reelscout."""

from reelscout.utils.logging import LogContext, get_logger, setup_logging
from reelscout.utils.rate_limiter import RateLimitConfig, rate_limiter
from reelscout.utils.retry import RetryConfig, retry_async

__all__ = [
    # Logging
    "get_logger",
    "LogContext",
    "setup_logging",
    # Rate limiting
    "rate_limiter",
    "RateLimitConfig",
    # Retry
    "retry_async",
    "RetryConfig",
]
