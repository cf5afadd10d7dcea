"""Rate limiter for external recommendation sources."""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for rate limiting."""

    requests_per_second: float = 2.0  # Max requests per second
    burst_size: int = 5  # Allow short bursts
    min_interval: float = 0.1  # Minimum time between requests (seconds)


@dataclass
class TokenBucket:
    """Token bucket for rate limiting."""

    capacity: int
    refill_rate: float  # tokens per second
    tokens: float = field(default=0.0)
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        self.tokens = float(self.capacity)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def acquire(self, tokens: int = 1) -> float:
        """Try to acquire tokens.

        Returns:
            Wait time in seconds (0 if tokens acquired immediately)
        """
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return 0.0

        tokens_needed = tokens - self.tokens
        return tokens_needed / self.refill_rate

    async def acquire_async(self, tokens: int = 1) -> None:
        """Acquire tokens, waiting if necessary."""
        wait_time = self.acquire(tokens)
        if wait_time > 0:
            logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)
            self._refill()
            self.tokens = max(0.0, self.tokens - tokens)


# Per-service limits, keyed by account tier
TIER_CONFIGS: dict[str, dict[str, RateLimitConfig]] = {
    "tmdb": {
        "default": RateLimitConfig(requests_per_second=40.0, burst_size=20, min_interval=0.025),
    },
    "trakt": {
        # 1000 GET calls per 5 minutes
        "free": RateLimitConfig(requests_per_second=3.3, burst_size=10, min_interval=0.1),
        "vip": RateLimitConfig(requests_per_second=10.0, burst_size=20, min_interval=0.05),
    },
    "mdblist": {
        "free": RateLimitConfig(requests_per_second=10.0, burst_size=5, min_interval=0.1),
        "supporter": RateLimitConfig(requests_per_second=40.0, burst_size=20, min_interval=0.025),
    },
}

DEFAULT_CONFIG = RateLimitConfig()


class RateLimiter:
    """Shared rate limiter for external API calls.

    Every service gets a token bucket plus a fixed minimum interval between
    requests. Services with paid tiers start on their free tier until
    `set_tier` is called. Safe for concurrent coroutines.
    """

    def __init__(self):
        self._buckets: dict[str, TokenBucket] = {}
        self._configs: dict[str, RateLimitConfig] = {}
        self._tiers: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._last_request: dict[str, float] = defaultdict(float)

    def configure(self, service: str, config: RateLimitConfig) -> None:
        """Configure rate limits for a specific service."""
        self._configs[service] = config
        # Reset bucket with new config
        self._buckets.pop(service, None)

    def set_tier(self, service: str, tier: str) -> None:
        """Switch a service to the limits of the given account tier."""
        tiers = TIER_CONFIGS.get(service)
        if not tiers or tier not in tiers:
            raise ValueError(f"Unknown rate limit tier {tier!r} for {service}")
        if self._tiers.get(service) == tier:
            return
        self._tiers[service] = tier
        self.configure(service, tiers[tier])
        logger.debug(f"Rate limit [{service}]: using {tier} tier")

    def get_tier(self, service: str) -> str | None:
        if service in self._tiers:
            return self._tiers[service]
        tiers = TIER_CONFIGS.get(service)
        return next(iter(tiers)) if tiers else None

    def get_config(self, service: str) -> RateLimitConfig:
        """Resolve the active config for a service."""
        if service in self._configs:
            return self._configs[service]
        tiers = TIER_CONFIGS.get(service)
        if tiers:
            return next(iter(tiers.values()))
        return DEFAULT_CONFIG

    def _get_bucket(self, service: str) -> TokenBucket:
        if service not in self._buckets:
            config = self.get_config(service)
            self._buckets[service] = TokenBucket(
                capacity=config.burst_size,
                refill_rate=config.requests_per_second,
            )
        return self._buckets[service]

    async def acquire(self, service: str = "default", tokens: int = 1) -> None:
        """Acquire rate limit tokens for a service, blocking if the limit is exceeded.

        Args:
            service: Name of the service (tmdb, trakt, mdblist)
            tokens: Number of tokens to acquire (default 1)
        """
        async with self._lock:
            bucket = self._get_bucket(service)
            min_interval = self.get_config(service).min_interval

            # Ensure minimum interval between requests
            now = time.monotonic()
            elapsed = now - self._last_request[service]
            if elapsed < min_interval:
                wait = min_interval - elapsed
                logger.debug(f"Rate limit [{service}]: waiting {wait:.3f}s (min interval)")
                await asyncio.sleep(wait)

            await bucket.acquire_async(tokens)
            self._last_request[service] = time.monotonic()

    def get_stats(self) -> dict[str, dict[str, float]]:
        """Get current rate limiter statistics."""
        stats = {}
        for service, bucket in self._buckets.items():
            bucket._refill()
            stats[service] = {
                "available_tokens": bucket.tokens,
                "capacity": bucket.capacity,
                "refill_rate": bucket.refill_rate,
                "min_interval": self.get_config(service).min_interval,
            }
        return stats


# Global rate limiter instance
rate_limiter = RateLimiter()
