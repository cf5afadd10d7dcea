"""Redis caching for source API responses.

Provides async Redis caching with JSON serialization, TTL management and
cache key namespacing. When Redis can't be reached every call is a miss.
"""

import hashlib
import json
from collections.abc import Callable
from datetime import timedelta
from functools import wraps
from typing import Any, TypeVar

import redis.asyncio as redis

from reelscout.config import get_settings
from reelscout.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# TMDB details change rarely; a pool refresh reuses them across users
DETAILS_TTL = timedelta(hours=6)
DEFAULT_TTL = timedelta(hours=1)


class RedisCache:
    """Async Redis cache client with JSON serialization."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url
        self._client: redis.Redis | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url or get_settings().redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def connect(self) -> bool:
        """Test the Redis connection; caching stays disabled if it fails."""
        try:
            await self._get_client().ping()
            self._connected = True
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis cache unavailable: {e}")
            self._connected = False
        return self._connected

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._connected = False

    async def get(self, key: str) -> Any | None:
        """Get value from cache, None if not found/expired."""
        if not self._connected:
            return None

        try:
            data = await self._get_client().get(key)
            if data:
                return json.loads(data)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.debug(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: timedelta | None = None) -> bool:
        """Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live (default: 1 hour)

        Returns:
            True if successful
        """
        if not self._connected:
            return False

        try:
            serialized = json.dumps(value, default=str)
            expire_seconds = int((ttl or DEFAULT_TTL).total_seconds())
            await self._get_client().setex(key, expire_seconds, serialized)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.debug(f"Cache set error for {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern (e.g. "tmdb:movie:*")."""
        if not self._connected:
            return 0

        try:
            client = self._get_client()
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                return await client.delete(*keys)
            return 0
        except redis.RedisError as e:
            logger.debug(f"Cache delete pattern error for {pattern}: {e}")
            return 0


# Global cache instance
cache = RedisCache()


def make_cache_key(namespace: str, *args: Any, **kwargs: Any) -> str:
    """Generate a cache key from function arguments.

    Args:
        namespace: Key prefix (e.g., "tmdb:movie")
        *args: Positional arguments to include in key
        **kwargs: Keyword arguments to include in key
    """
    parts = [namespace]

    for arg in args:
        if arg is not None:
            parts.append(str(arg))

    for key, value in sorted(kwargs.items()):
        if value is not None:
            parts.append(f"{key}={value}")

    key_str = ":".join(parts)

    if len(key_str) > 200:
        hash_suffix = hashlib.md5(key_str.encode()).hexdigest()[:12]
        key_str = f"{namespace}:{hash_suffix}"

    return key_str


def cached(namespace: str, ttl: timedelta | None = None) -> Callable[[F], F]:
    """Decorator caching the result of an async *method* in Redis.

    The first positional argument (self) is left out of the key. None results
    are never cached so a failed fetch is retried next time.

    Example:
        @cached("tmdb:details", ttl=DETAILS_TTL)
        async def _fetch_details(self, media_type: MediaType, tmdb_id: int):
            ...
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(self, *args: Any, **kwargs: Any) -> Any:
            cache_key = make_cache_key(namespace, *args, **kwargs)

            cached_value = await cache.get(cache_key)
            if cached_value is not None:
                logger.debug(f"Cache HIT: {cache_key}")
                return cached_value

            logger.debug(f"Cache MISS: {cache_key}")
            result = await func(self, *args, **kwargs)

            if result is not None:
                await cache.set(cache_key, result, ttl)

            return result

        return wrapper  # type: ignore

    return decorator
