"""Retry utilities with exponential backoff for external API calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (
        httpx.TimeoutException,
        httpx.ConnectError,
        httpx.ReadError,
        ConnectionError,
        TimeoutError,
    )
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)


DEFAULT_RETRY_CONFIG = RetryConfig()


def _backoff_delay(config: RetryConfig, attempt: int) -> float:
    return min(config.base_delay * (config.exponential_base**attempt), config.max_delay)


def parse_retry_after(response: httpx.Response) -> float | None:
    """Read a Retry-After header given in seconds."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


async def retry_async(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    operation_name: str = "operation",
    **kwargs,
) -> httpx.Response | None:
    """Execute an async request function with retry logic and exponential backoff.

    HTTP 429 responses wait for the server's Retry-After when it is given.
    Once the retry cap is reached, None is returned instead of raising so the
    caller can degrade to "no data".

    Args:
        func: Async function to execute
        *args: Positional arguments for the function
        config: Retry configuration
        operation_name: Name of the operation for logging
        **kwargs: Keyword arguments for the function

    Returns:
        The response, or None if all retries failed
    """
    for attempt in range(config.max_retries + 1):
        try:
            result = await func(*args, **kwargs)

            if result.status_code in config.retryable_status_codes:
                if attempt < config.max_retries:
                    delay = _backoff_delay(config, attempt)
                    if result.status_code == 429:
                        retry_after = parse_retry_after(result)
                        if retry_after is not None:
                            delay = min(retry_after, config.max_delay)
                    logger.warning(
                        f"{operation_name}: Got status {result.status_code}, "
                        f"retrying in {delay:.1f}s (attempt {attempt + 1}/{config.max_retries + 1})"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    f"{operation_name}: Failed after {config.max_retries + 1} attempts "
                    f"with status {result.status_code}"
                )
                return None

            return result

        except config.retryable_exceptions as e:
            if attempt < config.max_retries:
                delay = _backoff_delay(config, attempt)
                logger.warning(
                    f"{operation_name}: {type(e).__name__}, "
                    f"retrying in {delay:.1f}s (attempt {attempt + 1}/{config.max_retries + 1})"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    f"{operation_name}: Failed after {config.max_retries + 1} attempts: {e}"
                )

    return None
