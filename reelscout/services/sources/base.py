"""Shared request path for the external recommendation sources."""

import logging
import time
from typing import Any

import httpx

from reelscout.utils.http_client import get_client
from reelscout.utils.metrics import metrics
from reelscout.utils.rate_limiter import RateLimiter, rate_limiter
from reelscout.utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig, retry_async

logger = logging.getLogger(__name__)


class SourceClient:
    """Rate-limited, retrying JSON GET client for one upstream service.

    Errors never escape `_get_json`: 404s, non-2xx answers, exhausted retries
    and transport failures all come back as None so a broken source only
    costs its own candidates.
    """

    service: str = "default"
    base_url: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    ) -> None:
        self._client = client
        self._limiter = limiter or rate_limiter
        self._retry_config = retry_config

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client or get_client(self.service)

    def _headers(self, **kwargs: Any) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any | None:
        """GET `base_url + path` and decode the JSON body."""
        url = f"{self.base_url}{path}"

        async def request() -> httpx.Response:
            await self._limiter.acquire(self.service)
            return await self.http.get(url, params=params, headers=headers or self._headers())

        start = time.monotonic()
        try:
            response = await retry_async(
                request,
                config=self._retry_config,
                operation_name=f"{self.service} GET {path}",
            )
        except httpx.HTTPError as e:
            logger.warning(f"{self.service} GET {path} failed: {type(e).__name__}: {e}")
            metrics.external_api_requests_total.inc(service=self.service, status="error")
            return None

        if response is None:
            metrics.external_api_requests_total.inc(service=self.service, status="exhausted")
            return None

        metrics.external_api_requests_total.inc(
            service=self.service, status=str(response.status_code)
        )
        logger.debug(
            f"{self.service} GET {path} -> {response.status_code} "
            f"({(time.monotonic() - start) * 1000:.0f}ms)"
        )

        if response.status_code == 404:
            return None
        if not response.is_success:
            logger.warning(f"{self.service} GET {path} returned {response.status_code}")
            return None

        try:
            return response.json()
        except ValueError:
            logger.warning(f"{self.service} GET {path} returned invalid JSON")
            return None
