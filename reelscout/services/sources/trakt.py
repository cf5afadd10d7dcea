"""Trakt API client for trending, popular and personal recommendations."""

from typing import Any

import httpx

from reelscout.config import get_settings
from reelscout.constants import TRAKT_API_BASE_URL, TRAKT_API_VERSION, TRAKT_PAGE_LIMIT
from reelscout.models.media import MediaType
from reelscout.services.sources.base import SourceClient
from reelscout.utils.rate_limiter import RateLimiter
from reelscout.utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig


class TraktClient(SourceClient):
    """Client for the public Trakt API (v2).

    Public lists only need the app's client id. Recommendations need the
    user's OAuth access token.
    """

    service = "trakt"
    base_url = TRAKT_API_BASE_URL

    def __init__(
        self,
        client_id: str | None = None,
        vip: bool | None = None,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    ) -> None:
        super().__init__(client=client, limiter=limiter, retry_config=retry_config)
        settings = get_settings()
        self.client_id = settings.trakt_client_id if client_id is None else client_id
        vip = settings.trakt_vip if vip is None else vip
        self._limiter.set_tier(self.service, "vip" if vip else "free")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    def _headers(self, access_token: str | None = None, **kwargs: Any) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": TRAKT_API_VERSION,
            "trakt-api-key": self.client_id,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _get_list(
        self, path: str, limit: int, access_token: str | None = None
    ) -> list[dict[str, Any]]:
        if not self.is_configured:
            return []
        data = await self._get_json(
            path,
            params={"limit": str(min(limit, TRAKT_PAGE_LIMIT))},
            headers=self._headers(access_token=access_token),
        )
        return data if isinstance(data, list) else []

    async def get_trending(
        self, media_type: MediaType, limit: int = 50, period: str | None = None
    ) -> list[dict[str, Any]]:
        """Trending titles.

        Without a period this is Trakt's live "watching now" list; with one it
        is the most watched list for that window (daily, weekly, ...).
        """
        kind = media_type.trakt_type
        path = f"/{kind}/watched/{period}" if period else f"/{kind}/trending"
        return await self._get_list(path, limit)

    async def get_popular(self, media_type: MediaType, limit: int = 50) -> list[dict[str, Any]]:
        return await self._get_list(f"/{media_type.trakt_type}/popular", limit)

    async def get_recommendations(
        self, media_type: MediaType, access_token: str, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Personal recommendations for the user owning `access_token`."""
        if not access_token:
            return []
        return await self._get_list(
            f"/recommendations/{media_type.trakt_type}", limit, access_token=access_token
        )
