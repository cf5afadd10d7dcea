"""MDBList client for curated public lists."""

from typing import Any

import httpx

from reelscout.config import get_settings
from reelscout.constants import MDBLIST_API_BASE_URL
from reelscout.models.media import MediaType
from reelscout.services.sources.base import SourceClient
from reelscout.utils.rate_limiter import RateLimiter
from reelscout.utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig


class MDBListClient(SourceClient):
    """Client for MDBList. Supporter accounts get a four times faster rate limit."""

    service = "mdblist"
    base_url = MDBLIST_API_BASE_URL

    def __init__(
        self,
        api_key: str | None = None,
        supporter_tier: bool | None = None,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    ) -> None:
        super().__init__(client=client, limiter=limiter, retry_config=retry_config)
        settings = get_settings()
        self.api_key = settings.mdblist_api_key if api_key is None else api_key
        supporter = settings.mdblist_supporter_tier if supporter_tier is None else supporter_tier
        self._limiter.set_tier(self.service, "supporter" if supporter else "free")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def get_list_items(
        self, list_id: int, media_type: MediaType, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Items of a list, restricted to one media type.

        Item ids are normalized to `tmdb_id` / `imdb_id` keys since the API
        has used both `id` and `tmdbid` over time.
        """
        if not self.is_configured:
            return []

        data = await self._get_json(
            f"/lists/{list_id}/items",
            params={"apikey": self.api_key, "limit": str(limit)},
        )
        if not data:
            return []

        wanted = "movie" if media_type is MediaType.MOVIE else "show"
        if isinstance(data, list):
            items = [i for i in data if i.get("mediatype", wanted) == wanted]
        else:
            items = data.get("movies" if wanted == "movie" else "shows")
            if items is None:
                items = [i for i in data.get("items", []) if i.get("mediatype", wanted) == wanted]

        return [_normalize_item(item) for item in items[:limit]]


def _normalize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {
        **item,
        "tmdb_id": item.get("id") or item.get("tmdbid") or item.get("tmdb_id"),
        "imdb_id": item.get("imdb_id") or item.get("imdbid"),
    }
