"""TMDB API client for discovery candidates and full metadata."""

from typing import Any

import httpx

from reelscout.config import get_settings
from reelscout.constants import TMDB_API_BASE_URL
from reelscout.models.media import MediaType
from reelscout.services.sources.base import SourceClient
from reelscout.utils.cache import DETAILS_TTL, cached
from reelscout.utils.rate_limiter import RateLimiter
from reelscout.utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig


class TMDBClient(SourceClient):
    """Client for the TMDB v3 API.

    Accepts either a v3 API key (sent as a query parameter) or a v4 read
    access token (sent as a Bearer header).
    """

    service = "tmdb"
    base_url = TMDB_API_BASE_URL

    def __init__(
        self,
        api_key: str | None = None,
        language: str | None = None,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    ) -> None:
        super().__init__(client=client, limiter=limiter, retry_config=retry_config)
        settings = get_settings()
        self.api_key = settings.tmdb_api_key if api_key is None else api_key
        self.language = language or settings.tmdb_language
        # Support both API key v3 and Bearer token
        self.use_api_key_param = not self.api_key.startswith("eyJ")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self, **kwargs: Any) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if not self.use_api_key_param:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _params(self, **params: Any) -> dict[str, str]:
        query = {"language": self.language}
        query.update({k: str(v) for k, v in params.items() if v is not None})
        if self.use_api_key_param:
            query["api_key"] = self.api_key
        return query

    async def _get_results(self, path: str, **params: Any) -> list[dict[str, Any]]:
        if not self.is_configured:
            return []
        data = await self._get_json(path, params=self._params(**params))
        if not data:
            return []
        return data.get("results", [])

    async def discover(
        self,
        media_type: MediaType,
        page: int = 1,
        sort_by: str = "popularity.desc",
        vote_count_gte: int | None = None,
        vote_average_gte: float | None = None,
        with_genres: list[int] | None = None,
        with_original_language: list[str] | None = None,
        year_start: int | None = None,
        year_end: int | None = None,
    ) -> list[dict[str, Any]]:
        """Discover movies or TV shows with filters.

        Args:
            media_type: Movie or series
            page: Page number (1-based)
            sort_by: Sort order (popularity.desc, vote_average.desc, etc.)
            vote_count_gte: Minimum vote count
            vote_average_gte: Minimum vote average
            with_genres: Genre ids, any of which must match
            with_original_language: ISO 639-1 codes, any of which must match
            year_start: Earliest release year
            year_end: Latest release year

        Returns:
            Raw TMDB result objects
        """
        date_field = (
            "primary_release_date" if media_type is MediaType.MOVIE else "first_air_date"
        )
        params: dict[str, Any] = {
            "sort_by": sort_by,
            "include_adult": "false",
            "page": page,
            "vote_count.gte": vote_count_gte,
            "vote_average.gte": vote_average_gte,
        }
        if with_genres:
            params["with_genres"] = "|".join(str(g) for g in with_genres)
        if with_original_language:
            params["with_original_language"] = "|".join(with_original_language)
        if year_start:
            params[f"{date_field}.gte"] = f"{year_start}-01-01"
        if year_end:
            params[f"{date_field}.lte"] = f"{year_end}-12-31"

        return await self._get_results(f"/discover/{media_type.tmdb_type}", **params)

    async def get_recommendations(
        self, media_type: MediaType, tmdb_id: int, page: int = 1
    ) -> list[dict[str, Any]]:
        """TMDB recommendations for a movie or TV show."""
        return await self._get_results(
            f"/{media_type.tmdb_type}/{tmdb_id}/recommendations", page=page
        )

    async def get_similar(
        self, media_type: MediaType, tmdb_id: int, page: int = 1
    ) -> list[dict[str, Any]]:
        """Titles TMDB considers similar to a movie or TV show."""
        return await self._get_results(f"/{media_type.tmdb_type}/{tmdb_id}/similar", page=page)

    async def get_details(self, media_type: MediaType, tmdb_id: int) -> dict[str, Any] | None:
        """Full details with credits and external ids, None when unknown."""
        if not self.is_configured:
            return None
        return await self._fetch_details(media_type.tmdb_type, tmdb_id, self.language)

    @cached("tmdb:details", ttl=DETAILS_TTL)
    async def _fetch_details(
        self, tmdb_type: str, tmdb_id: int, language: str
    ) -> dict[str, Any] | None:
        """Fetch details from the TMDB API (cached)."""
        return await self._get_json(
            f"/{tmdb_type}/{tmdb_id}",
            params=self._params(append_to_response="credits,external_ids"),
        )
