"""Tests for the TMDB, Trakt and MDBList HTTP clients."""

import httpx
import pytest

from reelscout.models.media import MediaType
from reelscout.services.sources import MDBListClient, TMDBClient, TraktClient
from reelscout.utils.rate_limiter import RateLimitConfig, RateLimiter
from reelscout.utils.retry import RetryConfig

NO_WAIT = RateLimitConfig(requests_per_second=1000.0, burst_size=100, min_interval=0.0)
FAST_RETRY = RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0)


class Recorder:
    """MockTransport handler replaying queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def fast_limiter(*services: str) -> RateLimiter:
    limiter = RateLimiter()
    for service in services:
        limiter.configure(service, NO_WAIT)
    return limiter


def tmdb_client(handler, api_key: str = "v3key") -> TMDBClient:
    return TMDBClient(
        api_key=api_key,
        language="en-US",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        limiter=fast_limiter("tmdb"),
        retry_config=FAST_RETRY,
    )


class TestTMDBClient:
    """Tests for TMDBClient."""

    @pytest.mark.asyncio
    async def test_retries_429_with_retry_after(self):
        handler = Recorder(
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"results": [{"id": 1, "title": "Heat"}]}),
        )
        client = tmdb_client(handler)

        results = await client.discover(MediaType.MOVIE, vote_count_gte=50)

        assert results == [{"id": 1, "title": "Heat"}]
        assert len(handler.requests) == 2
        request = handler.requests[-1]
        assert request.url.path == "/3/discover/movie"
        assert request.url.params["api_key"] == "v3key"
        assert request.url.params["vote_count.gte"] == "50"
        assert request.url.params["language"] == "en-US"

    @pytest.mark.asyncio
    async def test_gives_up_after_retry_cap(self):
        handler = Recorder(httpx.Response(503))
        client = tmdb_client(handler)

        assert await client.get_recommendations(MediaType.MOVIE, 550) == []
        assert len(handler.requests) == FAST_RETRY.max_retries + 1

    @pytest.mark.asyncio
    async def test_transport_error_degrades_to_none(self):
        handler = Recorder(httpx.ConnectError("connection refused"))
        client = tmdb_client(handler)

        assert await client.get_details(MediaType.MOVIE, 550) is None
        assert len(handler.requests) == FAST_RETRY.max_retries + 1

    @pytest.mark.asyncio
    async def test_not_found(self):
        handler = Recorder(httpx.Response(404, json={"status_code": 34}))
        client = tmdb_client(handler)

        assert await client.get_details(MediaType.SERIES, 1) is None
        assert handler.requests[0].url.path == "/3/tv/1"
        assert handler.requests[0].url.params["append_to_response"] == "credits,external_ids"

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_request(self):
        handler = Recorder(httpx.Response(200, json={"results": [{"id": 1}]}))
        client = tmdb_client(handler, api_key="")

        assert await client.discover(MediaType.MOVIE) == []
        assert await client.get_details(MediaType.MOVIE, 1) is None
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        handler = Recorder(httpx.Response(200, json={"results": []}))
        client = tmdb_client(handler, api_key="eyJhbGciOiJIUzI1NiJ9.token")

        await client.get_similar(MediaType.SERIES, 1396)

        request = handler.requests[0]
        assert request.url.path == "/3/tv/1396/similar"
        assert request.headers["Authorization"] == "Bearer eyJhbGciOiJIUzI1NiJ9.token"
        assert "api_key" not in request.url.params

    @pytest.mark.asyncio
    async def test_discover_filters(self):
        handler = Recorder(httpx.Response(200, json={"results": []}))
        client = tmdb_client(handler)

        await client.discover(
            MediaType.SERIES,
            with_genres=[18, 80],
            with_original_language=["ko", "ja"],
            year_start=2015,
            year_end=2020,
        )

        params = handler.requests[0].url.params
        assert params["with_genres"] == "18|80"
        assert params["with_original_language"] == "ko|ja"
        assert params["first_air_date.gte"] == "2015-01-01"
        assert params["first_air_date.lte"] == "2020-12-31"


class TestTraktClient:
    """Tests for TraktClient."""

    def make(self, handler, vip: bool = False) -> tuple[TraktClient, RateLimiter]:
        limiter = RateLimiter()
        client = TraktClient(
            client_id="trakt-id",
            vip=vip,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            limiter=limiter,
            retry_config=FAST_RETRY,
        )
        tier = limiter.get_tier("trakt")
        limiter.configure("trakt", NO_WAIT)
        return client, tier

    @pytest.mark.asyncio
    async def test_headers_and_period(self):
        handler = Recorder(httpx.Response(200, json=[{"watcher_count": 3, "movie": {"ids": {"tmdb": 1}}}]))
        client, tier = self.make(handler)

        items = await client.get_trending(MediaType.MOVIE, limit=500, period="weekly")

        assert tier == "free"
        assert len(items) == 1
        request = handler.requests[0]
        assert request.url.path == "/movies/watched/weekly"
        assert request.url.params["limit"] == "100"
        assert request.headers["trakt-api-version"] == "2"
        assert request.headers["trakt-api-key"] == "trakt-id"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_trending_without_period(self):
        handler = Recorder(httpx.Response(200, json=[]))
        client, tier = self.make(handler, vip=True)

        await client.get_trending(MediaType.SERIES)

        assert tier == "vip"
        assert handler.requests[0].url.path == "/shows/trending"

    @pytest.mark.asyncio
    async def test_recommendations_use_user_token(self):
        handler = Recorder(httpx.Response(200, json=[{"title": "Dark", "ids": {"tmdb": 70523}}]))
        client, _ = self.make(handler)

        assert await client.get_recommendations(MediaType.SERIES, "") == []
        items = await client.get_recommendations(MediaType.SERIES, "user-token")

        assert len(handler.requests) == 1
        assert handler.requests[0].url.path == "/recommendations/shows"
        assert handler.requests[0].headers["Authorization"] == "Bearer user-token"
        assert items[0]["title"] == "Dark"

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        handler = Recorder(httpx.Response(200, json={"error": "nope"}))
        client, _ = self.make(handler)
        assert await client.get_popular(MediaType.MOVIE) == []


class TestMDBListClient:
    """Tests for MDBListClient."""

    def make(self, handler, api_key: str = "mdb-key", supporter: bool = False):
        limiter = RateLimiter()
        client = MDBListClient(
            api_key=api_key,
            supporter_tier=supporter,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            limiter=limiter,
            retry_config=FAST_RETRY,
        )
        tier = limiter.get_tier("mdblist")
        limiter.configure("mdblist", NO_WAIT)
        return client, tier

    @pytest.mark.asyncio
    async def test_split_payload(self):
        handler = Recorder(
            httpx.Response(
                200,
                json={
                    "movies": [{"id": 603, "title": "The Matrix", "imdb_id": "tt0133093"}],
                    "shows": [{"id": 1399, "title": "Game of Thrones"}],
                },
            )
        )
        client, tier = self.make(handler, supporter=True)

        movies = await client.get_list_items(42, MediaType.MOVIE)

        assert tier == "supporter"
        assert movies == [
            {"id": 603, "title": "The Matrix", "imdb_id": "tt0133093", "tmdb_id": 603}
        ]
        request = handler.requests[0]
        assert request.url.path == "/lists/42/items"
        assert request.url.params["apikey"] == "mdb-key"

    @pytest.mark.asyncio
    async def test_flat_payload_filtered_by_media_type(self):
        handler = Recorder(
            httpx.Response(
                200,
                json=[
                    {"tmdbid": 1, "imdbid": "tt1", "mediatype": "movie", "title": "A"},
                    {"tmdbid": 2, "mediatype": "show", "title": "B"},
                ],
            )
        )
        client, tier = self.make(handler)

        shows = await client.get_list_items(7, MediaType.SERIES)

        assert tier == "free"
        assert [s["tmdb_id"] for s in shows] == [2]

    @pytest.mark.asyncio
    async def test_missing_key(self):
        handler = Recorder(httpx.Response(200, json=[]))
        client, _ = self.make(handler, api_key="")
        assert await client.get_list_items(1, MediaType.MOVIE) == []
        assert handler.requests == []
