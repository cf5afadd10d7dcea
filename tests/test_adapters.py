"""Tests for source payload adapters."""

from reelscout.discovery.adapters import (
    apply_tmdb_details,
    from_mdblist_item,
    from_tmdb_result,
    from_trakt_item,
)
from reelscout.models.media import MediaType


class TestFromTmdbResult:
    """Tests for from_tmdb_result."""

    def test_movie(self):
        candidate = from_tmdb_result(
            {
                "id": 27205,
                "title": "Inception",
                "original_title": "Inception",
                "release_date": "2010-07-15",
                "genre_ids": [28, 878, 99999],
                "vote_average": 8.4,
                "vote_count": 35000,
                "popularity": 90.5,
            },
            MediaType.MOVIE,
            "tmdb_recommendations",
            source_media_id=155,
        )
        assert candidate.title == "Inception"
        assert candidate.release_year == 2010
        # Unknown genre ids are dropped
        assert candidate.genre_names == ["Action", "Science Fiction"]
        assert candidate.source_media_id == 155

    def test_series_uses_name_and_air_date(self):
        candidate = from_tmdb_result(
            {"id": 1396, "name": "Breaking Bad", "first_air_date": "2008-01-20", "genre_ids": [18]},
            MediaType.SERIES,
            "tmdb_discover",
        )
        assert candidate.title == "Breaking Bad"
        assert candidate.release_year == 2008
        assert candidate.genre_ids == [18]

    def test_missing_date(self):
        candidate = from_tmdb_result({"id": 1, "title": "X", "release_date": ""}, MediaType.MOVIE, "tmdb_discover")
        assert candidate.release_year is None


class TestFromTraktItem:
    """Tests for from_trakt_item."""

    def test_wrapped_trending_item(self):
        candidate = from_trakt_item(
            {
                "watchers": 120,
                "show": {
                    "title": "Severance",
                    "year": 2022,
                    "ids": {"tmdb": 95396, "imdb": "tt11280740"},
                    "genres": ["drama", "science-fiction"],
                    "network": "Apple TV+",
                },
            },
            MediaType.SERIES,
            "trakt_trending",
        )
        assert candidate.tmdb_id == 95396
        assert candidate.imdb_id == "tt11280740"
        assert candidate.popularity == 120.0
        assert candidate.network == "Apple TV+"
        assert "Drama" in candidate.genre_names

    def test_no_tmdb_id(self):
        assert from_trakt_item({"title": "X", "ids": {"trakt": 1}}, MediaType.MOVIE, "trakt_popular") is None


class TestFromMdblistItem:
    def test_requires_tmdb_id(self):
        assert from_mdblist_item({"title": "X"}, MediaType.MOVIE) is None
        candidate = from_mdblist_item({"tmdb_id": 5, "title": "Y", "year": 1999}, MediaType.MOVIE)
        assert candidate.source == "mdblist"
        assert candidate.release_year == 1999


class TestApplyTmdbDetails:
    """Tests for apply_tmdb_details."""

    def test_basic_fills_only_missing_fields(self, make_raw):
        candidate = make_raw(1, media_type=MediaType.SERIES, poster_path="/keep.jpg")
        details = {
            "poster_path": "/other.jpg",
            "backdrop_path": "/b.jpg",
            "networks": [{"name": "HBO"}],
            "tagline": "ignored in basic mode",
            "external_ids": {"imdb_id": "tt0944947"},
        }

        updated = apply_tmdb_details(candidate, details)

        assert updated.poster_path == "/keep.jpg"
        assert updated.backdrop_path == "/b.jpg"
        assert updated.network == "HBO"
        assert updated.imdb_id == "tt0944947"
        assert updated.tagline is None

    def test_full_series_uses_creators(self, make_raw):
        candidate = make_raw(1, media_type=MediaType.SERIES)
        details = {
            "created_by": [{"name": "Vince Gilligan"}],
            "episode_run_time": [47],
            "tagline": "Remember my name",
            "credits": {"cast": [{"id": 17419, "name": "Bryan Cranston", "character": "Walter"}]},
        }

        updated = apply_tmdb_details(candidate, details, full=True)

        assert updated.directors == ("Vince Gilligan",)
        assert updated.runtime_minutes == 47
        assert updated.cast_members[0].character == "Walter"
        assert updated.tagline == "Remember my name"
