"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from dataclasses import replace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reelscout.discovery.pipeline import DiscoveryPipeline
from reelscout.discovery.storage import DiscoveryStorage
from reelscout.discovery.types import (
    DiscoveryConfig,
    Genre,
    GlobalFetchResult,
    PersonalizedFetchResult,
    RawCandidate,
    ScoredCandidate,
)
from reelscout.models.base import Base
from reelscout.models.media import MediaType
from reelscout.models.user import User


# Test database URL (uses SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ACTION = Genre(id=28, name="Action")
DRAMA = Genre(id=18, name="Drama")
COMEDY = Genre(id=35, name="Comedy")
SCIFI = Genre(id=878, name="Science Fiction")


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a fresh in-memory database."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def storage(db_session: AsyncSession) -> DiscoveryStorage:
    return DiscoveryStorage(db_session)


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a discovery-enabled user."""
    user = User(username="testuser", is_enabled=True, discover_enabled=True, settings={})
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create another user for isolation tests."""
    user = User(username="otheruser", is_enabled=True, discover_enabled=True, settings={})
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def make_raw():
    """Factory for RawCandidate with sensible defaults."""

    def factory(tmdb_id: int, **overrides) -> RawCandidate:
        fields = {
            "media_type": MediaType.MOVIE,
            "title": f"Title {tmdb_id}",
            "source": "tmdb_discover",
            "original_language": "en",
            "release_year": 2020,
            "genres": (ACTION,),
            "vote_average": 7.0,
            "vote_count": 100,
            "popularity": 10.0,
        }
        fields.update(overrides)
        return RawCandidate(tmdb_id=tmdb_id, **fields)

    return factory


@pytest.fixture
def make_scored(make_raw):
    """Factory for ScoredCandidate with all sub-scores at 0.5."""

    def factory(tmdb_id: int, final_score: float = 0.5, **overrides) -> ScoredCandidate:
        return ScoredCandidate(
            candidate=make_raw(tmdb_id, **overrides),
            similarity_score=0.5,
            novelty_score=0.5,
            rating_score=0.5,
            recency_score=0.5,
            source_score=0.5,
            final_score=final_score,
            score_breakdown={"similarity": 0.5},
        )

    return factory


class FakeSources:
    """Canned replacement for DiscoverySources.

    Tests assign `global_candidates`, `personalized` and `filtered`; entries
    are served per media type. `failing_details` makes full-detail fetches
    raise for those ids.
    """

    def __init__(self) -> None:
        self.global_candidates: list[RawCandidate] = []
        self.personalized: list[RawCandidate] = []
        self.filtered: list[RawCandidate] = []
        self.failing_details: set[int] = set()
        self.global_error: Exception | None = None
        self.global_calls: list[MediaType] = []
        self.detail_calls: list[int] = []
        self.seeds: list = []

    async def fetch_global_candidates(self, media_type, config) -> GlobalFetchResult:
        self.global_calls.append(media_type)
        if self.global_error is not None:
            raise self.global_error
        candidates = [c for c in self.global_candidates if c.media_type is media_type]
        return GlobalFetchResult(
            candidates=candidates,
            sources={"tmdb_discover": len(candidates)},
            total_fetched=len(candidates),
            unique_count=len(candidates),
            provenance={c.tmdb_id: [c.source] for c in candidates},
        )

    async def enrich_basic_data(self, candidates):
        return list(candidates)

    async def fetch_personalized_candidates(self, seeds, media_type, config):
        self.seeds.append(seeds)
        candidates = [c for c in self.personalized if c.media_type is media_type]
        return PersonalizedFetchResult(
            candidates=candidates,
            sources={"tmdb_recommendations": len(candidates)},
            total_fetched=len(candidates),
        )

    async def fetch_filtered_candidates(self, media_type, config, filters):
        excluded = set(filters.exclude_tmdb_ids)
        return [
            c
            for c in self.filtered
            if c.media_type is media_type and c.tmdb_id not in excluded
        ]

    async def fetch_full_details(self, candidate):
        self.detail_calls.append(candidate.tmdb_id)
        if candidate.tmdb_id in self.failing_details:
            raise RuntimeError("TMDB unavailable")
        return replace(candidate, tagline=f"Tagline {candidate.tmdb_id}", runtime_minutes=120)


@pytest.fixture
def fake_sources() -> FakeSources:
    return FakeSources()


@pytest.fixture
def discovery_config() -> DiscoveryConfig:
    return DiscoveryConfig()


@pytest.fixture
def pipeline(
    storage: DiscoveryStorage, fake_sources: FakeSources, discovery_config: DiscoveryConfig
) -> DiscoveryPipeline:
    return DiscoveryPipeline(storage, sources=fake_sources, admin_config=discovery_config)
