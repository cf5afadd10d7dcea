"""Domain types shared by the discovery pipeline stages."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from reelscout.models.media import MediaType

DiscoverySource = Literal[
    "tmdb_recommendations",
    "tmdb_similar",
    "tmdb_discover",
    "trakt_trending",
    "trakt_popular",
    "trakt_recommendations",
    "mdblist",
]


TraktPeriod = Literal["daily", "weekly", "monthly", "yearly", "all"]


@dataclass(frozen=True)
class Genre:
    id: int
    name: str


@dataclass(frozen=True)
class CastMember:
    id: int
    name: str
    character: str | None = None
    profile_path: str | None = None


@dataclass(frozen=True)
class RawCandidate:
    """A title proposed by one source, before any user-specific processing.

    Identity is (media_type, tmdb_id). Instances are never mutated; stages that
    add data build a copy with `dataclasses.replace`.
    """

    tmdb_id: int
    media_type: MediaType
    title: str
    source: DiscoverySource
    imdb_id: str | None = None
    original_title: str | None = None
    original_language: str | None = None
    release_year: int | None = None
    overview: str | None = None
    genres: tuple[Genre, ...] = ()
    poster_path: str | None = None
    backdrop_path: str | None = None
    vote_average: float | None = None
    vote_count: int | None = None
    popularity: float | None = None
    source_media_id: int | None = None
    network: str | None = None

    # Full metadata (enrichment)
    cast_members: tuple[CastMember, ...] = ()
    directors: tuple[str, ...] = ()
    runtime_minutes: int | None = None
    tagline: str | None = None
    # True once the fields above came from a successful detail fetch
    has_full_details: bool = False

    @property
    def genre_ids(self) -> list[int]:
        return [g.id for g in self.genres]

    @property
    def genre_names(self) -> list[str]:
        return [g.name for g in self.genres]


@dataclass
class ScoredCandidate:
    """RawCandidate plus the scores that rank it for one user."""

    candidate: RawCandidate
    similarity_score: float
    novelty_score: float
    rating_score: float
    recency_score: float
    source_score: float
    final_score: float
    score_breakdown: dict[str, float] = field(default_factory=dict)
    is_enriched: bool = False

    @property
    def tmdb_id(self) -> int:
        return self.candidate.tmdb_id

    @property
    def title(self) -> str:
        return self.candidate.title


class DiscoveryConfig(BaseModel):
    """Tunables for one run. Weights are non-negative and not required to sum to 1."""

    model_config = ConfigDict(frozen=True)

    max_candidates_per_source: int = Field(default=50, ge=1)
    max_total_candidates: int = Field(default=200, ge=1)
    max_enriched_candidates: int = Field(default=75, ge=0)
    target_display_count: int = Field(default=50, ge=1)
    min_vote_count: int = Field(default=50, ge=0)
    min_vote_average: float = Field(default=5.0, ge=0, le=10)
    similarity_weight: float = Field(default=0.4, ge=0)
    novelty_weight: float = Field(default=0.2, ge=0)
    popularity_weight: float = Field(default=0.2, ge=0)
    recency_weight: float = Field(default=0.2, ge=0)
    diversity_weight: float = Field(default=0.3, ge=0, le=1)
    trakt_period: TraktPeriod = "weekly"


@dataclass
class UserTasteSignal:
    """What the user already watches: an embedding and/or a genre histogram."""

    embedding: list[float] | None = None
    genre_counts: dict[str, int] = field(default_factory=dict)

    @property
    def total_genre_count(self) -> int:
        return sum(self.genre_counts.values())


@dataclass
class PersonalizationSeeds:
    """User identity inputs for the personalized sources."""

    recent_tmdb_ids: list[int] = field(default_factory=list)
    top_rated_tmdb_ids: list[int] = field(default_factory=list)
    trakt_access_token: str | None = None


@dataclass
class GlobalFetchResult:
    candidates: list[RawCandidate]
    sources: dict[str, int]
    total_fetched: int
    unique_count: int
    # tmdb_id -> every source that returned it, first seen first
    provenance: dict[int, list[str]] = field(default_factory=dict)


@dataclass
class PersonalizedFetchResult:
    candidates: list[RawCandidate]
    sources: dict[str, int]
    total_fetched: int


@dataclass
class DiscoveryPipelineResult:
    run_id: int
    candidates: list[ScoredCandidate]
    candidates_fetched: int
    candidates_filtered: int
    candidates_scored: int
    candidates_stored: int
    duration_ms: int


@dataclass
class BatchResult:
    success: int = 0
    failed: int = 0
    cancelled: bool = False
    job_id: str | None = None


@dataclass
class ProgressEvent:
    """Progress update for a batch run."""

    progress: int  # 0-100
    status: str
    step: str  # pool, users, done
    count: int = 0  # Units of work finished so far


@dataclass
class LogEvent:
    level: Literal["debug", "info", "warning", "error"]
    message: str


@dataclass
class DiscoveryFilterOptions:
    """Filters for reading stored candidates and for the expand fetch."""

    limit: int = 50
    offset: int = 0
    languages: list[str] = field(default_factory=list)
    include_unknown_language: bool = True
    genre_ids: list[int] = field(default_factory=list)
    year_start: int | None = None
    year_end: int | None = None
    min_similarity: float | None = None
    exclude_tmdb_ids: list[int] = field(default_factory=list)
