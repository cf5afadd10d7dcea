"""Discovery run bookkeeping, shared candidate pool and per-user results."""

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from reelscout.models.base import Base, TimestampMixin, utcnow
from reelscout.models.media import MediaType


class RunStatus(str, enum.Enum):
    """Lifecycle of a discovery run. COMPLETED and FAILED are terminal."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunType(str, enum.Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class RequestStatus(str, enum.Enum):
    """State of a title the user asked to have added to the library."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DECLINED = "declined"
    AVAILABLE = "available"
    FAILED = "failed"


class DiscoveryRun(Base):
    """One pipeline execution for a (user, media type) pair."""

    __tablename__ = "discovery_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    run_type: Mapped[RunType] = mapped_column(Enum(RunType), default=RunType.SCHEDULED)
    status: Mapped[RunStatus] = mapped_column(Enum(RunStatus), default=RunStatus.RUNNING)

    # Stage counters, updated as the run progresses
    candidates_fetched: Mapped[int] = mapped_column(Integer, default=0)
    candidates_filtered: Mapped[int] = mapped_column(Integer, default=0)
    candidates_scored: Mapped[int] = mapped_column(Integer, default=0)
    candidates_stored: Mapped[int] = mapped_column(Integer, default=0)

    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_discovery_run_user_type_started", "user_id", "media_type", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<DiscoveryRun(id={self.id}, user_id={self.user_id}, status={self.status})>"


class _CandidateColumns:
    """Columns shared by pool entries and per-user candidates."""

    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    imdb_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    original_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    original_language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list] = mapped_column(JSON, default=list)  # [{id, name}]
    poster_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    backdrop_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    vote_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    vote_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    popularity: Mapped[float | None] = mapped_column(Float, nullable=True)
    network: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Full metadata, only present once enriched
    cast_members: Mapped[list] = mapped_column(JSON, default=list)
    directors: Mapped[list] = mapped_column(JSON, default=list)
    runtime_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tagline: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_enriched: Mapped[bool] = mapped_column(default=False)


class DiscoveryPoolEntry(Base, _CandidateColumns):
    """Non-personalized candidate shared by every user of a batch cycle."""

    __tablename__ = "discovery_pool"

    id: Mapped[int] = mapped_column(primary_key=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    sources: Mapped[list] = mapped_column(JSON, default=list)  # Provenance tags, only ever grows
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("media_type", "tmdb_id", name="uq_discovery_pool_type_tmdb"),
        Index("ix_discovery_pool_type_popularity", "media_type", "popularity"),
    )


class DiscoveryCandidate(Base, TimestampMixin, _CandidateColumns):
    """Ranked discovery result stored for a user."""

    __tablename__ = "discovery_candidates"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    run_id: Mapped[int | None] = mapped_column(
        ForeignKey("discovery_runs.id", ondelete="SET NULL"), nullable=True
    )
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    # "|28|878|" so a genre id can be matched with LIKE '%|28|%' on any backend
    genre_ids: Mapped[str] = mapped_column(String(500), default="||")

    # Scoring
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_media_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    final_score: Mapped[float] = mapped_column(Float, nullable=False)
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    novelty_score: Mapped[float] = mapped_column(Float, nullable=False)
    rating_score: Mapped[float] = mapped_column(Float, nullable=False)
    recency_score: Mapped[float] = mapped_column(Float, nullable=False)
    score_breakdown: Mapped[dict] = mapped_column(JSON, default=dict)

    __table_args__ = (
        UniqueConstraint("user_id", "media_type", "tmdb_id", name="uq_discovery_candidate_user_type_tmdb"),
        Index("ix_discovery_candidate_user_type_rank", "user_id", "media_type", "rank"),
    )

    def __repr__(self) -> str:
        return f"<DiscoveryCandidate(id={self.id}, title={self.title}, score={self.final_score:.2f})>"


class DiscoveryRequest(Base, TimestampMixin):
    """A title the user asked for from their discovery results.

    Open requests (anything but declined or failed) keep the title out of
    later runs.
    """

    __tablename__ = "discovery_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus), default=RequestStatus.PENDING, nullable=False
    )
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Ids assigned by the request manager once submitted
    external_request_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    external_media_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discovery_candidate_id: Mapped[int | None] = mapped_column(
        ForeignKey("discovery_candidates.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index("ix_discovery_request_user_type_tmdb", "user_id", "media_type", "tmdb_id"),
    )

    def __repr__(self) -> str:
        return f"<DiscoveryRequest(id={self.id}, tmdb_id={self.tmdb_id}, status={self.status})>"
