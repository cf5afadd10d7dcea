"""Library, watch history and content embedding tables read by discovery."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reelscout.models.base import Base, TimestampMixin


class MediaType(str, enum.Enum):
    """Type of media handled by discovery."""

    MOVIE = "movie"
    SERIES = "series"

    @property
    def tmdb_type(self) -> str:
        """TMDB path segment ("movie" or "tv")."""
        return "movie" if self is MediaType.MOVIE else "tv"

    @property
    def trakt_type(self) -> str:
        """Trakt path segment ("movies" or "shows")."""
        return "movies" if self is MediaType.MOVIE else "shows"


class LibraryItem(Base, TimestampMixin):
    """Item held by the media server (shared by all its users)."""

    __tablename__ = "library_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genres: Mapped[list] = mapped_column(JSON, default=list)

    __table_args__ = (
        UniqueConstraint("media_type", "tmdb_id", name="uq_library_item_type_tmdb"),
    )


class WatchHistory(Base):
    """Aggregated watch record for a user and title."""

    __tablename__ = "watch_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    genres: Mapped[list] = mapped_column(JSON, default=list)
    play_count: Mapped[int] = mapped_column(Integer, default=1)
    last_played_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "media_type", "tmdb_id", name="uq_watch_history_user_type_tmdb"),
        Index("ix_watch_history_user_played", "user_id", "last_played_at"),
    )


class UserRating(Base, TimestampMixin):
    """Explicit user rating on a 0-10 scale."""

    __tablename__ = "user_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "media_type", "tmdb_id", name="uq_user_rating_user_type_tmdb"),
    )


class ContentEmbedding(Base, TimestampMixin):
    """Content embedding for a TMDB title, maintained by the embedding job."""

    __tablename__ = "content_embeddings"

    id: Mapped[int] = mapped_column(primary_key=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    embedding: Mapped[list] = mapped_column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("media_type", "tmdb_id", name="uq_content_embedding_type_tmdb"),
    )
