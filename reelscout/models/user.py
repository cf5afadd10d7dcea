"""User model and stored taste profile."""

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from reelscout.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """Media-server user that receives discovery results."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    is_enabled: Mapped[bool] = mapped_column(default=True)
    discover_enabled: Mapped[bool] = mapped_column(default=True)
    # {"algorithmSettings": {"enabled": true, "movie": {...}, "series": {...}}}
    settings: Mapped[dict] = mapped_column(JSON, default=dict)

    # Trakt integration (personalized recommendations)
    trakt_access_token: Mapped[str | None] = mapped_column(String(512), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


class UserPreference(Base, TimestampMixin):
    """Taste embeddings computed elsewhere from the user's watch history."""

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True
    )
    taste_embedding: Mapped[list | None] = mapped_column(JSON, nullable=True)
    series_taste_embedding: Mapped[list | None] = mapped_column(JSON, nullable=True)
