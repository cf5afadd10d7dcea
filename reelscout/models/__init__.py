"""SQLAlchemy models."""

from reelscout.models.base import Base
from reelscout.models.discovery import (
    DiscoveryCandidate,
    DiscoveryPoolEntry,
    DiscoveryRequest,
    DiscoveryRun,
    RequestStatus,
    RunStatus,
    RunType,
)
from reelscout.models.media import (
    ContentEmbedding,
    LibraryItem,
    MediaType,
    UserRating,
    WatchHistory,
)
from reelscout.models.user import User, UserPreference

__all__ = [
    "Base",
    "User",
    "UserPreference",
    "MediaType",
    "LibraryItem",
    "WatchHistory",
    "UserRating",
    "ContentEmbedding",
    "DiscoveryRun",
    "DiscoveryPoolEntry",
    "DiscoveryCandidate",
    "DiscoveryRequest",
    "RequestStatus",
    "RunStatus",
    "RunType",
]
