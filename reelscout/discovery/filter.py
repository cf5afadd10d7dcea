"""Removal of candidates the user already owns, has watched or has requested."""

import logging
from typing import TYPE_CHECKING

from reelscout.discovery.types import RawCandidate
from reelscout.models.media import MediaType

if TYPE_CHECKING:
    from reelscout.discovery.storage import DiscoveryStorage

logger = logging.getLogger(__name__)


def exclude_known(
    candidates: list[RawCandidate], excluded_ids: set[int]
) -> list[RawCandidate]:
    """Order-preserving set difference by TMDB id, also dropping repeated ids."""
    filtered: list[RawCandidate] = []
    seen: set[int] = set()
    for candidate in candidates:
        if candidate.tmdb_id in excluded_ids or candidate.tmdb_id in seen:
            continue
        seen.add(candidate.tmdb_id)
        filtered.append(candidate)
    return filtered


async def filter_candidates(
    storage: "DiscoveryStorage",
    user_id: int,
    media_type: MediaType,
    candidates: list[RawCandidate],
) -> list[RawCandidate]:
    """Drop anything in the library, the user's watch history or open requests.

    Storage errors are not caught: without the watched set the run can't
    tell what is new, so it has to fail.
    """
    library_ids = await storage.get_library_tmdb_ids(media_type)
    watched_ids = await storage.get_watched_tmdb_ids(user_id, media_type)
    requested_ids = await storage.get_requested_tmdb_ids(user_id, media_type)
    filtered = exclude_known(candidates, library_ids | watched_ids | requested_ids)
    logger.debug(
        f"Filtered {len(candidates)} -> {len(filtered)} candidates for user {user_id} "
        f"({len(library_ids)} in library, {len(watched_ids)} watched, "
        f"{len(requested_ids)} requested)"
    )
    return filtered
