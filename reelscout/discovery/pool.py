"""Shared candidate pool.

Global feeds are identical for every user, so they are fetched once per batch
cycle and media type, persisted, and then read back for each user.
"""

import logging
from typing import TYPE_CHECKING

from reelscout.discovery.types import DiscoveryConfig, GlobalFetchResult, RawCandidate
from reelscout.models.media import MediaType
from reelscout.utils.metrics import metrics

if TYPE_CHECKING:
    from reelscout.discovery.sources import DiscoverySources
    from reelscout.discovery.storage import DiscoveryStorage

logger = logging.getLogger(__name__)


def merge_with_pool(
    personalized: list[RawCandidate], pool: list[RawCandidate]
) -> list[RawCandidate]:
    """Personalized candidates first; pool entries fill in the rest.

    On an id collision the personalized instance wins, keeping its source
    and seed link. Duplicate ids inside `personalized` keep the first one.
    """
    merged: list[RawCandidate] = []
    seen: set[int] = set()
    for candidate in (*personalized, *pool):
        if candidate.tmdb_id in seen:
            continue
        seen.add(candidate.tmdb_id)
        merged.append(candidate)
    return merged


class CandidatePool:
    """Read-through cache over the persisted pool, keyed by media type.

    `refresh` writes the pool once per cycle; `load` reads it and memoizes the
    result until `invalidate` is called at the start of the next cycle.
    """

    def __init__(self, storage: "DiscoveryStorage", sources: "DiscoverySources") -> None:
        self.storage = storage
        self.sources = sources
        self._loaded: dict[MediaType, list[RawCandidate]] = {}

    async def refresh(self, media_type: MediaType, config: DiscoveryConfig) -> GlobalFetchResult:
        """Fetch global candidates, fill basic metadata and upsert them."""
        result = await self.sources.fetch_global_candidates(media_type, config)
        enriched = await self.sources.enrich_basic_data(result.candidates)
        inserted, updated = await self.storage.upsert_pool_candidates(
            media_type, enriched, provenance=result.provenance
        )
        self._loaded.pop(media_type, None)
        metrics.discovery_pool_size.set(len(enriched), media_type=media_type.value)
        logger.info(
            f"Pool refreshed for {media_type.value}: {inserted} new, {updated} updated "
            f"({result.total_fetched} fetched, {result.unique_count} unique)"
        )
        return result

    async def load(self, media_type: MediaType) -> list[RawCandidate]:
        """Pool candidates for this cycle, read from storage on first use."""
        if media_type not in self._loaded:
            entries = await self.storage.get_pool_candidates(media_type)
            self._loaded[media_type] = [self.storage.pool_candidate_to_raw(e) for e in entries]
            logger.debug(f"Loaded {len(entries)} pool candidates for {media_type.value}")
        return list(self._loaded[media_type])

    def invalidate(self) -> None:
        self._loaded.clear()

    async def prune(self, older_than_days: int) -> int:
        """Drop entries no refresh has touched in `older_than_days` days."""
        removed = await self.storage.clear_old_pool_entries(older_than_days)
        self.invalidate()
        return removed
