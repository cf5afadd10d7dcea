"""Full-metadata enrichment for the top of the ranked list."""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING

from reelscout.constants import ENRICHMENT_BATCH_SIZE
from reelscout.discovery.types import RawCandidate, ScoredCandidate
from reelscout.models.media import MediaType

if TYPE_CHECKING:
    from reelscout.discovery.sources import DiscoverySources
    from reelscout.discovery.storage import DiscoveryStorage

logger = logging.getLogger(__name__)


class EnrichmentGate:
    """Spends detail fetches (cast, crew, runtime, tagline) on the head only.

    Scores are never recomputed from the enriched data, and a failed fetch
    keeps the candidate with its cheap fields. With a storage, fresh details
    are written back to the shared pool, and candidates that already carry
    them (read from an enriched pool entry) are not fetched again.
    """

    def __init__(
        self,
        sources: "DiscoverySources",
        batch_size: int = ENRICHMENT_BATCH_SIZE,
        storage: "DiscoveryStorage | None" = None,
    ):
        self.sources = sources
        self.batch_size = batch_size
        self.storage = storage

    async def _enrich_one(self, scored: ScoredCandidate) -> bool:
        """Returns True when details were fetched in this call."""
        if scored.candidate.has_full_details:
            scored.is_enriched = True
            return False

        try:
            enriched = await self.sources.fetch_full_details(scored.candidate)
        except Exception as e:
            logger.warning(
                f"Enrichment failed for tmdb {scored.tmdb_id} ({scored.title}): "
                f"{type(e).__name__}: {e}"
            )
            scored.is_enriched = False
            return False

        if enriched is None:
            scored.is_enriched = False
            return False
        # Identity and provenance stay with the scored instance
        scored.candidate = replace(
            enriched,
            tmdb_id=scored.candidate.tmdb_id,
            media_type=scored.candidate.media_type,
            source=scored.candidate.source,
            source_media_id=scored.candidate.source_media_id,
            has_full_details=True,
        )
        scored.is_enriched = True
        return True

    async def _write_back(self, fetched: list[RawCandidate]) -> None:
        by_type: dict[MediaType, list[RawCandidate]] = defaultdict(list)
        for candidate in fetched:
            by_type[candidate.media_type].append(candidate)
        for media_type, candidates in by_type.items():
            updated = await self.storage.update_pool_enrichment(media_type, candidates)
            logger.debug(f"Stored details for {updated} {media_type.value} pool entries")

    async def apply(
        self, candidates: list[ScoredCandidate], max_enriched: int
    ) -> list[ScoredCandidate]:
        """Enrich the first `max_enriched` candidates and return the full list.

        The result is re-sorted (stable) by final_score, which leaves the
        incoming order untouched when it was already ranked.
        """
        head = candidates[:max_enriched]
        for tail_candidate in candidates[max_enriched:]:
            tail_candidate.is_enriched = False

        fetched: list[RawCandidate] = []
        for start in range(0, len(head), self.batch_size):
            batch = head[start : start + self.batch_size]
            results = await asyncio.gather(*(self._enrich_one(c) for c in batch))
            fetched.extend(c.candidate for c, was_fetched in zip(batch, results) if was_fetched)

        if self.storage is not None and fetched:
            await self._write_back(fetched)

        enriched_count = sum(1 for c in head if c.is_enriched)
        logger.info(
            f"Enriched {enriched_count}/{len(head)} candidates, {len(fetched)} fetched "
            f"({len(candidates) - len(head)} kept with basic data)"
        )
        return sorted(candidates, key=lambda c: c.final_score, reverse=True)
