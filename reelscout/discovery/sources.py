"""Candidate acquisition from the external recommendation sources.

Global sources (TMDB discover, Trakt trending/popular, MDBList lists) are the
same for every user and feed the shared pool. Personalized sources need the
user's history or Trakt token and are fetched per run.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable
from typing import Any

from reelscout.config import get_settings
from reelscout.constants import (
    POOL_ENRICHMENT_BATCH_SIZE,
    SEED_RESULTS_PER_ITEM,
    TMDB_MAX_DISCOVER_PAGES,
    TMDB_PAGE_SIZE,
)
from reelscout.discovery.adapters import (
    apply_tmdb_details,
    from_mdblist_item,
    from_tmdb_result,
    from_trakt_item,
)
from reelscout.discovery.types import (
    DiscoveryConfig,
    DiscoveryFilterOptions,
    DiscoverySource,
    GlobalFetchResult,
    PersonalizationSeeds,
    PersonalizedFetchResult,
    RawCandidate,
)
from reelscout.models.media import MediaType
from reelscout.services.sources import MDBListClient, TMDBClient, TraktClient
from reelscout.utils.metrics import metrics

logger = logging.getLogger(__name__)


def _signal(candidate: RawCandidate) -> tuple[int, float]:
    return (candidate.vote_count or 0, candidate.popularity or 0.0)


def dedupe_keep_strongest(candidates: list[RawCandidate]) -> list[RawCandidate]:
    """Deduplicate by TMDB id.

    The surviving instance is the one with the strongest (vote_count,
    popularity) signal; it takes the list position of the first occurrence.
    """
    unique: list[RawCandidate] = []
    position: dict[int, int] = {}
    for candidate in candidates:
        idx = position.get(candidate.tmdb_id)
        if idx is None:
            position[candidate.tmdb_id] = len(unique)
            unique.append(candidate)
        elif _signal(candidate) > _signal(unique[idx]):
            unique[idx] = candidate
    return unique


class DiscoverySources:
    """Fan-out over the source clients, with per-source failure isolation."""

    def __init__(
        self,
        tmdb: TMDBClient | None = None,
        trakt: TraktClient | None = None,
        mdblist: MDBListClient | None = None,
        mdblist_list_ids: list[int] | None = None,
    ) -> None:
        self.tmdb = tmdb or TMDBClient()
        self.trakt = trakt or TraktClient()
        self.mdblist = mdblist or MDBListClient()
        self.mdblist_list_ids = (
            get_settings().mdblist_list_ids if mdblist_list_ids is None else mdblist_list_ids
        )

    async def _safe(
        self,
        source: DiscoverySource,
        media_type: MediaType,
        fetch: Awaitable[list[RawCandidate]],
    ) -> list[RawCandidate]:
        """Await one source; a failure costs that source's candidates only."""
        try:
            candidates = await fetch
        except Exception as e:
            logger.warning(
                f"Source {source} failed for {media_type.value}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            metrics.source_failures_total.inc(source=source)
            return []
        metrics.source_candidates_total.inc(
            len(candidates), source=source, media_type=media_type.value
        )
        return candidates

    # ------------------------------------------------------------------
    # Global sources
    # ------------------------------------------------------------------

    async def fetch_tmdb_discover(
        self,
        media_type: MediaType,
        config: DiscoveryConfig,
        filters: DiscoveryFilterOptions | None = None,
        sort_by: str = "popularity.desc",
    ) -> list[RawCandidate]:
        limit = config.max_candidates_per_source
        pages = min(math.ceil(limit / TMDB_PAGE_SIZE), TMDB_MAX_DISCOVER_PAGES)
        filter_args: dict[str, Any] = {}
        if filters:
            filter_args = {
                "with_genres": filters.genre_ids or None,
                "with_original_language": filters.languages or None,
                "year_start": filters.year_start,
                "year_end": filters.year_end,
            }

        candidates: list[RawCandidate] = []
        for page in range(1, pages + 1):
            results = await self.tmdb.discover(
                media_type,
                page=page,
                sort_by=sort_by,
                vote_count_gte=config.min_vote_count,
                vote_average_gte=config.min_vote_average,
                **filter_args,
            )
            candidates.extend(from_tmdb_result(r, media_type, "tmdb_discover") for r in results)
            if len(results) < TMDB_PAGE_SIZE:
                break
        return candidates[:limit]

    async def fetch_trakt_trending(
        self, media_type: MediaType, config: DiscoveryConfig
    ) -> list[RawCandidate]:
        items = await self.trakt.get_trending(
            media_type, limit=config.max_candidates_per_source, period=config.trakt_period
        )
        return [
            c for c in (from_trakt_item(i, media_type, "trakt_trending") for i in items) if c
        ]

    async def fetch_trakt_popular(
        self, media_type: MediaType, config: DiscoveryConfig
    ) -> list[RawCandidate]:
        items = await self.trakt.get_popular(media_type, limit=config.max_candidates_per_source)
        return [c for c in (from_trakt_item(i, media_type, "trakt_popular") for i in items) if c]

    async def fetch_mdblist(
        self, media_type: MediaType, config: DiscoveryConfig
    ) -> list[RawCandidate]:
        candidates: list[RawCandidate] = []
        for list_id in self.mdblist_list_ids:
            items = await self.mdblist.get_list_items(
                list_id, media_type, limit=config.max_candidates_per_source
            )
            candidates.extend(c for c in (from_mdblist_item(i, media_type) for i in items) if c)
        return candidates[: config.max_candidates_per_source]

    async def fetch_global_candidates(
        self, media_type: MediaType, config: DiscoveryConfig
    ) -> GlobalFetchResult:
        """Fetch the non-personalized candidate universe for a media type."""
        logger.info(f"Fetching global candidates for {media_type.value}")

        tmdb_discover, trakt_trending, trakt_popular, mdblist = await asyncio.gather(
            self._safe("tmdb_discover", media_type, self.fetch_tmdb_discover(media_type, config)),
            self._safe("trakt_trending", media_type, self.fetch_trakt_trending(media_type, config)),
            self._safe("trakt_popular", media_type, self.fetch_trakt_popular(media_type, config)),
            self._safe("mdblist", media_type, self.fetch_mdblist(media_type, config)),
        )

        all_candidates = [*tmdb_discover, *trakt_trending, *trakt_popular, *mdblist]
        unique = dedupe_keep_strongest(all_candidates)
        provenance: dict[int, list[str]] = {}
        for candidate in all_candidates:
            seen = provenance.setdefault(candidate.tmdb_id, [])
            if candidate.source not in seen:
                seen.append(candidate.source)
        sources = {
            "tmdb_discover": len(tmdb_discover),
            "trakt_trending": len(trakt_trending),
            "trakt_popular": len(trakt_popular),
            "mdblist": len(mdblist),
        }

        logger.info(
            f"Fetched global candidates for {media_type.value}: {sources}, "
            f"total={len(all_candidates)}, unique={len(unique)}"
        )
        return GlobalFetchResult(
            candidates=unique,
            sources=sources,
            total_fetched=len(all_candidates),
            unique_count=len(unique),
            provenance=provenance,
        )

    # ------------------------------------------------------------------
    # Personalized sources
    # ------------------------------------------------------------------

    async def _fetch_seeded(
        self,
        seeds: list[int],
        media_type: MediaType,
        source: DiscoverySource,
        config: DiscoveryConfig,
    ) -> list[RawCandidate]:
        fetch = self.tmdb.get_recommendations if source == "tmdb_recommendations" else self.tmdb.get_similar
        pages = await asyncio.gather(*(fetch(media_type, seed) for seed in seeds))
        candidates = [
            from_tmdb_result(item, media_type, source, source_media_id=seed)
            for seed, results in zip(seeds, pages)
            for item in results[:SEED_RESULTS_PER_ITEM]
        ]
        return candidates[: config.max_candidates_per_source]

    async def fetch_trakt_recommendations(
        self, media_type: MediaType, access_token: str | None, config: DiscoveryConfig
    ) -> list[RawCandidate]:
        if not access_token:
            return []
        items = await self.trakt.get_recommendations(
            media_type, access_token, limit=config.max_candidates_per_source
        )
        return [
            c
            for c in (from_trakt_item(i, media_type, "trakt_recommendations") for i in items)
            if c
        ]

    async def fetch_personalized_candidates(
        self,
        seeds: PersonalizationSeeds,
        media_type: MediaType,
        config: DiscoveryConfig,
    ) -> PersonalizedFetchResult:
        """Fetch candidates derived from one user's history and Trakt account."""
        recommendations, similar, trakt = await asyncio.gather(
            self._safe(
                "tmdb_recommendations",
                media_type,
                self._fetch_seeded(seeds.recent_tmdb_ids, media_type, "tmdb_recommendations", config),
            ),
            self._safe(
                "tmdb_similar",
                media_type,
                self._fetch_seeded(seeds.top_rated_tmdb_ids, media_type, "tmdb_similar", config),
            ),
            self._safe(
                "trakt_recommendations",
                media_type,
                self.fetch_trakt_recommendations(media_type, seeds.trakt_access_token, config),
            ),
        )
        candidates = [*trakt, *recommendations, *similar]
        return PersonalizedFetchResult(
            candidates=candidates,
            sources={
                "trakt_recommendations": len(trakt),
                "tmdb_recommendations": len(recommendations),
                "tmdb_similar": len(similar),
            },
            total_fetched=len(candidates),
        )

    async def fetch_filtered_candidates(
        self,
        media_type: MediaType,
        config: DiscoveryConfig,
        filters: DiscoveryFilterOptions,
    ) -> list[RawCandidate]:
        """Fresh TMDB discover fetch honouring the client's filters (expand path).

        Results are sorted by rating rather than popularity so the expansion
        surfaces titles the popularity-driven pool is unlikely to hold.
        """
        candidates = await self._safe(
            "tmdb_discover",
            media_type,
            self.fetch_tmdb_discover(media_type, config, filters, sort_by="vote_average.desc"),
        )
        excluded = set(filters.exclude_tmdb_ids)
        return [c for c in candidates if c.tmdb_id not in excluded]

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def enrich_basic_data(self, candidates: list[RawCandidate]) -> list[RawCandidate]:
        """Fill artwork, language, genres and votes for candidates that lack them.

        Trakt and MDBList entries carry little more than ids and titles. A
        failed lookup leaves the candidate as it was.
        """
        result = list(candidates)
        todo = [
            i
            for i, c in enumerate(candidates)
            if not c.poster_path or not c.original_language or not c.genres
        ]
        for start in range(0, len(todo), POOL_ENRICHMENT_BATCH_SIZE):
            batch = todo[start : start + POOL_ENRICHMENT_BATCH_SIZE]
            details = await asyncio.gather(
                *(self.tmdb.get_details(result[i].media_type, result[i].tmdb_id) for i in batch),
                return_exceptions=True,
            )
            for i, data in zip(batch, details):
                if isinstance(data, Exception):
                    logger.warning(f"Basic enrichment failed for tmdb {result[i].tmdb_id}: {data}")
                elif data:
                    result[i] = apply_tmdb_details(result[i], data)

        logger.debug(f"Basic enrichment looked up {len(todo)}/{len(candidates)} candidates")
        return result

    async def fetch_full_details(self, candidate: RawCandidate) -> RawCandidate | None:
        """Full metadata (credits, runtime, tagline) or None if TMDB has nothing."""
        details = await self.tmdb.get_details(candidate.media_type, candidate.tmdb_id)
        if not details:
            return None
        return apply_tmdb_details(candidate, details, full=True)
