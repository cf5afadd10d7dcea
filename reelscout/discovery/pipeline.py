"""Discovery run orchestration.

A run for one (user, media type) goes:

    fetch (pool + personalized) -> filter -> score -> diversity selection
    -> enrichment -> store

and is recorded as a DiscoveryRun that is created before the first fetch,
updated after every stage, and finalized exactly once as completed or
failed. Batch mode refreshes the shared pool once per media type, then runs
every enabled user sequentially so all users share the upstream rate limits.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from reelscout.config import get_settings
from reelscout.discovery.diversity import apply_diversity_selection
from reelscout.discovery.enrichment import EnrichmentGate
from reelscout.discovery.errors import DiscoveryDisabledError, UserNotFoundError
from reelscout.discovery.filter import filter_candidates
from reelscout.discovery.pool import CandidatePool, merge_with_pool
from reelscout.discovery.scorer import score_candidates
from reelscout.discovery.sources import DiscoverySources, dedupe_keep_strongest
from reelscout.discovery.storage import DiscoveryStorage
from reelscout.discovery.types import (
    BatchResult,
    DiscoveryConfig,
    DiscoveryFilterOptions,
    DiscoveryPipelineResult,
    LogEvent,
    ProgressEvent,
    RawCandidate,
    ScoredCandidate,
)
from reelscout.discovery.weights import get_effective_config
from reelscout.models.discovery import DiscoveryRun, RunStatus, RunType
from reelscout.models.media import MediaType
from reelscout.models.user import User
from reelscout.utils.logging import LogContext
from reelscout.utils.metrics import metrics

logger = logging.getLogger(__name__)

MEDIA_TYPES = (MediaType.MOVIE, MediaType.SERIES)

ProgressCallback = Callable[[ProgressEvent], None]
LogCallback = Callable[[LogEvent], None]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class DiscoveryPipeline:
    """Runs discovery for one user or for every enabled user."""

    def __init__(
        self,
        storage: DiscoveryStorage,
        sources: DiscoverySources | None = None,
        pool: CandidatePool | None = None,
        enrichment_gate: EnrichmentGate | None = None,
        admin_config: DiscoveryConfig | None = None,
    ) -> None:
        self.storage = storage
        self.sources = sources or DiscoverySources()
        self.pool = pool or CandidatePool(storage, self.sources)
        self.enrichment_gate = enrichment_gate or EnrichmentGate(self.sources, storage=storage)
        self.admin_config = admin_config or get_settings().discovery_config()

    # ------------------------------------------------------------------
    # Single run
    # ------------------------------------------------------------------

    async def _execute(
        self,
        user: User,
        media_type: MediaType,
        config: DiscoveryConfig,
        run_type: RunType,
        fetch: Callable[[], Awaitable[list[RawCandidate]]],
    ) -> DiscoveryPipelineResult:
        user_id = user.id
        log = LogContext(logger, user=str(user_id), media=media_type.value)
        start = time.monotonic()
        run = await self.storage.create_run(user_id, media_type, run_type)
        # A rollback expires ORM instances, so only plain values are used from here on
        run_id = run.id
        log = log.with_context(run=run_id)
        counts = {"fetched": 0, "filtered": 0, "scored": 0, "stored": 0}

        try:
            final = await self._process(user_id, media_type, config, run_id, fetch, counts, log)
            duration_ms = _elapsed_ms(start)
            await self.storage.finalize_run(run_id, RunStatus.COMPLETED, duration_ms)
        except Exception as e:
            duration_ms = _elapsed_ms(start)
            log.error(f"Run failed: {e}", exc_info=True)
            await self.storage.rollback()
            await self.storage.finalize_run(run_id, RunStatus.FAILED, duration_ms, str(e))
            metrics.discovery_runs_total.inc(media_type=media_type.value, status="failed")
            raise

        metrics.discovery_runs_total.inc(media_type=media_type.value, status="completed")
        metrics.discovery_run_duration_seconds.observe(
            duration_ms / 1000, media_type=media_type.value
        )
        log.info(
            f"Completed in {duration_ms}ms: fetched={counts['fetched']} "
            f"filtered={counts['filtered']} scored={counts['scored']} stored={counts['stored']}"
        )
        return DiscoveryPipelineResult(
            run_id=run_id,
            candidates=final,
            candidates_fetched=counts["fetched"],
            candidates_filtered=counts["filtered"],
            candidates_scored=counts["scored"],
            candidates_stored=counts["stored"],
            duration_ms=duration_ms,
        )

    async def _process(
        self,
        user_id: int,
        media_type: MediaType,
        config: DiscoveryConfig,
        run_id: int,
        fetch: Callable[[], Awaitable[list[RawCandidate]]],
        counts: dict[str, int],
        log: LogContext,
    ) -> list[ScoredCandidate]:
        """Run the stages, recording counters as they complete.

        Nothing fetched (every source down) or nothing left after filtering
        ends the run early and leaves the previously stored results alone.
        """
        candidates = await fetch()
        counts["fetched"] = len(candidates)
        await self.storage.update_run_stats(run_id, candidates_fetched=counts["fetched"])
        if not candidates:
            log.warning("No candidates fetched, keeping previously stored results")
            return []
        log.info(f"Fetched {counts['fetched']} candidates")

        filtered = await filter_candidates(self.storage, user_id, media_type, candidates)
        counts["filtered"] = len(filtered)
        await self.storage.update_run_stats(run_id, candidates_filtered=counts["filtered"])
        if not filtered:
            log.info("Nothing left after filtering, keeping previously stored results")
            return []

        scored = await score_candidates(self.storage, user_id, media_type, filtered, config)
        counts["scored"] = len(scored)
        await self.storage.update_run_stats(run_id, candidates_scored=counts["scored"])

        selected = apply_diversity_selection(
            scored, config.max_total_candidates, config.diversity_weight
        )
        selected.sort(key=lambda c: c.final_score, reverse=True)
        final = await self.enrichment_gate.apply(selected, config.max_enriched_candidates)

        counts["stored"] = await self.storage.store_candidates(
            user_id, media_type, run_id, final
        )
        await self.storage.update_run_stats(run_id, candidates_stored=counts["stored"])
        return final

    async def generate_for_user(
        self,
        user: User,
        media_type: MediaType,
        config: DiscoveryConfig,
        run_type: RunType = RunType.SCHEDULED,
    ) -> DiscoveryPipelineResult:
        """Standalone run that fetches the global sources itself (no pool)."""

        async def fetch() -> list[RawCandidate]:
            seeds = await self.storage.get_personalization_seeds(user, media_type)
            global_result, personalized = await asyncio.gather(
                self.sources.fetch_global_candidates(media_type, config),
                self.sources.fetch_personalized_candidates(seeds, media_type, config),
            )
            pool = await self.sources.enrich_basic_data(global_result.candidates)
            return merge_with_pool(dedupe_keep_strongest(personalized.candidates), pool)

        return await self._execute(user, media_type, config, run_type, fetch)

    async def generate_for_user_with_pool(
        self,
        user: User,
        media_type: MediaType,
        config: DiscoveryConfig,
        pool_candidates: list[RawCandidate],
        run_type: RunType = RunType.SCHEDULED,
    ) -> DiscoveryPipelineResult:
        """Run that only fetches personalized sources and reuses the shared pool."""

        async def fetch() -> list[RawCandidate]:
            seeds = await self.storage.get_personalization_seeds(user, media_type)
            personalized = await self.sources.fetch_personalized_candidates(
                seeds, media_type, config
            )
            return merge_with_pool(personalized.candidates, pool_candidates)

        return await self._execute(user, media_type, config, run_type, fetch)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def generate_for_all_users(
        self,
        config: DiscoveryConfig | None = None,
        job_id: str | None = None,
        on_progress: ProgressCallback | None = None,
        on_log: LogCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Refresh the pool, then run discovery for every enabled user.

        A failing user or pool refresh is logged and counted; the batch goes
        on. Cancellation is honoured between units of work.
        """
        admin = config or self.admin_config
        result = BatchResult(job_id=job_id)

        def emit_log(level: str, message: str) -> None:
            getattr(logger, level)(f"[job={job_id}] {message}" if job_id else message)
            if on_log:
                on_log(LogEvent(level=level, message=message))

        def emit_progress(progress: int, status: str, step: str, count: int = 0) -> None:
            if on_progress:
                on_progress(ProgressEvent(progress=progress, status=status, step=step, count=count))

        def cancelled() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                emit_log("warning", "Discovery batch cancelled")
                return True
            return False

        # Phase 1: shared pool, once per media type
        self.pool.invalidate()
        for i, media_type in enumerate(MEDIA_TYPES):
            if cancelled():
                return result
            emit_progress(i * 10, f"Refreshing {media_type.value} pool", "pool")
            try:
                pool_result = await self.pool.refresh(media_type, admin)
                emit_log(
                    "info",
                    f"Pool for {media_type.value}: {pool_result.unique_count} unique of "
                    f"{pool_result.total_fetched} fetched",
                )
            except Exception as e:
                await self.storage.rollback()
                emit_log("error", f"Pool refresh failed for {media_type.value}: {e}")

        # Phase 2: users x media types, one at a time
        # (id, username) pairs: a failed run's rollback expires the loaded users
        users = [(u.id, u.username) for u in await self.storage.get_enabled_users()]
        total = len(users) * len(MEDIA_TYPES)
        emit_log("info", f"Running discovery for {len(users)} users")
        done = 0

        for user_id, username in users:
            for media_type in MEDIA_TYPES:
                if cancelled():
                    return result
                try:
                    user = await self.storage.get_user(user_id)
                    if user is None:
                        raise UserNotFoundError(user_id)
                    user_config = get_effective_config(admin, user.settings, media_type)
                    pool_candidates = await self.pool.load(media_type)
                    run = await self.generate_for_user_with_pool(
                        user, media_type, user_config, pool_candidates
                    )
                    result.success += 1
                    emit_log(
                        "info",
                        f"{username} ({media_type.value}): stored {run.candidates_stored}",
                    )
                except Exception as e:
                    result.failed += 1
                    emit_log("error", f"{username} ({media_type.value}) failed: {e}")
                done += 1
                emit_progress(
                    20 + int(80 * done / total),
                    f"Processed {username} ({media_type.value})",
                    "users",
                    count=done,
                )

        emit_progress(100, f"Done: {result.success} succeeded, {result.failed} failed", "done", done)
        return result

    # ------------------------------------------------------------------
    # On-demand entry points
    # ------------------------------------------------------------------

    async def _get_discoverable_user(self, user_id: int) -> User:
        user = await self.storage.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not user.is_enabled or not user.discover_enabled:
            raise DiscoveryDisabledError(user_id)
        return user

    async def regenerate_user_discovery(
        self, user_id: int, media_type: MediaType
    ) -> DiscoveryPipelineResult:
        """Manual regeneration for one user, using the pool when it has data."""
        user = await self._get_discoverable_user(user_id)
        config = get_effective_config(self.admin_config, user.settings, media_type)
        pool_candidates = await self.pool.load(media_type)
        if not pool_candidates:
            logger.info(f"Pool empty for {media_type.value}, running standalone discovery")
            return await self.generate_for_user(user, media_type, config, RunType.MANUAL)
        return await self.generate_for_user_with_pool(
            user, media_type, config, pool_candidates, RunType.MANUAL
        )

    async def expand_candidates(
        self,
        user_id: int,
        media_type: MediaType,
        filters: DiscoveryFilterOptions,
        config: DiscoveryConfig | None = None,
    ) -> list[ScoredCandidate]:
        """Fresh, filter-matching candidates when stored results run short.

        Fetch, filter and score only: nothing is stored and no run is recorded.
        Without an explicit config the user's effective config is used.
        """
        user = await self._get_discoverable_user(user_id)
        config = config or get_effective_config(self.admin_config, user.settings, media_type)
        fetched = await self.sources.fetch_filtered_candidates(media_type, config, filters)
        filtered = await filter_candidates(self.storage, user.id, media_type, fetched)
        scored = await score_candidates(self.storage, user.id, media_type, filtered, config)
        if filters.min_similarity is not None:
            scored = [s for s in scored if s.similarity_score >= filters.min_similarity]
        logger.info(
            f"Expanded discovery for user {user.id} ({media_type.value}): "
            f"{len(fetched)} fetched, {len(scored)} scored"
        )
        return scored[: filters.limit]

    async def get_latest_run(self, user_id: int, media_type: MediaType) -> DiscoveryRun | None:
        return await self.storage.get_latest_run(user_id, media_type)
