"""Persistence for discovery: runs, the shared pool, results, requests and taste inputs."""

import logging
from collections import Counter
from dataclasses import asdict
from datetime import timedelta

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelscout.constants import RECENT_WATCH_SEEDS, TOP_RATED_MIN_RATING, TOP_RATED_SEEDS
from reelscout.discovery.errors import RunAlreadyFinalizedError
from reelscout.discovery.types import (
    CastMember,
    DiscoveryFilterOptions,
    Genre,
    PersonalizationSeeds,
    RawCandidate,
    ScoredCandidate,
    UserTasteSignal,
)
from reelscout.models.base import utcnow
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

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well below backend parameter limits
_CHUNK_SIZE = 500

CLOSED_REQUEST_STATUSES = (RequestStatus.DECLINED, RequestStatus.FAILED)


def _chunks(items: list, size: int = _CHUNK_SIZE):
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _genres_json(genres: tuple[Genre, ...]) -> list[dict]:
    return [{"id": g.id, "name": g.name} for g in genres]


def _genre_ids_key(genres: tuple[Genre, ...]) -> str:
    return "|" + "".join(f"{g.id}|" for g in genres)


def _genres_from_json(data: list | None) -> tuple[Genre, ...]:
    return tuple(Genre(id=g["id"], name=g["name"]) for g in data or [] if "id" in g)


def _cast_from_json(data: list | None) -> tuple[CastMember, ...]:
    return tuple(CastMember(**member) for member in data or [])


class DiscoveryStorage:
    """Database access for the discovery pipeline.

    Writes commit immediately so a run that crashes halfway still leaves its
    progress (and the pool) behind.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def rollback(self) -> None:
        await self.db.rollback()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def create_run(
        self, user_id: int, media_type: MediaType, run_type: RunType = RunType.SCHEDULED
    ) -> DiscoveryRun:
        run = DiscoveryRun(
            user_id=user_id,
            media_type=media_type,
            run_type=run_type,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
        )
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)
        return run

    async def _get_run(self, run_id: int) -> DiscoveryRun:
        run = await self.db.get(DiscoveryRun, run_id)
        if run is None:
            raise LookupError(f"Discovery run {run_id} not found")
        return run

    async def update_run_stats(
        self,
        run_id: int,
        *,
        candidates_fetched: int | None = None,
        candidates_filtered: int | None = None,
        candidates_scored: int | None = None,
        candidates_stored: int | None = None,
    ) -> None:
        run = await self._get_run(run_id)
        if run.status != RunStatus.RUNNING:
            raise RunAlreadyFinalizedError(run_id, run.status.value)
        if candidates_fetched is not None:
            run.candidates_fetched = candidates_fetched
        if candidates_filtered is not None:
            run.candidates_filtered = candidates_filtered
        if candidates_scored is not None:
            run.candidates_scored = candidates_scored
        if candidates_stored is not None:
            run.candidates_stored = candidates_stored
        await self.db.commit()

    async def finalize_run(
        self,
        run_id: int,
        status: RunStatus,
        duration_ms: int,
        error_message: str | None = None,
    ) -> DiscoveryRun:
        """Move a running run to completed or failed. Only allowed once."""
        if status == RunStatus.RUNNING:
            raise ValueError("A run can only be finalized as completed or failed")
        run = await self._get_run(run_id)
        if run.status != RunStatus.RUNNING:
            raise RunAlreadyFinalizedError(run_id, run.status.value)
        run.status = status
        run.duration_ms = duration_ms
        run.error_message = error_message
        run.completed_at = utcnow()
        await self.db.commit()
        return run

    async def get_latest_run(self, user_id: int, media_type: MediaType) -> DiscoveryRun | None:
        result = await self.db.execute(
            select(DiscoveryRun)
            .where(DiscoveryRun.user_id == user_id, DiscoveryRun.media_type == media_type)
            .order_by(DiscoveryRun.started_at.desc(), DiscoveryRun.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Shared pool
    # ------------------------------------------------------------------

    async def upsert_pool_candidates(
        self,
        media_type: MediaType,
        candidates: list[RawCandidate],
        provenance: dict[int, list[str]] | None = None,
    ) -> tuple[int, int]:
        """Insert new pool entries and refresh existing ones.

        Existing entries get fresh vote/popularity numbers and any newly
        seen source appended; created_at and earlier sources are kept, and
        descriptive fields are only filled in where they were empty.

        Returns:
            (inserted, updated) counts
        """
        inserted = updated = 0
        provenance = provenance or {}
        now = utcnow()
        by_id: dict[int, RawCandidate] = {}
        for candidate in candidates:
            by_id.setdefault(candidate.tmdb_id, candidate)

        for chunk in _chunks(list(by_id)):
            result = await self.db.execute(
                select(DiscoveryPoolEntry).where(
                    DiscoveryPoolEntry.media_type == media_type,
                    DiscoveryPoolEntry.tmdb_id.in_(chunk),
                )
            )
            existing = {entry.tmdb_id: entry for entry in result.scalars()}

            for tmdb_id in chunk:
                candidate = by_id[tmdb_id]
                sources = provenance.get(tmdb_id) or [candidate.source]
                entry = existing.get(tmdb_id)
                if entry is None:
                    self.db.add(
                        DiscoveryPoolEntry(
                            media_type=media_type,
                            tmdb_id=tmdb_id,
                            imdb_id=candidate.imdb_id,
                            title=candidate.title,
                            original_title=candidate.original_title,
                            original_language=candidate.original_language,
                            release_year=candidate.release_year,
                            overview=candidate.overview,
                            genres=_genres_json(candidate.genres),
                            poster_path=candidate.poster_path,
                            backdrop_path=candidate.backdrop_path,
                            vote_average=candidate.vote_average,
                            vote_count=candidate.vote_count,
                            popularity=candidate.popularity,
                            network=candidate.network,
                            sources=list(sources),
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    inserted += 1
                    continue

                if candidate.vote_average is not None:
                    entry.vote_average = candidate.vote_average
                if candidate.vote_count is not None:
                    entry.vote_count = candidate.vote_count
                if candidate.popularity is not None:
                    entry.popularity = candidate.popularity
                new_sources = [s for s in sources if s not in entry.sources]
                if new_sources:
                    entry.sources = [*entry.sources, *new_sources]
                entry.imdb_id = entry.imdb_id or candidate.imdb_id
                entry.original_title = entry.original_title or candidate.original_title
                entry.original_language = entry.original_language or candidate.original_language
                entry.release_year = entry.release_year or candidate.release_year
                entry.overview = entry.overview or candidate.overview
                entry.poster_path = entry.poster_path or candidate.poster_path
                entry.backdrop_path = entry.backdrop_path or candidate.backdrop_path
                entry.network = entry.network or candidate.network
                if not entry.genres and candidate.genres:
                    entry.genres = _genres_json(candidate.genres)
                entry.updated_at = now
                updated += 1

        await self.db.commit()
        return inserted, updated

    async def get_pool_candidates(
        self, media_type: MediaType, limit: int | None = None
    ) -> list[DiscoveryPoolEntry]:
        query = (
            select(DiscoveryPoolEntry)
            .where(DiscoveryPoolEntry.media_type == media_type)
            .order_by(DiscoveryPoolEntry.popularity.desc().nulls_last(), DiscoveryPoolEntry.id)
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars())

    @staticmethod
    def pool_candidate_to_raw(entry: DiscoveryPoolEntry) -> RawCandidate:
        return RawCandidate(
            tmdb_id=entry.tmdb_id,
            media_type=entry.media_type,
            title=entry.title,
            source=entry.sources[0] if entry.sources else "tmdb_discover",
            imdb_id=entry.imdb_id,
            original_title=entry.original_title,
            original_language=entry.original_language,
            release_year=entry.release_year,
            overview=entry.overview,
            genres=_genres_from_json(entry.genres),
            poster_path=entry.poster_path,
            backdrop_path=entry.backdrop_path,
            vote_average=entry.vote_average,
            vote_count=entry.vote_count,
            popularity=entry.popularity,
            network=entry.network,
            cast_members=_cast_from_json(entry.cast_members),
            directors=tuple(entry.directors or ()),
            runtime_minutes=entry.runtime_minutes,
            tagline=entry.tagline,
            has_full_details=entry.is_enriched,
        )

    async def update_pool_enrichment(
        self, media_type: MediaType, candidates: list[RawCandidate]
    ) -> int:
        """Write full details back to the pool so later users skip the fetch.

        Only existing entries are touched; personalized candidates that never
        made it into the pool are ignored. Returns the number updated.
        """
        by_id = {c.tmdb_id: c for c in candidates if c.has_full_details}
        updated = 0
        for chunk in _chunks(list(by_id)):
            result = await self.db.execute(
                select(DiscoveryPoolEntry).where(
                    DiscoveryPoolEntry.media_type == media_type,
                    DiscoveryPoolEntry.tmdb_id.in_(chunk),
                )
            )
            for entry in result.scalars():
                candidate = by_id[entry.tmdb_id]
                entry.cast_members = [asdict(c) for c in candidate.cast_members]
                entry.directors = list(candidate.directors)
                entry.runtime_minutes = candidate.runtime_minutes
                entry.tagline = candidate.tagline
                entry.imdb_id = candidate.imdb_id or entry.imdb_id
                entry.poster_path = entry.poster_path or candidate.poster_path
                entry.backdrop_path = entry.backdrop_path or candidate.backdrop_path
                entry.overview = entry.overview or candidate.overview
                entry.is_enriched = True
                entry.updated_at = utcnow()
                updated += 1
        await self.db.commit()
        return updated

    async def clear_old_pool_entries(self, older_than_days: int) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        result = await self.db.execute(
            delete(DiscoveryPoolEntry).where(DiscoveryPoolEntry.updated_at < cutoff)
        )
        await self.db.commit()
        logger.info(f"Removed {result.rowcount} pool entries older than {older_than_days} days")
        return result.rowcount

    # ------------------------------------------------------------------
    # Per-user results
    # ------------------------------------------------------------------

    async def store_candidates(
        self,
        user_id: int,
        media_type: MediaType,
        run_id: int,
        candidates: list[ScoredCandidate],
    ) -> int:
        """Replace the user's stored results with `candidates`, ranked 1..n."""
        await self.db.execute(
            delete(DiscoveryCandidate).where(
                DiscoveryCandidate.user_id == user_id,
                DiscoveryCandidate.media_type == media_type,
            )
        )
        for rank, scored in enumerate(candidates, start=1):
            raw = scored.candidate
            self.db.add(
                DiscoveryCandidate(
                    user_id=user_id,
                    run_id=run_id,
                    media_type=media_type,
                    tmdb_id=raw.tmdb_id,
                    imdb_id=raw.imdb_id,
                    title=raw.title,
                    original_title=raw.original_title,
                    original_language=raw.original_language,
                    release_year=raw.release_year,
                    overview=raw.overview,
                    genres=_genres_json(raw.genres),
                    genre_ids=_genre_ids_key(raw.genres),
                    poster_path=raw.poster_path,
                    backdrop_path=raw.backdrop_path,
                    vote_average=raw.vote_average,
                    vote_count=raw.vote_count,
                    popularity=raw.popularity,
                    network=raw.network,
                    cast_members=[asdict(c) for c in raw.cast_members],
                    directors=list(raw.directors),
                    runtime_minutes=raw.runtime_minutes,
                    tagline=raw.tagline,
                    is_enriched=scored.is_enriched,
                    source=raw.source,
                    source_media_id=raw.source_media_id,
                    rank=rank,
                    final_score=scored.final_score,
                    similarity_score=scored.similarity_score,
                    novelty_score=scored.novelty_score,
                    rating_score=scored.rating_score,
                    recency_score=scored.recency_score,
                    score_breakdown=dict(scored.score_breakdown),
                )
            )
        await self.db.commit()
        return len(candidates)

    def _candidate_filters(
        self, user_id: int, media_type: MediaType, options: DiscoveryFilterOptions | None
    ) -> list:
        library_ids = select(LibraryItem.tmdb_id).where(LibraryItem.media_type == media_type)
        conditions = [
            DiscoveryCandidate.user_id == user_id,
            DiscoveryCandidate.media_type == media_type,
            # Titles added to the library after generation drop out immediately
            DiscoveryCandidate.tmdb_id.not_in(library_ids),
        ]
        if options is None:
            return conditions

        if options.languages:
            language_match = DiscoveryCandidate.original_language.in_(options.languages)
            if options.include_unknown_language:
                language_match = or_(
                    language_match, DiscoveryCandidate.original_language.is_(None)
                )
            conditions.append(language_match)
        if options.genre_ids:
            conditions.append(
                or_(*(DiscoveryCandidate.genre_ids.like(f"%|{gid}|%") for gid in options.genre_ids))
            )
        if options.year_start is not None:
            conditions.append(DiscoveryCandidate.release_year >= options.year_start)
        if options.year_end is not None:
            conditions.append(DiscoveryCandidate.release_year <= options.year_end)
        if options.min_similarity is not None:
            conditions.append(DiscoveryCandidate.similarity_score >= options.min_similarity)
        if options.exclude_tmdb_ids:
            conditions.append(DiscoveryCandidate.tmdb_id.not_in(options.exclude_tmdb_ids))
        return conditions

    async def get_candidates(
        self,
        user_id: int,
        media_type: MediaType,
        options: DiscoveryFilterOptions | None = None,
    ) -> list[DiscoveryCandidate]:
        """Stored results in rank order, filtered and paginated."""
        options = options or DiscoveryFilterOptions()
        result = await self.db.execute(
            select(DiscoveryCandidate)
            .where(*self._candidate_filters(user_id, media_type, options))
            .order_by(DiscoveryCandidate.rank)
            .offset(options.offset)
            .limit(options.limit)
        )
        return list(result.scalars())

    async def get_candidate_count(
        self,
        user_id: int,
        media_type: MediaType,
        options: DiscoveryFilterOptions | None = None,
    ) -> int:
        result = await self.db.execute(
            select(func.count(DiscoveryCandidate.id)).where(
                *self._candidate_filters(user_id, media_type, options)
            )
        )
        return result.scalar_one()

    async def clear_candidates(self, user_id: int, media_type: MediaType | None = None) -> int:
        query = delete(DiscoveryCandidate).where(DiscoveryCandidate.user_id == user_id)
        if media_type is not None:
            query = query.where(DiscoveryCandidate.media_type == media_type)
        result = await self.db.execute(query)
        await self.db.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def create_request(
        self,
        user_id: int,
        media_type: MediaType,
        tmdb_id: int,
        title: str,
        discovery_candidate_id: int | None = None,
    ) -> DiscoveryRequest:
        """Record a pending request.

        Stored candidates are replaced on every run, so a stale candidate id
        is dropped rather than failing the request.
        """
        if discovery_candidate_id is not None:
            if await self.db.get(DiscoveryCandidate, discovery_candidate_id) is None:
                logger.warning(
                    f"Discovery candidate {discovery_candidate_id} not found, "
                    f"recording request for tmdb {tmdb_id} without it"
                )
                discovery_candidate_id = None

        request = DiscoveryRequest(
            user_id=user_id,
            media_type=media_type,
            tmdb_id=tmdb_id,
            title=title,
            status=RequestStatus.PENDING,
            discovery_candidate_id=discovery_candidate_id,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)
        logger.info(f"Created request {request.id} for user {user_id}: {title} (tmdb {tmdb_id})")
        return request

    async def update_request_status(
        self,
        request_id: int,
        status: RequestStatus,
        *,
        status_message: str | None = None,
        external_request_id: int | None = None,
        external_media_id: int | None = None,
    ) -> DiscoveryRequest:
        """Set a new status; optional fields only overwrite when given."""
        request = await self.db.get(DiscoveryRequest, request_id)
        if request is None:
            raise LookupError(f"Discovery request {request_id} not found")
        request.status = status
        if status_message is not None:
            request.status_message = status_message
        if external_request_id is not None:
            request.external_request_id = external_request_id
        if external_media_id is not None:
            request.external_media_id = external_media_id
        await self.db.commit()
        logger.info(f"Request {request_id} is now {status.value}")
        return request

    async def get_requests(
        self,
        user_id: int,
        media_type: MediaType | None = None,
        status: RequestStatus | None = None,
        limit: int | None = None,
    ) -> list[DiscoveryRequest]:
        """The user's requests, newest first."""
        query = select(DiscoveryRequest).where(DiscoveryRequest.user_id == user_id)
        if media_type is not None:
            query = query.where(DiscoveryRequest.media_type == media_type)
        if status is not None:
            query = query.where(DiscoveryRequest.status == status)
        query = query.order_by(DiscoveryRequest.created_at.desc(), DiscoveryRequest.id.desc())
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars())

    async def get_existing_request(
        self, user_id: int, tmdb_id: int, media_type: MediaType
    ) -> DiscoveryRequest | None:
        """Most recent request for this title, whatever its status."""
        requests = await self.db.execute(
            select(DiscoveryRequest)
            .where(
                DiscoveryRequest.user_id == user_id,
                DiscoveryRequest.tmdb_id == tmdb_id,
                DiscoveryRequest.media_type == media_type,
            )
            .order_by(DiscoveryRequest.created_at.desc(), DiscoveryRequest.id.desc())
            .limit(1)
        )
        return requests.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Library, history and taste inputs
    # ------------------------------------------------------------------

    async def get_library_tmdb_ids(self, media_type: MediaType) -> set[int]:
        result = await self.db.execute(
            select(LibraryItem.tmdb_id).where(LibraryItem.media_type == media_type)
        )
        return set(result.scalars())

    async def get_watched_tmdb_ids(self, user_id: int, media_type: MediaType) -> set[int]:
        result = await self.db.execute(
            select(WatchHistory.tmdb_id).where(
                WatchHistory.user_id == user_id, WatchHistory.media_type == media_type
            )
        )
        return set(result.scalars())

    async def get_requested_tmdb_ids(self, user_id: int, media_type: MediaType) -> set[int]:
        """Titles with an open request. Declined and failed ones may come back."""
        result = await self.db.execute(
            select(DiscoveryRequest.tmdb_id).where(
                DiscoveryRequest.user_id == user_id,
                DiscoveryRequest.media_type == media_type,
                DiscoveryRequest.status.not_in(CLOSED_REQUEST_STATUSES),
            )
        )
        return set(result.scalars())

    async def get_user_taste_signal(self, user_id: int, media_type: MediaType) -> UserTasteSignal:
        """Taste embedding plus a genre histogram over the user's watch history."""
        preference = await self.db.scalar(
            select(UserPreference).where(UserPreference.user_id == user_id)
        )
        embedding = None
        if preference is not None:
            embedding = (
                preference.taste_embedding
                if media_type is MediaType.MOVIE
                else preference.series_taste_embedding
            )

        result = await self.db.execute(
            select(WatchHistory.genres).where(
                WatchHistory.user_id == user_id, WatchHistory.media_type == media_type
            )
        )
        genre_counts: Counter = Counter()
        for genres in result.scalars():
            genre_counts.update(genres or [])

        return UserTasteSignal(embedding=embedding or None, genre_counts=dict(genre_counts))

    async def get_content_embeddings(
        self, media_type: MediaType, tmdb_ids: list[int]
    ) -> dict[int, list[float]]:
        embeddings: dict[int, list[float]] = {}
        for chunk in _chunks(list(set(tmdb_ids))):
            result = await self.db.execute(
                select(ContentEmbedding.tmdb_id, ContentEmbedding.embedding).where(
                    ContentEmbedding.media_type == media_type,
                    ContentEmbedding.tmdb_id.in_(chunk),
                )
            )
            embeddings.update({tmdb_id: emb for tmdb_id, emb in result.all()})
        return embeddings

    async def get_personalization_seeds(
        self, user: User, media_type: MediaType
    ) -> PersonalizationSeeds:
        recent = await self.db.execute(
            select(WatchHistory.tmdb_id)
            .where(WatchHistory.user_id == user.id, WatchHistory.media_type == media_type)
            .order_by(WatchHistory.last_played_at.desc().nulls_last(), WatchHistory.id.desc())
            .limit(RECENT_WATCH_SEEDS)
        )
        top_rated = await self.db.execute(
            select(UserRating.tmdb_id)
            .where(
                UserRating.user_id == user.id,
                UserRating.media_type == media_type,
                UserRating.rating >= TOP_RATED_MIN_RATING,
            )
            .order_by(UserRating.rating.desc(), UserRating.id)
            .limit(TOP_RATED_SEEDS)
        )
        return PersonalizationSeeds(
            recent_tmdb_ids=list(recent.scalars()),
            top_rated_tmdb_ids=list(top_rated.scalars()),
            trakt_access_token=user.trakt_access_token,
        )

    async def get_user(self, user_id: int) -> User | None:
        return await self.db.get(User, user_id)

    async def get_enabled_users(self) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(User.is_enabled.is_(True), User.discover_enabled.is_(True))
            .order_by(User.id)
        )
        return list(result.scalars())

