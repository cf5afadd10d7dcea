"""Multi-factor candidate scoring.

Each candidate gets four sub-scores in [0, 1]:

- similarity: cosine similarity between the candidate's content embedding and
  the user's taste embedding, mapped from [-1, 1] to [0, 1]
- novelty: how unfamiliar the candidate's genres are to the user
- rating: vote average, min-max normalized over the candidates being scored
- recency: linear decay over the last ten years

Missing inputs give the neutral 0.5 so cold-start users aren't penalized.
The final score is the config-weighted sum of the four.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np

from reelscout.constants import NEUTRAL_SCORE, RECENCY_HORIZON_YEARS, SOURCE_PRIORITY
from reelscout.discovery.types import (
    DiscoveryConfig,
    RawCandidate,
    ScoredCandidate,
    UserTasteSignal,
)
from reelscout.models.media import MediaType

if TYPE_CHECKING:
    from reelscout.discovery.storage import DiscoveryStorage

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def cosine_similarity(a: list[float], b: list[float]) -> float | None:
    """Cosine similarity in [-1, 1], None when it isn't defined."""
    if not a or not b or len(a) != len(b):
        return None
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return None
    return float(np.dot(va, vb) / norm)


def calculate_similarity(
    candidate_embedding: list[float] | None, taste_embedding: list[float] | None
) -> float:
    if candidate_embedding is None or taste_embedding is None:
        return NEUTRAL_SCORE
    cosine = cosine_similarity(candidate_embedding, taste_embedding)
    if cosine is None:
        return NEUTRAL_SCORE
    return _clamp((cosine + 1.0) / 2.0)


def calculate_novelty(genres: list[str], signal: UserTasteSignal) -> float:
    """Mean of `1 - count/total` over the candidate's genres."""
    total = signal.total_genre_count
    if not genres or total == 0:
        return NEUTRAL_SCORE
    familiarity = [signal.genre_counts.get(genre, 0) / total for genre in genres]
    return _clamp(sum(1.0 - f for f in familiarity) / len(familiarity))


def vote_range(candidates: list[RawCandidate]) -> tuple[float, float] | None:
    """Observed (min, max) vote average over candidates that have votes."""
    votes = [
        c.vote_average
        for c in candidates
        if c.vote_average is not None and (c.vote_count or 0) > 0
    ]
    if not votes:
        return None
    return min(votes), max(votes)


def calculate_rating(
    candidate: RawCandidate, observed: tuple[float, float] | None
) -> float:
    if observed is None or candidate.vote_average is None or not candidate.vote_count:
        return NEUTRAL_SCORE
    low, high = observed
    if high == low:
        return NEUTRAL_SCORE
    return _clamp((candidate.vote_average - low) / (high - low))


def calculate_recency(release_year: int | None, current_year: int) -> float:
    if release_year is None:
        return NEUTRAL_SCORE
    age = max(0, current_year - release_year)
    return _clamp(1.0 - age / RECENCY_HORIZON_YEARS)


def calculate_source_score(candidate: RawCandidate) -> float:
    return SOURCE_PRIORITY.get(candidate.source, 0.5)


def compute_final_score(
    similarity: float,
    novelty: float,
    rating: float,
    recency: float,
    config: DiscoveryConfig,
) -> float:
    """Weighted sum of the sub-scores; depends on nothing else."""
    return (
        config.similarity_weight * similarity
        + config.novelty_weight * novelty
        + config.popularity_weight * rating
        + config.recency_weight * recency
    )


def score_candidates_with_signal(
    candidates: list[RawCandidate],
    signal: UserTasteSignal,
    embeddings: dict[int, list[float]],
    config: DiscoveryConfig,
    current_year: int | None = None,
) -> list[ScoredCandidate]:
    """Score candidates against a taste signal, best first.

    The sort is stable, so equal scores keep their input order.
    """
    if current_year is None:
        current_year = datetime.now().year
    observed = vote_range(candidates)

    scored: list[ScoredCandidate] = []
    for candidate in candidates:
        similarity = calculate_similarity(embeddings.get(candidate.tmdb_id), signal.embedding)
        novelty = calculate_novelty(candidate.genre_names, signal)
        rating = calculate_rating(candidate, observed)
        recency = calculate_recency(candidate.release_year, current_year)
        source_score = calculate_source_score(candidate)
        final = compute_final_score(similarity, novelty, rating, recency, config)
        scored.append(
            ScoredCandidate(
                candidate=candidate,
                similarity_score=similarity,
                novelty_score=novelty,
                rating_score=rating,
                recency_score=recency,
                source_score=source_score,
                final_score=final,
                score_breakdown={
                    "similarity": similarity,
                    "novelty": novelty,
                    "rating": rating,
                    "recency": recency,
                    "source": source_score,
                },
            )
        )

    scored.sort(key=lambda s: s.final_score, reverse=True)
    return scored


async def score_candidates(
    storage: "DiscoveryStorage",
    user_id: int,
    media_type: MediaType,
    candidates: list[RawCandidate],
    config: DiscoveryConfig,
) -> list[ScoredCandidate]:
    """Load the user's taste signal and candidate embeddings, then score."""
    signal = await storage.get_user_taste_signal(user_id, media_type)
    embeddings = await storage.get_content_embeddings(
        media_type, [c.tmdb_id for c in candidates]
    )
    logger.debug(
        f"Scoring {len(candidates)} candidates for user {user_id} "
        f"(taste embedding: {signal.embedding is not None}, "
        f"{len(embeddings)} content embeddings, {signal.total_genre_count} genre views)"
    )
    return score_candidates_with_signal(candidates, signal, embeddings, config)
