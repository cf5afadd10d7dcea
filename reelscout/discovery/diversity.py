"""Greedy diversity-aware selection of the final ranked subset."""

import logging
from collections import Counter

from reelscout.constants import DIVERSITY_GENRE_SHARE, DIVERSITY_PROVIDER_SHARE, NEUTRAL_SCORE
from reelscout.discovery.types import ScoredCandidate

logger = logging.getLogger(__name__)


def title_year_key(candidate: ScoredCandidate) -> str:
    raw = candidate.candidate
    return f"{raw.title.strip().lower()}|{raw.release_year or ''}"


def provider_key(candidate: ScoredCandidate) -> str:
    """Network for series when known, otherwise the provenance source."""
    return candidate.candidate.network or candidate.candidate.source


def calculate_diversity_boost(
    candidate: ScoredCandidate,
    selected_genres: Counter,
    selected_providers: Counter,
    selected_count: int,
) -> float:
    """Boost in [0, 1] for what the candidate would add to the selection.

    60% genre novelty (share of its genres not selected yet), 40% provider
    novelty (`1 - count/selected`). Each part is neutral (0.5) when it can't
    be computed: no genres, or nothing selected yet.
    """
    genres = candidate.candidate.genre_names
    if genres:
        overlap = sum(1 for g in genres if selected_genres[g] > 0)
        genre_novelty = 1.0 - overlap / len(genres)
    else:
        genre_novelty = NEUTRAL_SCORE

    if selected_count > 0:
        provider_novelty = 1.0 - selected_providers[provider_key(candidate)] / selected_count
    else:
        provider_novelty = NEUTRAL_SCORE

    return DIVERSITY_GENRE_SHARE * genre_novelty + DIVERSITY_PROVIDER_SHARE * provider_novelty


def apply_diversity_selection(
    candidates: list[ScoredCandidate],
    target_count: int,
    diversity_weight: float,
) -> list[ScoredCandidate]:
    """Pick up to `target_count` candidates, trading score for variety.

    Every round re-blends each remaining candidate's base score with its
    diversity boost against the current selection
    (`base * (1 - w) + boost * w`) and takes the best, first one on ties.
    The chosen candidate's final_score becomes the blended value and the
    boost is recorded as `diversity` in its breakdown. Candidates whose
    (title, year) is already selected are skipped.

    The blend always starts from the score the candidate came in with, not
    from the previous round's blend, so a candidate that waits several
    rounds is not discounted once per round. Only what has been selected so
    far changes between rounds.
    """
    base_scores = [c.final_score for c in candidates]
    remaining = list(range(len(candidates)))
    selected: list[ScoredCandidate] = []
    selected_keys: set[str] = set()
    selected_genres: Counter = Counter()
    selected_providers: Counter = Counter()
    skipped = 0

    while len(selected) < target_count and remaining:
        best_pos = -1
        best_score = 0.0
        best_boost = 0.0
        for pos, idx in enumerate(remaining):
            candidate = candidates[idx]
            boost = calculate_diversity_boost(
                candidate, selected_genres, selected_providers, len(selected)
            )
            blended = base_scores[idx] * (1.0 - diversity_weight) + boost * diversity_weight
            if best_pos < 0 or blended > best_score:
                best_pos, best_score, best_boost = pos, blended, boost

        idx = remaining.pop(best_pos)
        best = candidates[idx]
        key = title_year_key(best)
        if key in selected_keys:
            skipped += 1
            continue

        best.final_score = best_score
        best.score_breakdown["diversity"] = best_boost
        selected.append(best)
        selected_keys.add(key)
        selected_genres.update(best.candidate.genre_names)
        selected_providers[provider_key(best)] += 1

    if skipped:
        logger.debug(f"Diversity selection skipped {skipped} duplicate title/year entries")
    return selected
