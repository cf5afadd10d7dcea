"""Tests for diversity-aware selection."""

from collections import Counter

import pytest

from reelscout.discovery.diversity import (
    apply_diversity_selection,
    calculate_diversity_boost,
    title_year_key,
)

from conftest import ACTION, COMEDY, DRAMA


class TestDiversityBoost:
    """Tests for calculate_diversity_boost."""

    def test_first_pick(self, make_scored):
        candidate = make_scored(1, genres=(ACTION,))
        # Genre fully novel, provider neutral
        assert calculate_diversity_boost(candidate, Counter(), Counter(), 0) == pytest.approx(0.8)

    def test_no_genres_is_neutral(self, make_scored):
        candidate = make_scored(1, genres=())
        boost = calculate_diversity_boost(candidate, Counter(), Counter({"tmdb_discover": 1}), 1)
        assert boost == pytest.approx(0.6 * 0.5)

    def test_overlap(self, make_scored):
        candidate = make_scored(1, genres=(ACTION, DRAMA), source="trakt_trending")
        boost = calculate_diversity_boost(
            candidate, Counter({"Action": 1}), Counter({"tmdb_discover": 2}), 2
        )
        assert boost == pytest.approx(0.6 * 0.5 + 0.4 * 1.0)

    def test_network_preferred_over_source(self, make_scored):
        candidate = make_scored(1, network="HBO", source="tmdb_discover")
        boost = calculate_diversity_boost(
            candidate, Counter({"Action": 1}), Counter({"tmdb_discover": 1}), 1
        )
        assert boost == pytest.approx(0.4)


class TestApplyDiversitySelection:
    """Tests for apply_diversity_selection."""

    def test_no_duplicate_title_year(self, make_scored):
        candidates = [
            make_scored(1, final_score=0.9, title="Dune", release_year=2021),
            make_scored(2, final_score=0.8, title="dune ", release_year=2021),
            make_scored(3, final_score=0.7, title="Dune", release_year=1984),
        ]

        selected = apply_diversity_selection(candidates, 10, 0.3)

        keys = [title_year_key(c) for c in selected]
        assert len(keys) == len(set(keys))
        assert [c.tmdb_id for c in selected] == [1, 3]

    def test_reaches_target(self, make_scored):
        candidates = [make_scored(i, final_score=1 - i / 100) for i in range(30)]
        selected = apply_diversity_selection(candidates, 10, 0.5)
        assert len(selected) == 10

    def test_stops_when_exhausted(self, make_scored):
        candidates = [make_scored(i) for i in range(3)]
        assert len(apply_diversity_selection(candidates, 10, 0.5)) == 3
        assert apply_diversity_selection([], 10, 0.5) == []

    def test_zero_weight_keeps_score_order(self, make_scored):
        candidates = [
            make_scored(1, final_score=0.9),
            make_scored(2, final_score=0.5),
            make_scored(3, final_score=0.7),
        ]

        selected = apply_diversity_selection(candidates, 3, 0.0)

        assert [c.tmdb_id for c in selected] == [1, 3, 2]
        assert [c.final_score for c in selected] == pytest.approx([0.9, 0.7, 0.5])
        assert all("diversity" in c.score_breakdown for c in selected)

    def test_full_weight_favours_variety(self, make_scored):
        def build():
            return [
                make_scored(1, final_score=0.9, genres=(ACTION,), source="tmdb_discover"),
                make_scored(2, final_score=0.85, genres=(ACTION,), source="tmdb_discover"),
                make_scored(3, final_score=0.5, genres=(COMEDY,), source="trakt_trending"),
            ]

        baseline = apply_diversity_selection(build(), 2, 0.0)
        diverse = apply_diversity_selection(build(), 2, 1.0)

        assert [c.tmdb_id for c in baseline] == [1, 2]
        assert [c.tmdb_id for c in diverse] == [1, 3]
        assert diverse[1].score_breakdown["diversity"] == pytest.approx(1.0)
        assert diverse[1].final_score == pytest.approx(1.0)

    def test_single_genre_full_weight_against_baseline(self, make_scored):
        def build():
            return [
                make_scored(1, final_score=0.9, genres=(ACTION,), source="tmdb_discover"),
                make_scored(2, final_score=0.8, genres=(ACTION,), source="tmdb_discover"),
                make_scored(3, final_score=0.7, genres=(ACTION,), source="tmdb_discover"),
                make_scored(4, final_score=0.6, genres=(ACTION,), source="trakt_trending"),
                make_scored(5, final_score=0.5, genres=(ACTION,), source="mdblist"),
            ]

        baseline = apply_diversity_selection(build(), 3, 0.0)
        diverse = apply_diversity_selection(build(), 3, 1.0)

        assert [c.tmdb_id for c in baseline] == [1, 2, 3]
        assert [c.tmdb_id for c in diverse] == [1, 4, 5]
        for pick in (1, 2):
            assert baseline[pick].score_breakdown["diversity"] == pytest.approx(0.0)
            # Shared genre adds nothing, so the whole boost is provider novelty
            assert diverse[pick].score_breakdown["diversity"] == pytest.approx(0.4)
            assert (
                diverse[pick].score_breakdown["diversity"]
                > baseline[pick].score_breakdown["diversity"]
            )

    def test_waiting_candidate_blends_from_original_score(self, make_scored):
        candidates = [
            make_scored(1, final_score=0.9, genres=(ACTION,), source="tmdb_discover"),
            make_scored(2, final_score=0.8, genres=(ACTION,), source="tmdb_discover"),
            make_scored(3, final_score=0.3, genres=(COMEDY,), source="trakt_trending"),
        ]

        selected = apply_diversity_selection(candidates, 3, 0.5)

        assert [c.tmdb_id for c in selected] == [1, 3, 2]
        waited = selected[2]
        # Picked in the third round: 0.8 * 0.5 + 0.2 * 0.5
        assert waited.score_breakdown["diversity"] == pytest.approx(0.2)
        assert waited.final_score == pytest.approx(0.5)
