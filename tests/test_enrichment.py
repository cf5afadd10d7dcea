"""Tests for the enrichment gate."""

import pytest

from reelscout.discovery.enrichment import EnrichmentGate
from reelscout.models.media import MediaType


class TestEnrichmentGate:
    """Tests for EnrichmentGate.apply."""

    @pytest.mark.asyncio
    async def test_only_head_is_enriched(self, fake_sources, make_scored):
        candidates = [make_scored(i, final_score=1 - i / 100) for i in range(50)]
        before = [(c.tmdb_id, c.final_score) for c in candidates]

        result = await EnrichmentGate(fake_sources).apply(candidates, max_enriched=10)

        assert [(c.tmdb_id, c.final_score) for c in result] == before
        assert sum(1 for c in result if c.is_enriched) == 10
        assert all(c.is_enriched for c in result[:10])
        assert sorted(fake_sources.detail_calls) == list(range(10))
        assert result[0].candidate.tagline == "Tagline 0"
        assert result[10].candidate.tagline is None

    @pytest.mark.asyncio
    async def test_failure_keeps_candidate(self, fake_sources, make_scored):
        fake_sources.failing_details = {2}
        candidates = [make_scored(i, final_score=1 - i / 10) for i in range(5)]

        result = await EnrichmentGate(fake_sources, batch_size=2).apply(candidates, max_enriched=5)

        assert [c.tmdb_id for c in result] == [0, 1, 2, 3, 4]
        failed = result[2]
        assert failed.is_enriched is False
        assert failed.candidate.runtime_minutes is None
        assert all(c.is_enriched for c in result if c.tmdb_id != 2)

    @pytest.mark.asyncio
    async def test_keeps_identity_and_scores(self, fake_sources, make_scored):
        candidate = make_scored(7, final_score=0.42, source="tmdb_similar", source_media_id=99)

        [result] = await EnrichmentGate(fake_sources).apply([candidate], max_enriched=1)

        assert result.final_score == 0.42
        assert result.candidate.source == "tmdb_similar"
        assert result.candidate.source_media_id == 99
        assert result.candidate.runtime_minutes == 120

    @pytest.mark.asyncio
    async def test_zero_enrichment_limit(self, fake_sources, make_scored):
        candidates = [make_scored(i) for i in range(3)]
        result = await EnrichmentGate(fake_sources).apply(candidates, max_enriched=0)
        assert fake_sources.detail_calls == []
        assert not any(c.is_enriched for c in result)

    @pytest.mark.asyncio
    async def test_pool_details_reused_without_fetch(self, fake_sources, make_scored):
        cached = make_scored(1, final_score=0.9, tagline="From pool", has_full_details=True)
        fresh = make_scored(2, final_score=0.8)

        result = await EnrichmentGate(fake_sources).apply([cached, fresh], max_enriched=2)

        assert fake_sources.detail_calls == [2]
        assert all(c.is_enriched for c in result)
        assert result[0].candidate.tagline == "From pool"


class TestEnrichmentWriteBack:
    """Tests for writing fetched details back to the pool."""

    @pytest.mark.asyncio
    async def test_fetched_details_reach_pool(self, storage, fake_sources, make_raw, make_scored):
        await storage.upsert_pool_candidates(
            MediaType.MOVIE, [make_raw(1), make_raw(2), make_raw(3)]
        )
        fake_sources.failing_details = {2}
        candidates = [make_scored(i, final_score=1 - i / 10) for i in (1, 2, 3)]
        gate = EnrichmentGate(fake_sources, storage=storage)

        await gate.apply(candidates, max_enriched=2)

        entries = {e.tmdb_id: e for e in await storage.get_pool_candidates(MediaType.MOVIE)}
        assert entries[1].is_enriched is True
        assert entries[1].tagline == "Tagline 1"
        assert entries[2].is_enriched is False
        assert entries[3].is_enriched is False

    @pytest.mark.asyncio
    async def test_second_pass_reads_from_pool(self, storage, fake_sources, make_raw, make_scored):
        await storage.upsert_pool_candidates(MediaType.MOVIE, [make_raw(1)])
        gate = EnrichmentGate(fake_sources, storage=storage)
        await gate.apply([make_scored(1)], max_enriched=1)

        [entry] = await storage.get_pool_candidates(MediaType.MOVIE)
        reloaded = make_scored(1)
        reloaded.candidate = storage.pool_candidate_to_raw(entry)
        [result] = await gate.apply([reloaded], max_enriched=1)

        assert fake_sources.detail_calls == [1]
        assert result.is_enriched is True
        assert result.candidate.runtime_minutes == 120

    @pytest.mark.asyncio
    async def test_write_back_error_propagates(
        self, storage, fake_sources, make_scored, monkeypatch
    ):
        async def broken(*args, **kwargs):
            raise RuntimeError("pool table locked")

        monkeypatch.setattr(storage, "update_pool_enrichment", broken)
        gate = EnrichmentGate(fake_sources, storage=storage)

        with pytest.raises(RuntimeError, match="pool table locked"):
            await gate.apply([make_scored(1)], max_enriched=1)
