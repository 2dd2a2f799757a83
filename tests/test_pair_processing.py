"""
Multi-Source Interaction Consensus Engine - Pair Processing Tests
Keys, session cache, persistence and provider fan-out
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import datetime, timedelta

import pytest

from config import settings
from src.core.models import (
    InteractionResult, RawSourceSignal, EventStats, Severity,
    canonical_key, normalize_medication_name
)
from src.core.cache import SessionCache
from src.core.persistence import (
    InMemoryResultStore, JsonFileResultStore, PersistedResultStore, should_replace
)
from src.core.pair_processor import PairProcessor

RXNORM = settings.RXNORM_PROVIDER
FDA = settings.FDA_LABEL_PROVIDER
SUPPAI = settings.SUPPAI_PROVIDER
EVENTS = settings.ADVERSE_EVENTS_PROVIDER


def _result(severity=Severity.MODERATE, confidence=70, sources=1, ai=False, checked_at=None):
    return InteractionResult(
        medications=("Warfarin", "Aspirin"),
        severity=severity,
        description="Stored result",
        sources=tuple(
            RawSourceSignal(f"Source {i}", severity, "Stored evidence text") for i in range(sources)
        ),
        confidence_score=confidence,
        ai_validated=ai,
        checked_at=checked_at or datetime.now(),
    )


class SlowStore(PersistedResultStore):
    async def get(self, med1, med2):
        await asyncio.sleep(1)
        return None

    async def save(self, med1, med2, result):
        await asyncio.sleep(1)


class BrokenCalculator:
    def calculate(self, signals, event_stats=None):
        raise RuntimeError("vote table corrupted")


class TestCanonicalKey:

    def test_symmetric(self):
        assert canonical_key("Warfarin", "Aspirin") == canonical_key("Aspirin", "Warfarin")

    def test_case_and_whitespace_insensitive(self):
        assert canonical_key("  WARFARIN ", "aspirin") == canonical_key("Aspirin", "warfarin")
        assert canonical_key("Warfarin", "Aspirin") == "aspirin|warfarin"

    def test_triple_key_any_order(self):
        assert canonical_key("C", "a", "B") == canonical_key("b", "A", "c") == "a|b|c"

    def test_normalizer_drops_parentheses_and_punctuation(self):
        assert normalize_medication_name("Ibuprofen (Advil)") == "ibuprofen"
        assert normalize_medication_name("St. John's   Wort") == "st johns wort"

    def test_injected_normalizer(self):
        key = canonical_key("Advil", "Tylenol", normalize=lambda name: name.upper())
        assert key == "ADVIL|TYLENOL"


class TestSessionCache:

    def test_put_get_either_order(self):
        cache = SessionCache()
        result = _result()
        cache.put(result)
        assert cache.get("aspirin", "WARFARIN") is result
        assert len(cache) == 1

    def test_clear(self):
        cache = SessionCache()
        cache.put(_result())
        cache.clear()
        assert cache.get("Warfarin", "Aspirin") is None


class TestOverwritePolicy:

    def test_nothing_stored(self):
        assert should_replace(None, _result())

    def test_weaker_candidate_kept_out(self):
        existing = _result(Severity.SEVERE, 90, sources=3)
        assert not should_replace(existing, _result(Severity.MINOR, 40, sources=1))

    def test_more_sources(self):
        assert should_replace(_result(sources=1), _result(sources=2))

    def test_higher_confidence(self):
        assert should_replace(_result(confidence=60), _result(confidence=61))

    def test_higher_severity(self):
        existing = _result(Severity.MINOR, 90, sources=3)
        assert should_replace(existing, _result(Severity.MODERATE, 50, sources=1))

    def test_newly_ai_validated(self):
        assert should_replace(_result(ai=False), _result(ai=True))

    def test_stale_entry(self):
        now = datetime.now()
        old = _result(Severity.SEVERE, 95, sources=4,
                      checked_at=now - timedelta(days=settings.PERSISTED_RESULT_STALE_DAYS + 1))
        assert should_replace(old, _result(Severity.MINOR, 30, sources=1), now=now)


class TestPairProcessor:
    """Pair orchestration"""

    @pytest.mark.asyncio
    async def test_consensus_from_providers(self, fake_provider, make_signal):
        providers = [
            fake_provider(RXNORM, make_signal(RXNORM, "moderate")),
            fake_provider(FDA, make_signal(FDA, "moderate")),
            fake_provider(SUPPAI, None),
        ]
        processor = PairProcessor(providers)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.MODERATE
        assert result.medications == ("Warfarin", "Aspirin")
        assert sorted(s.provider_name for s in result.sources) == [FDA, RXNORM]
        assert all(len(p.calls) == 1 for p in providers)

    @pytest.mark.asyncio
    async def test_session_cache_hit_skips_providers(self, fake_provider, make_signal):
        provider = fake_provider(RXNORM, make_signal(RXNORM, "minor"))
        processor = PairProcessor([provider])

        first = await processor.check_pair("Warfarin", "Aspirin")
        second = await processor.check_pair("aspirin", "warfarin")

        assert second is first
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_treated_as_no_signal(self, fake_provider, make_signal):
        slow = fake_provider(SUPPAI, make_signal(SUPPAI, "severe"), delay=0.5, timeout=0.05)
        fast = fake_provider(RXNORM, make_signal(RXNORM, "minor"))
        processor = PairProcessor([slow, fast])

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.MINOR
        assert [s.provider_name for s in result.sources] == [RXNORM]

    @pytest.mark.asyncio
    async def test_failing_provider_does_not_abort(self, fake_provider, make_signal):
        broken = fake_provider(FDA, error=RuntimeError("boom"))
        working = fake_provider(RXNORM, make_signal(RXNORM, "moderate"))
        processor = PairProcessor([broken, working])

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.MODERATE

    @pytest.mark.asyncio
    async def test_no_data_result(self, fake_provider):
        processor = PairProcessor([
            fake_provider(RXNORM, None),
            fake_provider(FDA, RawSourceSignal(settings.NO_DATA_PROVIDER, Severity.UNKNOWN, "No data")),
        ])

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.UNKNOWN
        assert result.confidence_score == 0
        assert result.sources == ()
        assert "No interaction data" in result.description

    @pytest.mark.asyncio
    async def test_persisted_fallback(self, fake_provider):
        store = InMemoryResultStore()
        stored = _result(Severity.SEVERE, 85, sources=2)
        await store.save("Warfarin", "Aspirin", stored)
        processor = PairProcessor([fake_provider(RXNORM, None)], store=store)

        result = await processor.check_pair("aspirin", "warfarin")

        assert result is stored

    @pytest.mark.asyncio
    async def test_persisted_fallback_when_no_signal_carries_evidence(self, fake_provider):
        store = InMemoryResultStore()
        stored = _result(Severity.SEVERE, 85, sources=2)
        await store.save("Warfarin", "Aspirin", stored)
        empty_answer = RawSourceSignal(RXNORM, Severity.UNKNOWN, "No interactions found for this pair.")
        processor = PairProcessor([fake_provider(RXNORM, empty_answer)], store=store)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.SEVERE
        assert result is stored

    @pytest.mark.asyncio
    async def test_evidence_free_signals_without_store_give_no_data(self, fake_provider):
        store = InMemoryResultStore()
        processor = PairProcessor([
            fake_provider(RXNORM, RawSourceSignal(RXNORM, Severity.UNKNOWN, "No interactions found for this pair.")),
            fake_provider(FDA, RawSourceSignal(FDA, Severity.MODERATE, "")),
        ], store=store)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.UNKNOWN
        assert result.confidence_score == 0
        assert result.sources == ()
        assert "No interaction data" in result.description
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_result_persisted(self, fake_provider, make_signal):
        store = InMemoryResultStore()
        processor = PairProcessor([fake_provider(RXNORM, make_signal(RXNORM, "moderate"))], store=store)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert await store.get("Aspirin", "Warfarin") is result

    @pytest.mark.asyncio
    async def test_weaker_result_does_not_overwrite(self, fake_provider, make_signal):
        store = InMemoryResultStore()
        strong = _result(Severity.SEVERE, 100, sources=4)
        await store.save("Warfarin", "Aspirin", strong)
        processor = PairProcessor([fake_provider(SUPPAI, make_signal(SUPPAI, "minor", confidence=10))],
                                  store=store)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.MINOR
        assert await store.get("Warfarin", "Aspirin") is strong

    @pytest.mark.asyncio
    async def test_slow_store_degrades_to_miss(self, fake_provider, make_signal):
        processor = PairProcessor([fake_provider(RXNORM, make_signal(RXNORM, "minor"))],
                                  store=SlowStore(), store_timeout=0.05)

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.MINOR

    @pytest.mark.asyncio
    async def test_internal_fault_becomes_fallback_result(self, fake_provider, make_signal):
        processor = PairProcessor([fake_provider(RXNORM, make_signal(RXNORM, "minor"))],
                                  calculator=BrokenCalculator())

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.severity == Severity.UNKNOWN
        assert result.confidence_score == 0
        assert "error occurred" in result.description

    @pytest.mark.asyncio
    async def test_event_stats_carried_on_result(self, fake_provider):
        stats = EventStats(120, 10, ("Haemorrhage", "Nausea"))
        signal = RawSourceSignal(EVENTS, Severity.MODERATE, "FAERS shows 120 reported events", event_data=stats)
        processor = PairProcessor([fake_provider(EVENTS, signal)])

        result = await processor.check_pair("Warfarin", "Aspirin")

        assert result.event_stats == stats
        assert result.severity == Severity.SEVERE


class TestJsonFileStore:

    @pytest.mark.asyncio
    async def test_save_and_reload(self, tmp_path):
        path = tmp_path / "results.json"
        stats = EventStats(40, 3, ("Dizziness",))
        result = InteractionResult(
            medications=("Warfarin", "Aspirin"),
            severity=Severity.SEVERE,
            description="Severe interaction risk",
            sources=(RawSourceSignal(EVENTS, Severity.SEVERE, "FAERS events", confidence=60, event_data=stats),),
            confidence_score=88,
            ai_validated=True,
            event_stats=stats,
        )

        await JsonFileResultStore(path).save("Warfarin", "Aspirin", result)
        loaded = await JsonFileResultStore(path).get("aspirin", "WARFARIN")

        assert loaded == result
        assert loaded.checked_at == result.checked_at

    @pytest.mark.asyncio
    async def test_missing_file_is_miss(self, tmp_path):
        assert await JsonFileResultStore(tmp_path / "none.json").get("A", "B") is None
