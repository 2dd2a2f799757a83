"""
Multi-Source Interaction Consensus Engine - Provider Adapter Tests
Payload parsing and HTTP behaviour against mocked transports
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import json

import httpx
import pytest

from config import settings
from src.core.models import Severity
from src.providers.base import recover_signal_fields
from src.providers.text_severity import detect_severity_from_text, mentions
from src.providers.rxnorm import RxNormProvider, parse_rxnorm_interactions, parse_rxcui
from src.providers.suppai import parse_suppai_interactions
from src.providers.fda_label import FdaLabelProvider, parse_label_warnings, build_label_signal
from src.providers.adverse_events import parse_event_stats, parse_adverse_events
from src.providers.literature import LiteratureProvider, parse_literature_analysis


RXNORM_PAYLOAD = {
    "nlmDisclaimer": "It is not the intention of NLM to provide specific medical advice.",
    "fullInteractionTypeGroup": [{
        "sourceName": "DrugBank",
        "fullInteractionType": [{
            "comment": "Drug1 (rxcui = 11289) and Drug2 (rxcui = 1191)",
            "interactionPair": [
                {"severity": "N/A", "description": "Minor additive effect on platelet function."},
                {"severity": "high", "description": "Warfarin may increase the bleeding risk of aspirin."},
                {"severity": "high", "description": "Warfarin may increase the bleeding risk of aspirin."},
            ],
        }],
    }],
}

LABEL_PAYLOAD = {
    "results": [{
        "boxed_warning": ["WARNING: BLEEDING RISK. Warfarin can cause major or fatal bleeding."],
        "drug_interactions": [
            "Aspirin: avoid concomitant use; serious bleeding may occur.",
            "WARNING: BLEEDING RISK. Warfarin can cause major or fatal bleeding.",
        ],
    }]
}


def _event_payload(total, reports):
    return {"meta": {"results": {"total": total}}, "results": reports}


def _report(serious, *reactions):
    return {
        "serious": "1" if serious else "2",
        "patient": {"reaction": [{"reactionmeddrapt": r} for r in reactions]},
    }


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTextSeverity:

    @pytest.mark.parametrize("text,expected", [
        ("Contraindicated with MAOIs.", Severity.SEVERE),
        ("Monitor potassium levels closely.", Severity.MODERATE),
        ("Mild, transient drowsiness.", Severity.MINOR),
        ("There is no known interaction between these drugs.", Severity.SAFE),
        ("Take with food.", Severity.UNKNOWN),
        ("", Severity.UNKNOWN),
    ])
    def test_detect(self, text, expected):
        assert detect_severity_from_text(text) == expected

    def test_mentions_whole_word(self):
        assert mentions("Warfarin may potentiate ASPIRIN effects.", "Aspirin")
        assert not mentions("Contains aspirinate salts.", "aspirin")
        assert not mentions("", "aspirin")


class TestRecovery:

    def test_nested_fields(self):
        payload = {"data": [{"summary": {"risk": "Major", "text": "Monitor INR closely when combined.",
                                         "score": 0.7}}]}
        recovered = recover_signal_fields(payload)
        assert recovered == {
            "severity": Severity.SEVERE,
            "description": "Monitor INR closely when combined.",
            "confidence": 70,
        }

    def test_nothing_found(self):
        assert recover_signal_fields({"items": [1, 2, 3]}) == {}


class TestRxNormParsing:

    def test_worst_pair_wins(self):
        signal = parse_rxnorm_interactions(RXNORM_PAYLOAD)
        assert signal.provider_name == settings.RXNORM_PROVIDER
        assert signal.severity == Severity.SEVERE
        assert signal.confidence == 80
        assert signal.description == (
            "Minor additive effect on platelet function. "
            "Warfarin may increase the bleeding risk of aspirin."
        )

    def test_no_pairs(self):
        assert parse_rxnorm_interactions({"nlmDisclaimer": "..."}) is None
        assert parse_rxnorm_interactions(None) is None

    def test_malformed_payload_recovered(self):
        payload = {"fullInteractionTypeGroup": "unavailable",
                   "detail": {"severity": "moderate", "text": "Monitor INR closely when combined."}}
        signal = parse_rxnorm_interactions(payload)
        assert signal.severity == Severity.MODERATE
        assert signal.description == "Monitor INR closely when combined."

    def test_rxcui(self):
        assert parse_rxcui({"idGroup": {"name": "warfarin", "rxnormId": ["11289"]}}) == "11289"
        assert parse_rxcui({"idGroup": {"name": "unknownium"}}) is None


class TestSuppAiParsing:

    def test_match_on_other_medication(self):
        payload = {"data": {"interactions": [
            {"drug1": "St John's Wort", "drug2": "Sertraline", "evidence_count": 2, "label": ""},
            {"drug1": "St John's Wort", "drug2": "Warfarin", "evidence_count": 12,
             "label": "Caution: reduces anticoagulant effect"},
        ]}}
        signal = parse_suppai_interactions(payload, "warfarin")
        assert signal.severity == Severity.MODERATE
        assert signal.confidence == 70
        assert signal.description == "Caution: reduces anticoagulant effect"

    def test_generated_description(self):
        payload = {"interactions": [{"drug1": "Ginkgo", "drug2": "Aspirin", "evidence_count": 2}]}
        signal = parse_suppai_interactions(payload, "Aspirin")
        assert signal.severity == Severity.MINOR
        assert signal.confidence == 50
        assert "2 literature findings" in signal.description

    def test_no_match(self):
        payload = {"interactions": [{"drug1": "Ginkgo", "drug2": "Aspirin", "evidence_count": 2}]}
        assert parse_suppai_interactions(payload, "Metformin") is None


class TestLabelParsing:

    def test_warnings_deduplicated_boxed_first(self):
        warnings = parse_label_warnings(LABEL_PAYLOAD)
        assert warnings == [
            "WARNING: BLEEDING RISK. Warfarin can cause major or fatal bleeding.",
            "Aspirin: avoid concomitant use; serious bleeding may occur.",
        ]

    def test_signal_uses_warnings_naming_other_drug(self):
        warnings = parse_label_warnings(LABEL_PAYLOAD)
        signal = build_label_signal("Warfarin", warnings, "Aspirin", [])
        assert signal.provider_name == settings.FDA_LABEL_PROVIDER
        assert signal.severity == Severity.MODERATE
        assert signal.description.startswith("Aspirin:")

    def test_no_relevant_warning(self):
        warnings = parse_label_warnings(LABEL_PAYLOAD)
        assert build_label_signal("Warfarin", warnings, "Metformin", []) is None

    def test_empty_results(self):
        assert parse_label_warnings({"results": []}) == []


class TestAdverseEventParsing:

    def test_serious_share_projected_onto_total(self):
        reports = [
            _report(True, "Haemorrhage", "Nausea"),
            _report(True, "Haemorrhage", "Dizziness"),
            _report(True, "Haemorrhage"),
            _report(False, "Haemorrhage", "Rash"),
            _report(False, "Nausea", "Dizziness"),
            _report(False, "Headache"),
            _report(False, "Fatigue"),
            _report(False),
            _report(False),
            _report(False),
        ]
        stats = parse_event_stats(_event_payload(200, reports))
        assert stats.total_events == 200
        assert stats.serious_events == 60
        assert stats.common_reactions == ("Haemorrhage", "Dizziness", "Nausea", "Fatigue", "Headache")

        signal = parse_adverse_events(_event_payload(200, reports))
        assert signal.provider_name == settings.ADVERSE_EVENTS_PROVIDER
        assert signal.severity == Severity.SEVERE
        assert signal.confidence == 80
        assert signal.event_data == stats
        assert "200 reported adverse events" in signal.description

    def test_few_events_no_signal(self):
        payload = _event_payload(4, [_report(False, "Nausea")] * 4)
        assert parse_event_stats(payload).total_events == 4
        assert parse_adverse_events(payload) is None

    def test_empty(self):
        assert parse_event_stats({"results": []}) is None


class TestLiteratureParsing:

    def test_wrapped_analysis(self):
        payload = {"result": {
            "severity": "moderate",
            "description": "Two cohort studies report increased bleeding with concurrent use.",
            "confidence": 0.8,
            "pubMedIds": ["31234567"],
            "hasDirectEvidence": True,
        }}
        signal = parse_literature_analysis(payload)
        assert signal.provider_name == settings.LITERATURE_PROVIDER
        assert signal.severity == Severity.MODERATE
        assert signal.confidence == 80
        assert signal.has_direct_evidence
        assert signal.references == ("31234567",)

    def test_direct_evidence_needs_citations(self):
        payload = {"description": "Case reports suggest caution with this combination.",
                   "hasDirectEvidence": True}
        signal = parse_literature_analysis(payload)
        assert not signal.has_direct_evidence
        assert signal.severity == Severity.MODERATE

    def test_service_error_text(self):
        assert parse_literature_analysis({"description": "An error occurred while analyzing."}) is None


class TestRxNormProvider:

    @pytest.mark.asyncio
    async def test_resolves_both_names_then_lists(self):
        rxcuis = {"warfarin": "11289", "aspirin": "1191"}
        seen = []

        def handler(request):
            seen.append(request.url.path)
            if request.url.path.endswith("/rxcui.json"):
                name = request.url.params["name"].lower()
                return httpx.Response(200, json={"idGroup": {"rxnormId": [rxcuis[name]]}})
            assert request.url.params["rxcuis"] == "11289 1191"
            return httpx.Response(200, json=RXNORM_PAYLOAD)

        async with _client(handler) as client:
            provider = RxNormProvider(client=client, base_url="https://rxnav.test/REST")
            signal = await provider.fetch("Warfarin", "Aspirin")

        assert signal.severity == Severity.SEVERE
        assert seen == ["/REST/rxcui.json", "/REST/rxcui.json", "/REST/interaction/list.json"]

    @pytest.mark.asyncio
    async def test_unresolved_name(self):
        def handler(request):
            return httpx.Response(200, json={"idGroup": {}})

        async with _client(handler) as client:
            provider = RxNormProvider(client=client, base_url="https://rxnav.test/REST")
            assert await provider.fetch("Warfarin", "Unknownium") is None

    @pytest.mark.asyncio
    async def test_server_error_is_none(self):
        def handler(request):
            return httpx.Response(500, text="upstream failure")

        async with _client(handler) as client:
            provider = RxNormProvider(client=client, base_url="https://rxnav.test/REST")
            assert await provider.fetch("Warfarin", "Aspirin") is None

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            provider = RxNormProvider(client=client, base_url="https://rxnav.test/REST", timeout=0.05)
            assert await provider.fetch("Warfarin", "Aspirin") is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_none(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with _client(handler) as client:
            provider = RxNormProvider(client=client, base_url="https://rxnav.test/REST")
            assert await provider.fetch("Warfarin", "Aspirin") is None


class TestFdaLabelProvider:

    @pytest.mark.asyncio
    async def test_fetch_warnings_with_api_key(self):
        def handler(request):
            assert request.url.path == "/drug/label.json"
            assert request.url.params["api_key"] == "test-key"
            assert "Warfarin" in request.url.params["search"]
            return httpx.Response(200, json=LABEL_PAYLOAD)

        async with _client(handler) as client:
            provider = FdaLabelProvider(client=client, base_url="https://fda.test", api_key="test-key")
            warnings = await provider.fetch_warnings("Warfarin")

        assert len(warnings) == 2

    @pytest.mark.asyncio
    async def test_missing_label_is_empty(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"code": "NOT_FOUND"}})

        async with _client(handler) as client:
            provider = FdaLabelProvider(client=client, base_url="https://fda.test", api_key="")
            assert await provider.fetch_warnings("Unknownium") == []
            assert await provider.fetch("Unknownium", "Aspirin") is None


class TestLiteratureProvider:

    @pytest.mark.asyncio
    async def test_posts_both_names(self):
        def handler(request):
            assert request.method == "POST"
            assert json.loads(request.content) == {"drug1": "Warfarin", "drug2": "Aspirin"}
            return httpx.Response(200, json={
                "severity": "severe",
                "description": "Meta-analysis shows major bleeding risk with the combination.",
                "confidence": 75,
            })

        async with _client(handler) as client:
            provider = LiteratureProvider(client=client, base_url="https://literature.test/analyze")
            signal = await provider.fetch(" Warfarin ", "Aspirin")

        assert signal.severity == Severity.SEVERE
        assert signal.confidence == 75
