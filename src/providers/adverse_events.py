"""
OpenFDA adverse event provider (FAERS drug/event endpoint)
"""
import logging
import math
from collections import Counter
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from src.core.models import RawSourceSignal, EventStats, Severity
from src.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

SAMPLE_LIMIT = 100
MIN_EVENTS_FOR_SIGNAL = 5
TOP_REACTIONS = 5


class Reaction(BaseModel):
    reactionmeddrapt: Optional[str] = None


class Patient(BaseModel):
    reaction: List[Reaction] = []


class EventReport(BaseModel):
    serious: Optional[str] = None
    patient: Optional[Patient] = None


class ResultsMeta(BaseModel):
    total: int = 0


class Meta(BaseModel):
    results: Optional[ResultsMeta] = None


class EventResponse(BaseModel):
    meta: Optional[Meta] = None
    results: List[EventReport] = []


def parse_event_stats(payload: Any) -> Optional[EventStats]:
    """
    Aggregate counts from one page of FAERS reports.

    The total comes from meta.results.total; the serious share observed in
    the returned sample is projected onto that total.
    """
    if not payload:
        return None
    try:
        parsed = EventResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Adverse event payload failed validation: {e.error_count()} errors")
        return None

    if not parsed.results:
        return None

    sample_size = len(parsed.results)
    total = sample_size
    if parsed.meta and parsed.meta.results and parsed.meta.results.total > 0:
        total = max(parsed.meta.results.total, sample_size)

    serious_in_sample = sum(1 for r in parsed.results if r.serious == "1")
    serious = min(total, round(total * serious_in_sample / sample_size))

    reactions = Counter(
        reaction.reactionmeddrapt.strip()
        for report in parsed.results if report.patient
        for reaction in report.patient.reaction
        if reaction.reactionmeddrapt and reaction.reactionmeddrapt.strip()
    )
    # Most frequent first, alphabetical among equals
    common = sorted(reactions.items(), key=lambda item: (-item[1], item[0]))[:TOP_REACTIONS]

    return EventStats(
        total_events=total,
        serious_events=serious,
        common_reactions=tuple(name for name, _ in common),
    )


def event_signal_severity(stats: EventStats) -> Severity:
    percent = stats.serious_percentage * 100
    if percent > 30 or stats.serious_events > 50:
        return Severity.SEVERE
    if percent > 15 or stats.serious_events > 20:
        return Severity.MODERATE
    if stats.total_events > 10:
        return Severity.MINOR
    return Severity.UNKNOWN


def event_signal_confidence(stats: EventStats) -> int:
    """30..80 on a log curve of event volume"""
    return int(round(100 * (0.3 + min(0.5, math.log10(stats.total_events + 1) / 3))))


def describe_events(stats: EventStats) -> str:
    description = (
        f"FDA Adverse Event Reporting System (FAERS) shows {stats.total_events} reported adverse "
        f"events when these substances are taken together."
    )
    if stats.serious_events > 0:
        description += (
            f" {stats.serious_events} ({round(stats.serious_percentage * 100)}%) were classified "
            f"as serious medical events."
        )
    if stats.common_reactions:
        description += f" Common reported reactions include: {', '.join(stats.common_reactions[:3])}."
    return description


def build_event_signal(stats: Optional[EventStats]) -> Optional[RawSourceSignal]:
    if stats is None or stats.total_events <= MIN_EVENTS_FOR_SIGNAL:
        return None
    return RawSourceSignal(
        provider_name=settings.ADVERSE_EVENTS_PROVIDER,
        severity=event_signal_severity(stats),
        description=describe_events(stats),
        confidence=event_signal_confidence(stats),
        event_data=stats,
    )


def parse_adverse_events(payload: Any) -> Optional[RawSourceSignal]:
    return build_event_signal(parse_event_stats(payload))


class AdverseEventsProvider(ProviderAdapter):
    name = settings.ADVERSE_EVENTS_PROVIDER

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, api_key: Optional[str] = None):
        super().__init__(base_url or settings.OPENFDA_API_URL, client, timeout)
        self.api_key = api_key if api_key is not None else settings.OPENFDA_API_KEY

    @staticmethod
    def _drug_clause(medication: str) -> str:
        name = medication.strip().replace('"', '')
        return f'(patient.drug.openfda.generic_name:"{name}" OR patient.drug.openfda.brand_name:"{name}")'

    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        params = {
            "search": f"{self._drug_clause(med1)} AND {self._drug_clause(med2)}",
            "limit": SAMPLE_LIMIT,
        }
        if self.api_key:
            params["api_key"] = self.api_key
        payload = await self._get_json("/drug/event.json", params=params)
        return parse_adverse_events(payload)
