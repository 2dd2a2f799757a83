"""
Multi-Source Interaction Consensus Engine - Source Validation
Decides which provider signals carry real evidence and may vote
"""
import logging
from typing import Dict, List, Tuple, Iterable

from config import settings
from src.core.models import RawSourceSignal, Severity, escalation_rank, is_no_data_provider

logger = logging.getLogger(__name__)


# Phrases meaning "the provider looked and found nothing"
NEGATION_PHRASES = [
    "no interaction found",
    "no interactions found",
    "no known interaction",
    "no interaction data",
    "no data available",
    "no information available",
    "no interactions were found",
    "not found",
    "no results",
]

# Generic filler some providers return instead of evidence
BOILERPLATE_PHRASES = [
    "consult your doctor",
    "consult a healthcare professional",
    "consult your healthcare provider",
    "see package insert",
]


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def missing_evidence_reason(signal: RawSourceSignal) -> str:
    """Why a signal carries no evidence at all; empty string when it does"""
    if is_no_data_provider(signal.provider_name):
        return "no-data provider"

    # Real adverse-event counts are evidence regardless of wording
    if signal.has_events:
        return ""

    description = signal.description.strip()
    if not description:
        return "no description or events"
    if signal.severity == Severity.UNKNOWN:
        if len(description) <= settings.MIN_DESCRIPTION_LENGTH:
            return "unknown severity without description or events"
        if _contains_any(description, NEGATION_PHRASES):
            return "unknown severity with negation text"
    return ""


def rejection_reason(signal: RawSourceSignal) -> str:
    """Why a signal may not vote; empty string when it is valid"""
    reason = missing_evidence_reason(signal)
    if reason or signal.has_events:
        return reason

    stripped = signal.description.lower().strip(" .")
    if any(stripped == phrase for phrase in BOILERPLATE_PHRASES):
        return "boilerplate text only"
    return ""


def is_valid_signal(signal: RawSourceSignal) -> bool:
    return rejection_reason(signal) == ""


def select_eligible(signals: List[RawSourceSignal]) -> Tuple[List[RawSourceSignal], bool]:
    """
    Filter signals down to those eligible to vote.

    When every signal in a non-empty input is rejected, the unfiltered
    input is returned instead and the second element is True.
    """
    eligible = []
    for signal in signals:
        reason = rejection_reason(signal)
        if reason:
            logger.debug(f"Rejected source {signal.provider_name!r}: {reason}")
        else:
            eligible.append(signal)

    if not eligible and signals:
        logger.warning(
            f"All {len(signals)} sources failed validation; "
            f"falling back to unfiltered set: {sorted(s.provider_name for s in signals)}"
        )
        return list(signals), True

    return eligible, False


def _duplicate_preference(signal: RawSourceSignal) -> Tuple[int, int, int, int, str]:
    return (
        escalation_rank(signal.severity),
        len(signal.description.strip()),
        signal.confidence if signal.confidence is not None else -1,
        signal.event_data.total_events if signal.event_data is not None else -1,
        signal.description,
    )


def deduplicate_and_order(signals: List[RawSourceSignal]) -> List[RawSourceSignal]:
    """
    One signal per provider name, ordered by provider name.

    Among duplicates the worst severity on the escalation order wins, then
    the longer description, then the higher confidence and event count,
    so the survivor does not depend on input order.
    """
    best: Dict[str, RawSourceSignal] = {}
    for signal in signals:
        current = best.get(signal.provider_name)
        if current is None or _duplicate_preference(signal) > _duplicate_preference(current):
            best[signal.provider_name] = signal
    return [best[name] for name in sorted(best)]
