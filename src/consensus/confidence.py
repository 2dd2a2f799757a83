"""
Multi-Source Interaction Consensus Engine - Confidence Scorer
Vote distribution and source metadata -> 0-100 confidence score
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from config import settings
from src.core.models import (
    Severity, WeightedSource, EventStats, ConfidenceAdjustment, KNOWN_SEVERITIES
)
from src.consensus.weighting import is_literature_source, is_trusted_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfidenceInputs:
    """Everything the scorer looks at, gathered by the calculator"""
    final_severity: Severity
    votes: Dict[Severity, float]
    counts: Dict[Severity, int]
    total_weight: float
    contributing: Tuple[WeightedSource, ...]
    event_stats: Optional[EventStats] = None
    ai_validated: bool = False


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def _bounded(score: int) -> int:
    return max(0, min(100, score))


def agreement_ratio(final_severity: Severity, counts: Dict[Severity, int]) -> float:
    """Share of known-severity votes that back the final severity (0 for unknown)"""
    if final_severity not in KNOWN_SEVERITIES:
        return 0.0
    known_total = sum(counts.get(s, 0) for s in KNOWN_SEVERITIES)
    if known_total == 0:
        return 0.0
    return counts.get(final_severity, 0) / known_total


def _has_trusted_source(inputs: ConfidenceInputs) -> bool:
    if inputs.event_stats is not None and inputs.event_stats.total_events > 0:
        return True
    return any(is_trusted_source(ws.signal.provider_name) for ws in inputs.contributing)


def _has_large_sample(inputs: ConfidenceInputs) -> bool:
    threshold = settings.CONFIDENCE_LARGE_SAMPLE_EVENTS
    if inputs.event_stats is not None and inputs.event_stats.total_events > threshold:
        return True
    return any(
        ws.signal.event_data is not None and ws.signal.event_data.total_events > threshold
        for ws in inputs.contributing
    )


def literature_agreement(inputs: ConfidenceInputs) -> Optional[Tuple[WeightedSource, int]]:
    """
    The literature source agreeing with the final severity, with the number
    of other votes behind that severity. None when no literature source
    agrees with at least one other vote.
    """
    for ws in inputs.contributing:
        if not is_literature_source(ws.signal.provider_name):
            continue
        if ws.signal.severity != inputs.final_severity:
            continue
        others = inputs.counts.get(inputs.final_severity, 0) - 1
        if others >= settings.CONFIDENCE_AI_MIN_AGREEING:
            return ws, others
    return None


def score_confidence(inputs: ConfidenceInputs) -> Tuple[int, List[ConfidenceAdjustment]]:
    """
    Base score from the vote share of the final severity, then additive
    adjustments applied in a fixed order. The score is bounded to [0, 100]
    after every step; the returned list records each adjustment that fired.
    """
    adjustments: List[ConfidenceAdjustment] = []

    def apply(name: str, delta: int, current: int) -> int:
        new_score = _bounded(current + delta)
        adjustments.append(ConfidenceAdjustment(name=name, delta=new_score - current, score_after=new_score))
        logger.debug(f"Confidence {name}: {current} -> {new_score}")
        return new_score

    if inputs.total_weight > 0:
        primary = inputs.votes.get(inputs.final_severity, 0.0)
        base = _round_half_up(100.0 * primary / inputs.total_weight)
    else:
        base = 0
    score = _bounded(base)
    adjustments.append(ConfidenceAdjustment(name="base", delta=score, score_after=score))

    ratio = agreement_ratio(inputs.final_severity, inputs.counts)
    if ratio >= settings.CONFIDENCE_STRONG_AGREEMENT:
        score = apply("strong_agreement", settings.CONFIDENCE_STRONG_AGREEMENT_BONUS, score)
    elif ratio >= settings.CONFIDENCE_MAJORITY_AGREEMENT:
        score = apply("majority_agreement", settings.CONFIDENCE_MAJORITY_AGREEMENT_BONUS, score)

    distinct_sources = {ws.signal.provider_name for ws in inputs.contributing}
    if len(distinct_sources) >= settings.CONFIDENCE_SOURCE_COUNT_MIN:
        score = apply("source_count", settings.CONFIDENCE_SOURCE_COUNT_BONUS, score)

    trusted = _has_trusted_source(inputs)
    if trusted:
        score = apply("trusted_source", settings.CONFIDENCE_TRUSTED_SOURCE_BONUS, score)

    if _has_large_sample(inputs):
        score = apply("large_sample", settings.CONFIDENCE_LARGE_SAMPLE_BONUS, score)

    agreement = literature_agreement(inputs)
    if agreement is not None:
        literature, others = agreement
        if literature.signal.has_direct_evidence and others >= settings.CONFIDENCE_AI_MIN_CORROBORATING:
            score = apply("ai_direct_evidence", settings.CONFIDENCE_AI_DIRECT_EVIDENCE_BONUS, score)
        else:
            score = apply("ai_agreement", settings.CONFIDENCE_AI_AGREEMENT_BONUS, score)

    if inputs.final_severity == Severity.UNKNOWN:
        score = apply("unknown_penalty", -settings.CONFIDENCE_UNKNOWN_PENALTY, score)

    if ratio >= settings.CONFIDENCE_STRONG_AGREEMENT and trusted \
            and score < settings.CONFIDENCE_TRUSTED_AGREEMENT_FLOOR:
        score = apply("trusted_agreement_floor", settings.CONFIDENCE_TRUSTED_AGREEMENT_FLOOR - score, score)

    if inputs.contributing and score < settings.CONFIDENCE_MIN_WITH_SOURCES:
        score = apply("minimum_with_sources", settings.CONFIDENCE_MIN_WITH_SOURCES - score, score)

    score = _bounded(score)
    logger.info(
        f"Confidence for {inputs.final_severity.value}: {score}% "
        f"({', '.join(f'{a.name}{a.delta:+d}' for a in adjustments[1:]) or 'no adjustments'})"
    )
    return score, adjustments
