"""
Multi-Source Interaction Consensus Engine - Consensus Calculator
Weighted voting across validated provider signals for one medication pair
"""
import logging
from typing import Dict, List, Optional, Tuple

from config import settings
from src.core.models import (
    RawSourceSignal, WeightedSource, EventStats, Severity,
    ConsensusResult, ConsensusTrace, VOTE_BUCKETS, TIE_BREAK_PREFERENCE,
    empty_vote_buckets
)
from src.consensus.validation import select_eligible, deduplicate_and_order
from src.consensus.weighting import weigh_sources, is_literature_source
from src.consensus.confidence import ConfidenceInputs, score_confidence, literature_agreement
from src.consensus.description import generate_description

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


NO_DATA_DESCRIPTION = "No data available to determine interaction severity."
INSUFFICIENT_DATA_DESCRIPTION = "Insufficient data to determine interaction severity."


def classify_event_stats(stats: Optional[EventStats]) -> Optional[Tuple[Severity, float]]:
    """Adverse-event statistics as one extra (severity, weight) vote"""
    if stats is None or stats.total_events <= 0:
        return None

    weight = settings.ADVERSE_EVENT_VOTE_WEIGHT
    if stats.serious_percentage >= settings.ADVERSE_EVENT_SEVERE_THRESHOLD:
        return Severity.SEVERE, weight
    if stats.serious_events > 0:
        return Severity.MODERATE, weight
    if stats.total_events > settings.ADVERSE_EVENT_MINOR_MIN_EVENTS:
        return Severity.MINOR, weight
    return Severity.SAFE, weight / 2


def severe_override_sources(contributing: List[WeightedSource]) -> List[str]:
    """Distinct non-literature sources reporting severe with a qualifying weight"""
    names = {
        ws.signal.provider_name
        for ws in contributing
        if ws.signal.severity == Severity.SEVERE
        and ws.weight >= settings.SEVERE_OVERRIDE_MIN_WEIGHT
        and not is_literature_source(ws.signal.provider_name)
    }
    return sorted(names)


def has_non_literature_severe(contributing: List[WeightedSource],
                              event_vote: Optional[Tuple[Severity, float]] = None) -> bool:
    """Whether anything besides literature analysis voted severe"""
    if event_vote is not None and event_vote[0] == Severity.SEVERE:
        return True
    return any(
        ws.signal.severity == Severity.SEVERE and not is_literature_source(ws.signal.provider_name)
        for ws in contributing
    )


def pick_by_votes(votes: Dict[Severity, float]) -> Severity:
    """Strictly highest bucket; exact ties go to the first in preference order"""
    final = Severity.UNKNOWN
    best = 0.0
    for severity in TIE_BREAK_PREFERENCE:
        vote = votes.get(severity, 0.0)
        if vote > best:
            best = vote
            final = severity
    return final


class ConsensusCalculator:
    """Stateless: identical input sets always produce identical results"""

    def calculate(
        self,
        signals: List[RawSourceSignal],
        event_stats: Optional[EventStats] = None
    ) -> ConsensusResult:
        if not signals:
            logger.info("No sources provided, returning unknown severity")
            return ConsensusResult(
                severity=Severity.UNKNOWN,
                confidence_score=0,
                description=NO_DATA_DESCRIPTION,
                ai_validated=False,
            )

        eligible, used_fallback = select_eligible(list(signals))
        ordered = deduplicate_and_order(eligible)
        logger.debug(f"Consensus over sources: {[s.provider_name for s in ordered]}")

        contributing = [ws for ws in weigh_sources(ordered) if ws.weight > 0]

        votes = empty_vote_buckets()
        counts = {severity: 0 for severity in VOTE_BUCKETS}
        for ws in contributing:
            votes[ws.signal.severity] += ws.weight
            counts[ws.signal.severity] += 1

        event_vote = classify_event_stats(event_stats)
        if event_vote is not None:
            event_severity, event_weight = event_vote
            votes[event_severity] += event_weight
            counts[event_severity] += 1
            logger.debug(f"Adverse-event vote: {event_severity.value} ({event_weight:.3f})")

        total_weight = sum(votes.values())
        vote_summary = ", ".join(f"{s.value}={v:.4f}" for s, v in votes.items())
        logger.debug(f"Votes: {vote_summary}; total={total_weight:.4f}")

        if total_weight <= 0:
            logger.info("Total weight is zero, returning unknown severity")
            return ConsensusResult(
                severity=Severity.UNKNOWN,
                confidence_score=0,
                description=INSUFFICIENT_DATA_DESCRIPTION,
                ai_validated=False,
                trace=ConsensusTrace(
                    votes=tuple((s, votes[s]) for s in VOTE_BUCKETS),
                    counts=tuple((s, counts[s]) for s in VOTE_BUCKETS),
                    used_validation_fallback=used_fallback,
                ),
            )

        override_names = severe_override_sources(contributing)
        severe_override = len(override_names) >= settings.SEVERE_OVERRIDE_MIN_SOURCES
        if severe_override:
            final_severity = Severity.SEVERE
            logger.info(f"Severe override by {override_names}")
        else:
            final_severity = pick_by_votes(votes)

        literature_capped = (
            final_severity == Severity.SEVERE
            and not severe_override
            and not has_non_literature_severe(contributing, event_vote)
        )
        if literature_capped:
            final_severity = Severity.MODERATE
            logger.info("Severe backed only by literature analysis, capped at moderate")

        inputs = ConfidenceInputs(
            final_severity=final_severity,
            votes=votes,
            counts=counts,
            total_weight=total_weight,
            contributing=tuple(contributing),
            event_stats=event_stats,
        )
        confidence_score, adjustments = score_confidence(inputs)
        ai_validated = literature_agreement(inputs) is not None

        description = generate_description(
            final_severity,
            confidence_score,
            [ws.signal.provider_name for ws in contributing],
            event_stats,
        )

        logger.info(
            f"Consensus: {final_severity.value} at {confidence_score}% from "
            f"{len(contributing)} sources (ai_validated={ai_validated})"
        )
        return ConsensusResult(
            severity=final_severity,
            confidence_score=confidence_score,
            description=description,
            ai_validated=ai_validated,
            trace=ConsensusTrace(
                contributing=tuple(contributing),
                votes=tuple((s, votes[s]) for s in VOTE_BUCKETS),
                counts=tuple((s, counts[s]) for s in VOTE_BUCKETS),
                total_weight=total_weight,
                event_vote=event_vote,
                used_validation_fallback=used_fallback,
                severe_override=severe_override,
                literature_severe_capped=literature_capped,
                adjustments=tuple(adjustments),
            ),
        )


def calculate_consensus(
    signals: List[RawSourceSignal],
    event_stats: Optional[EventStats] = None
) -> ConsensusResult:
    return ConsensusCalculator().calculate(signals, event_stats)
