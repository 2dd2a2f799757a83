"""
Multi-Source Interaction Consensus Engine - Source Weight Assigner
Converts a validated signal into a reliability weight in [0, 1]
"""
import logging
from typing import Dict, List

import numpy as np

from config import settings
from src.core.models import RawSourceSignal, WeightedSource, Severity, provider_profile
from src.consensus.validation import missing_evidence_reason

logger = logging.getLogger(__name__)


def provider_kind(provider_name: str) -> str:
    return str(provider_profile(provider_name)["kind"])


def is_literature_source(provider_name: str) -> bool:
    return provider_kind(provider_name) == "literature"


def is_trusted_source(provider_name: str) -> bool:
    """Structured databases and adverse-event statistics"""
    return provider_kind(provider_name) in settings.TRUSTED_SOURCE_KINDS


def confidence_multiplier(confidence) -> float:
    """Maps self-reported confidence 0..100 linearly onto the multiplier range"""
    if confidence is None:
        confidence = settings.DEFAULT_SIGNAL_CONFIDENCE
    span = settings.CONFIDENCE_MULTIPLIER_MAX - settings.CONFIDENCE_MULTIPLIER_MIN
    return settings.CONFIDENCE_MULTIPLIER_MIN + span * (float(confidence) / 100.0)


def compute_weight(signal: RawSourceSignal) -> float:
    """
    Reliability weight of one signal.

    Adjustments run in a fixed order: confidence multiplier, event volume
    bonus, serious-event bonus, severe boost (never for literature sources),
    unknown penalty, clamp to the provider's maximum.
    """
    if missing_evidence_reason(signal):
        return 0.0

    profile = provider_profile(signal.provider_name)
    weight = float(profile["base_weight"])

    weight *= confidence_multiplier(signal.confidence)

    events = signal.event_data
    if events is not None and events.total_events > 0:
        weight += min(
            events.total_events * settings.EVENT_VOLUME_BONUS_PER_EVENT,
            settings.EVENT_VOLUME_BONUS_CAP
        )
        if events.serious_percentage > settings.SERIOUS_EVENT_BONUS_THRESHOLD:
            weight += settings.SERIOUS_EVENT_BONUS

    if signal.severity == Severity.SEVERE and profile["kind"] != "literature":
        weight *= settings.SEVERE_SIGNAL_BOOST

    if signal.severity == Severity.UNKNOWN:
        weight *= settings.UNKNOWN_SIGNAL_PENALTY

    max_weight = min(1.0, float(profile.get("max_weight", 1.0)))
    return float(np.clip(weight, 0.0, max_weight))


def weigh_sources(signals: List[RawSourceSignal]) -> List[WeightedSource]:
    weighted = [WeightedSource(signal=s, weight=compute_weight(s)) for s in signals]
    for ws in weighted:
        logger.debug(
            f"Weight {ws.signal.provider_name}: {ws.weight:.3f} "
            f"(severity={ws.signal.severity.value}, confidence={ws.signal.confidence})"
        )
    return weighted


def weights_by_provider(weighted: List[WeightedSource]) -> Dict[str, float]:
    return {ws.signal.provider_name: ws.weight for ws in weighted}
