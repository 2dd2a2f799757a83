"""
Multi-Source Interaction Consensus Engine - Description Generator
"""
from typing import Iterable, List, Optional

from src.core.models import Severity, EventStats, is_no_data_provider


def contributing_names(provider_names: Iterable[str]) -> List[str]:
    """Deduplicated, alphabetically sorted names without placeholder sources"""
    return sorted({name for name in provider_names if not is_no_data_provider(name)})


def generate_description(
    severity: Severity,
    confidence_score: int,
    provider_names: Iterable[str],
    event_stats: Optional[EventStats] = None
) -> str:
    names = contributing_names(provider_names)
    source_list = ", ".join(names) if names else "available data"

    if severity == Severity.SEVERE:
        text = (
            f"Severe interaction risk identified with {confidence_score}% confidence "
            f"based on {source_list}."
        )
        if event_stats is not None and event_stats.serious_events > 0:
            text += f" Real-world data shows {event_stats.serious_events} serious adverse events."
        return text
    if severity == Severity.MODERATE:
        return (
            f"Moderate interaction risk identified with {confidence_score}% confidence "
            f"based on {source_list}. Monitor closely and consult a healthcare professional."
        )
    if severity == Severity.MINOR:
        return (
            f"Minor interaction potential with {confidence_score}% confidence "
            f"based on {source_list}. Generally considered manageable."
        )
    if severity == Severity.SAFE:
        return f"Verified safe to take together with {confidence_score}% confidence based on {source_list}."
    return (
        f"Interaction status is uncertain ({confidence_score}% confidence). "
        f"Limited data available. Consult a healthcare professional."
    )
