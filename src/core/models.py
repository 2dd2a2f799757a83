"""
Multi-Source Interaction Consensus Engine - Data Models
Severity domain, provider signals and interaction results
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Tuple, Callable, Iterable
from enum import Enum
from datetime import datetime
import re

from config import settings


class Severity(str, Enum):
    SAFE = "safe"
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Severity":
        """Lenient parse of provider severity labels; anything unrecognised is UNKNOWN"""
        if isinstance(value, Severity):
            return value
        if not value:
            return cls.UNKNOWN
        label = str(value).strip().lower()
        aliases = {
            "high": cls.SEVERE,
            "major": cls.SEVERE,
            "contraindicated": cls.SEVERE,
            "medium": cls.MODERATE,
            "low": cls.MINOR,
            "none": cls.SAFE,
            "no interaction": cls.SAFE,
        }
        if label in aliases:
            return aliases[label]
        try:
            return cls(label)
        except ValueError:
            return cls.UNKNOWN


# Clinical escalation order, used to pick the worse of two results.
# UNKNOWN ranks below every known severity for display purposes.
ESCALATION_RANK: Dict[Severity, int] = {
    Severity.SEVERE: 4,
    Severity.MODERATE: 3,
    Severity.MINOR: 2,
    Severity.SAFE: 1,
    Severity.UNKNOWN: 0,
}

# Vote buckets: independent accumulators, not an ordering
VOTE_BUCKETS: Tuple[Severity, ...] = (
    Severity.SAFE,
    Severity.MINOR,
    Severity.MODERATE,
    Severity.SEVERE,
    Severity.UNKNOWN,
)

# Exact-tie preference when two buckets hold the same weighted vote
TIE_BREAK_PREFERENCE: Tuple[Severity, ...] = (
    Severity.SEVERE,
    Severity.MODERATE,
    Severity.MINOR,
    Severity.SAFE,
    Severity.UNKNOWN,
)

KNOWN_SEVERITIES = frozenset({Severity.SAFE, Severity.MINOR, Severity.MODERATE, Severity.SEVERE})


def escalation_rank(severity: Severity) -> int:
    return ESCALATION_RANK.get(severity, 0)


def most_severe(severities: Iterable[Severity]) -> Severity:
    """Worst severity on the escalation order (UNKNOWN for an empty input)"""
    worst = Severity.UNKNOWN
    for severity in severities:
        if escalation_rank(severity) > escalation_rank(worst):
            worst = severity
    return worst


def empty_vote_buckets() -> Dict[Severity, float]:
    return {severity: 0.0 for severity in VOTE_BUCKETS}


class CombinationType(str, Enum):
    SINGLE = "single"
    PAIR = "pair"
    TRIPLE = "triple"


@dataclass(frozen=True)
class EventStats:
    """Real-world adverse event counts for a medication pair"""
    total_events: int = 0
    serious_events: int = 0
    common_reactions: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.total_events < 0 or self.serious_events < 0:
            raise ValueError("Event counts must be non-negative")
        if self.serious_events > self.total_events:
            raise ValueError("serious_events cannot exceed total_events")
        object.__setattr__(self, "common_reactions", tuple(self.common_reactions))

    @property
    def serious_percentage(self) -> float:
        if self.total_events == 0:
            return 0.0
        return self.serious_events / self.total_events

    @property
    def non_serious_events(self) -> int:
        return self.total_events - self.serious_events


@dataclass(frozen=True)
class RawSourceSignal:
    """One provider's reported severity and evidence for a medication pair"""
    provider_name: str
    severity: Severity = Severity.UNKNOWN
    description: str = ""
    confidence: Optional[int] = None  # 0-100, self-reported
    event_data: Optional[EventStats] = None
    is_reliable_hint: Optional[bool] = None
    has_direct_evidence: bool = False
    references: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        object.__setattr__(self, "description", self.description or "")
        object.__setattr__(self, "references", tuple(self.references))
        if self.confidence is not None:
            object.__setattr__(self, "confidence", max(0, min(100, int(self.confidence))))

    @property
    def has_events(self) -> bool:
        return self.event_data is not None and self.event_data.total_events > 0


@dataclass(frozen=True)
class WeightedSource:
    """A validated signal with its reliability weight in [0, 1]"""
    signal: RawSourceSignal
    weight: float


@dataclass(frozen=True)
class ConfidenceAdjustment:
    """One applied confidence heuristic, recorded for explanations and tests"""
    name: str
    delta: int
    score_after: int


@dataclass(frozen=True)
class ConsensusTrace:
    """Intermediate values of one consensus run"""
    contributing: Tuple[WeightedSource, ...] = ()
    votes: Tuple[Tuple[Severity, float], ...] = ()
    counts: Tuple[Tuple[Severity, int], ...] = ()
    total_weight: float = 0.0
    event_vote: Optional[Tuple[Severity, float]] = None
    used_validation_fallback: bool = False
    severe_override: bool = False
    literature_severe_capped: bool = False
    adjustments: Tuple[ConfidenceAdjustment, ...] = ()

    @property
    def signals(self) -> List[RawSourceSignal]:
        return [ws.signal for ws in self.contributing]

    def weight_of(self, provider_name: str) -> Optional[float]:
        for ws in self.contributing:
            if ws.signal.provider_name == provider_name:
                return ws.weight
        return None


@dataclass(frozen=True)
class ConsensusResult:
    """Engine output for one medication pair"""
    severity: Severity
    confidence_score: int
    description: str
    ai_validated: bool = False
    trace: ConsensusTrace = field(default_factory=ConsensusTrace)


@dataclass(frozen=True)
class InteractionResult:
    """Interaction verdict for a pair or triple of medications"""
    medications: Tuple[str, ...]
    severity: Severity
    description: str
    sources: Tuple[RawSourceSignal, ...] = ()
    confidence_score: int = 0
    ai_validated: bool = False
    event_stats: Optional[EventStats] = None
    checked_at: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "medications", tuple(self.medications))
        object.__setattr__(self, "sources", tuple(self.sources))

    @property
    def has_data(self) -> bool:
        return len(self.sources) > 0


@dataclass(frozen=True)
class CombinationResult(InteractionResult):
    """InteractionResult tagged with its combination type and a display label"""
    combination_type: CombinationType = CombinationType.PAIR
    label: str = ""

    @classmethod
    def from_result(cls, result: InteractionResult, combination_type: CombinationType) -> "CombinationResult":
        return cls(
            medications=result.medications,
            severity=result.severity,
            description=result.description,
            sources=result.sources,
            confidence_score=result.confidence_score,
            ai_validated=result.ai_validated,
            event_stats=result.event_stats,
            checked_at=result.checked_at,
            combination_type=combination_type,
            label=" + ".join(result.medications),
        )


def normalize_medication_name(name: str) -> str:
    """Canonical form of a medication name, used only for cache and lookup keys"""
    if not name:
        return ""
    normalized = name.lower().strip()
    normalized = re.sub(r'\s*\([^)]*\)', '', normalized)
    normalized = re.sub(r'[,.;:#!?\'"]', '', normalized)
    return ' '.join(normalized.split())


def canonical_key(
    *medications: str,
    normalize: Callable[[str], str] = normalize_medication_name,
    separator: str = "|"
) -> str:
    """Order-independent identity of a pair or triple: key(a, b) == key(b, a)"""
    return separator.join(sorted(normalize(med) for med in medications))


def no_data_result(medications: Iterable[str], description: Optional[str] = None) -> InteractionResult:
    """Standardized result for a combination with no usable data"""
    meds = tuple(medications)
    if description is None:
        description = f"No interaction data available for the combination of {_join_names(meds)}."
    return InteractionResult(
        medications=meds,
        severity=Severity.UNKNOWN,
        description=description,
        sources=(),
        confidence_score=0,
        ai_validated=False,
    )


def _join_names(names: Tuple[str, ...]) -> str:
    if len(names) <= 2:
        return " and ".join(names)
    return ", ".join(names[:-1]) + f", and {names[-1]}"


def provider_profile(provider_name: str) -> Dict[str, object]:
    """Reliability profile of a provider from the settings table"""
    return settings.PROVIDER_WEIGHTS.get(provider_name, settings.FALLBACK_PROVIDER_WEIGHT)


def is_no_data_provider(provider_name: Optional[str]) -> bool:
    if not provider_name or not provider_name.strip():
        return True
    return provider_name.strip().lower() == settings.NO_DATA_PROVIDER.lower()
