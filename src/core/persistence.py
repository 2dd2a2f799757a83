"""
Multi-Source Interaction Consensus Engine - Persisted Result Store
Out-of-process cache of pair results and the overwrite policy that guards it
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from config import settings
from src.core.models import (
    InteractionResult, RawSourceSignal, EventStats, Severity,
    canonical_key, normalize_medication_name, escalation_rank
)

logger = logging.getLogger(__name__)


# Serialized forms

class EventStatsRecord(BaseModel):
    total_events: int = Field(0, ge=0)
    serious_events: int = Field(0, ge=0)
    common_reactions: List[str] = []


class SourceRecord(BaseModel):
    provider_name: str
    severity: str = Severity.UNKNOWN.value
    description: str = ""
    confidence: Optional[int] = Field(None, ge=0, le=100)
    event_data: Optional[EventStatsRecord] = None
    is_reliable_hint: Optional[bool] = None
    has_direct_evidence: bool = False
    references: List[str] = []


class InteractionRecord(BaseModel):
    medications: List[str]
    severity: str
    description: str
    sources: List[SourceRecord] = []
    confidence_score: int = Field(0, ge=0, le=100)
    ai_validated: bool = False
    event_stats: Optional[EventStatsRecord] = None
    checked_at: datetime

    @classmethod
    def from_result(cls, result: InteractionResult) -> "InteractionRecord":
        return cls(
            medications=list(result.medications),
            severity=result.severity.value,
            description=result.description,
            sources=[_source_record(s) for s in result.sources],
            confidence_score=result.confidence_score,
            ai_validated=result.ai_validated,
            event_stats=_stats_record(result.event_stats),
            checked_at=result.checked_at,
        )

    def to_result(self) -> InteractionResult:
        return InteractionResult(
            medications=tuple(self.medications),
            severity=Severity.parse(self.severity),
            description=self.description,
            sources=tuple(
                RawSourceSignal(
                    provider_name=s.provider_name,
                    severity=Severity.parse(s.severity),
                    description=s.description,
                    confidence=s.confidence,
                    event_data=_stats_from_record(s.event_data),
                    is_reliable_hint=s.is_reliable_hint,
                    has_direct_evidence=s.has_direct_evidence,
                    references=tuple(s.references),
                )
                for s in self.sources
            ),
            confidence_score=self.confidence_score,
            ai_validated=self.ai_validated,
            event_stats=_stats_from_record(self.event_stats),
            checked_at=self.checked_at,
        )


def _stats_record(stats: Optional[EventStats]) -> Optional[EventStatsRecord]:
    if stats is None:
        return None
    return EventStatsRecord(
        total_events=stats.total_events,
        serious_events=stats.serious_events,
        common_reactions=list(stats.common_reactions),
    )


def _stats_from_record(record: Optional[EventStatsRecord]) -> Optional[EventStats]:
    if record is None:
        return None
    return EventStats(
        total_events=record.total_events,
        serious_events=min(record.serious_events, record.total_events),
        common_reactions=tuple(record.common_reactions),
    )


def _source_record(signal: RawSourceSignal) -> SourceRecord:
    return SourceRecord(
        provider_name=signal.provider_name,
        severity=signal.severity.value,
        description=signal.description,
        confidence=signal.confidence,
        event_data=_stats_record(signal.event_data),
        is_reliable_hint=signal.is_reliable_hint,
        has_direct_evidence=signal.has_direct_evidence,
        references=list(signal.references),
    )


def should_replace(
    existing: Optional[InteractionResult],
    candidate: InteractionResult,
    now: Optional[datetime] = None
) -> bool:
    """
    Overwrite policy for persisted results.

    A stored result is replaced only when the candidate has more sources,
    higher confidence, a worse severity on the escalation order, newly
    gained AI validation, or the stored one is older than the staleness
    window. A weak transient fetch never downgrades a strong consensus.
    """
    if existing is None:
        return True
    if now is None:
        now = datetime.now()

    if len(candidate.sources) > len(existing.sources):
        return True
    if candidate.confidence_score > existing.confidence_score:
        return True
    if escalation_rank(candidate.severity) > escalation_rank(existing.severity):
        return True
    if candidate.ai_validated and not existing.ai_validated:
        return True
    if now - existing.checked_at > timedelta(days=settings.PERSISTED_RESULT_STALE_DAYS):
        return True
    return False


class PersistedResultStore(ABC):
    """Async persisted-cache collaborator keyed by canonical pair key"""

    def __init__(self, normalize: Callable[[str], str] = normalize_medication_name):
        self.normalize = normalize

    def key_for(self, med1: str, med2: str) -> str:
        return canonical_key(med1, med2, normalize=self.normalize)

    @abstractmethod
    async def get(self, med1: str, med2: str) -> Optional[InteractionResult]:
        ...

    @abstractmethod
    async def save(self, med1: str, med2: str, result: InteractionResult) -> None:
        ...


class InMemoryResultStore(PersistedResultStore):

    def __init__(self, normalize: Callable[[str], str] = normalize_medication_name):
        super().__init__(normalize)
        self._records: Dict[str, InteractionResult] = {}

    async def get(self, med1: str, med2: str) -> Optional[InteractionResult]:
        return self._records.get(self.key_for(med1, med2))

    async def save(self, med1: str, med2: str, result: InteractionResult) -> None:
        self._records[self.key_for(med1, med2)] = result

    def __len__(self) -> int:
        return len(self._records)


class JsonFileResultStore(PersistedResultStore):
    """Persisted results in a single JSON document on disk"""

    def __init__(self, path: Optional[Path] = None,
                 normalize: Callable[[str], str] = normalize_medication_name):
        super().__init__(normalize)
        self.path = Path(path) if path is not None else settings.PERSISTED_RESULTS_PATH
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed result store at {self.path}")
            return {}
        return data

    def _dump(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)

    async def get(self, med1: str, med2: str) -> Optional[InteractionResult]:
        data = await asyncio.to_thread(self._load)
        raw = data.get(self.key_for(med1, med2))
        if raw is None:
            return None
        return InteractionRecord.model_validate(raw).to_result()

    async def save(self, med1: str, med2: str, result: InteractionResult) -> None:
        record = InteractionRecord.from_result(result).model_dump(mode="json")
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[self.key_for(med1, med2)] = record
            await asyncio.to_thread(self._dump, data)
        logger.debug(f"Persisted {self.key_for(med1, med2)} to {self.path}")
