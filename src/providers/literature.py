"""
AI literature analysis provider
Free-text evidence summarised from retrieved abstracts
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from config import settings
from src.core.models import RawSourceSignal, Severity
from src.providers.base import ProviderAdapter, recover_signal_fields
from src.providers.text_severity import detect_severity_from_text

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50

# Phrases meaning the analysis service failed rather than found nothing
ERROR_MARKERS = [
    "error occurred", "unable to analyze", "could not be analyzed",
    "failed to", "rate limit", "api key"
]


class LiteratureAnalysis(BaseModel):
    severity: Optional[str] = None
    description: str = ""
    confidence: Optional[float] = Field(None, ge=0, le=100)
    pubMedIds: List[str] = []
    hasDirectEvidence: bool = False
    isReliable: Optional[bool] = None


def _looks_like_error(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in ERROR_MARKERS)


def parse_literature_analysis(payload: Any) -> Optional[RawSourceSignal]:
    if not payload:
        return None
    # Wrapped responses carry the analysis under "result"
    if isinstance(payload, dict) and isinstance(payload.get("result"), dict):
        payload = payload["result"]

    try:
        parsed = LiteratureAnalysis.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Literature payload failed validation, attempting recovery: {e.error_count()} errors")
        recovered = recover_signal_fields(payload)
        if "description" not in recovered or _looks_like_error(recovered["description"]):
            return None
        return RawSourceSignal(
            provider_name=settings.LITERATURE_PROVIDER,
            severity=recovered.get("severity", detect_severity_from_text(recovered["description"])),
            description=recovered["description"],
            confidence=min(100, recovered.get("confidence", DEFAULT_CONFIDENCE)),
        )

    description = parsed.description.strip()
    if not description or _looks_like_error(description):
        logger.info("Literature analysis returned no usable text")
        return None

    severity = Severity.parse(parsed.severity)
    if severity == Severity.UNKNOWN:
        severity = detect_severity_from_text(description)

    confidence = parsed.confidence if parsed.confidence is not None else DEFAULT_CONFIDENCE
    # Fractions are accepted as well as percentages
    if 0 < confidence <= 1:
        confidence *= 100

    return RawSourceSignal(
        provider_name=settings.LITERATURE_PROVIDER,
        severity=severity,
        description=description,
        confidence=int(round(confidence)),
        is_reliable_hint=parsed.isReliable,
        has_direct_evidence=parsed.hasDirectEvidence and bool(parsed.pubMedIds),
        references=tuple(parsed.pubMedIds),
    )


class LiteratureProvider(ProviderAdapter):
    name = settings.LITERATURE_PROVIDER

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(base_url or settings.LITERATURE_ANALYSIS_URL, client, timeout)

    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        payload = await self._post_json(self.base_url, {"drug1": med1.strip(), "drug2": med2.strip()})
        return parse_literature_analysis(payload)
