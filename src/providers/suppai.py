"""
SUPP.AI supplement interaction provider
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from src.core.models import RawSourceSignal, Severity
from src.providers.base import ProviderAdapter, recover_signal_fields

logger = logging.getLogger(__name__)

SEVERE_KEYWORDS = ['fatal', 'death', 'life-threatening', 'contraindicated', 'do not combine']
MODERATE_KEYWORDS = ['severe', 'serious', 'warning', 'avoid', 'caution']
BASE_CONFIDENCE = 50


class SuppAiInteraction(BaseModel):
    drug1: str
    drug2: str
    evidence_count: int = 0
    label: str = ""


class SuppAiResponse(BaseModel):
    interactions: List[SuppAiInteraction] = []


def suppai_confidence(evidence_count: int) -> int:
    if evidence_count > 10:
        return 70
    if evidence_count > 5:
        return 65
    if evidence_count > 3:
        return 60
    return BASE_CONFIDENCE


def suppai_severity(label: str, evidence_count: int) -> Severity:
    lowered = label.lower()
    if any(keyword in lowered for keyword in SEVERE_KEYWORDS):
        return Severity.SEVERE
    if any(keyword in lowered for keyword in MODERATE_KEYWORDS) or evidence_count > 8:
        return Severity.MODERATE
    return Severity.MINOR


def parse_suppai_interactions(payload: Any, other_medication: str) -> Optional[RawSourceSignal]:
    """Signal for the interaction that names the other medication, None when absent"""
    if not payload:
        return None
    # The proxied form nests the list under "data"
    if isinstance(payload, dict) and "interactions" not in payload and isinstance(payload.get("data"), dict):
        payload = payload["data"]

    try:
        parsed = SuppAiResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"SUPP.AI payload failed validation, attempting recovery: {e.error_count()} errors")
        recovered = recover_signal_fields(payload)
        if "description" not in recovered:
            return None
        return RawSourceSignal(
            provider_name=settings.SUPPAI_PROVIDER,
            severity=recovered.get("severity", suppai_severity(recovered["description"], 0)),
            description=recovered["description"],
            confidence=recovered.get("confidence", BASE_CONFIDENCE),
        )

    target = other_medication.strip().lower()
    match = next(
        (i for i in parsed.interactions
         if i.drug1.strip().lower() == target or i.drug2.strip().lower() == target),
        None
    )
    if match is None:
        return None

    description = match.label.strip() or (
        f"SUPP.AI reports a potential interaction between {match.drug1} and {match.drug2} "
        f"based on {match.evidence_count} literature findings."
    )
    return RawSourceSignal(
        provider_name=settings.SUPPAI_PROVIDER,
        severity=suppai_severity(match.label, match.evidence_count),
        description=description,
        confidence=suppai_confidence(match.evidence_count),
    )


class SuppAiProvider(ProviderAdapter):
    name = settings.SUPPAI_PROVIDER

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(base_url or settings.SUPPAI_API_URL, client, timeout)

    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        payload = await self._get_json("", params={"q": med1.strip()})
        return parse_suppai_interactions(payload, med2)
