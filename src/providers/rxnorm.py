"""
RxNorm structured interaction provider (NLM RxNav)
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from src.core.models import RawSourceSignal, Severity, most_severe
from src.providers.base import ProviderAdapter, recover_signal_fields
from src.providers.text_severity import detect_severity_from_text

logger = logging.getLogger(__name__)

RXNORM_CONFIDENCE = 80


class InteractionPair(BaseModel):
    severity: Optional[str] = None
    description: Optional[str] = None


class FullInteractionType(BaseModel):
    comment: Optional[str] = None
    interactionPair: List[InteractionPair] = []


class FullInteractionTypeGroup(BaseModel):
    sourceName: Optional[str] = None
    fullInteractionType: List[FullInteractionType] = []


class InteractionListResponse(BaseModel):
    nlmDisclaimer: Optional[str] = None
    fullInteractionTypeGroup: List[FullInteractionTypeGroup] = []


def _pair_severity(pair: InteractionPair) -> Severity:
    severity = Severity.parse(pair.severity)
    if severity == Severity.UNKNOWN:
        severity = detect_severity_from_text(pair.description or "")
    return severity


def parse_rxnorm_interactions(payload: Any) -> Optional[RawSourceSignal]:
    """
    Fold an RxNav interaction-list document into one signal.

    The worst pair severity wins; descriptions are de-duplicated in order.
    A well-formed document with no interaction pairs yields None.
    """
    if not payload:
        return None
    try:
        parsed = InteractionListResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"RxNorm payload failed validation, attempting recovery: {e.error_count()} errors")
        recovered = recover_signal_fields(payload)
        if "description" not in recovered:
            return None
        return RawSourceSignal(
            provider_name=settings.RXNORM_PROVIDER,
            severity=recovered.get("severity", detect_severity_from_text(recovered["description"])),
            description=recovered["description"],
            confidence=recovered.get("confidence", RXNORM_CONFIDENCE),
        )

    pairs = [
        pair
        for group in parsed.fullInteractionTypeGroup
        for itype in group.fullInteractionType
        for pair in itype.interactionPair
        if pair.description
    ]
    if not pairs:
        return None

    descriptions = []
    for pair in pairs:
        if pair.description not in descriptions:
            descriptions.append(pair.description)

    return RawSourceSignal(
        provider_name=settings.RXNORM_PROVIDER,
        severity=most_severe(_pair_severity(p) for p in pairs),
        description=" ".join(descriptions),
        confidence=RXNORM_CONFIDENCE,
        is_reliable_hint=True,
    )


def parse_rxcui(payload: Any) -> Optional[str]:
    """First RxCUI from an rxcui.json name lookup"""
    if not isinstance(payload, dict):
        return None
    ids = (payload.get("idGroup") or {}).get("rxnormId") or []
    return ids[0] if ids else None


class RxNormProvider(ProviderAdapter):
    name = settings.RXNORM_PROVIDER

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        super().__init__(base_url or settings.RXNORM_API_URL, client, timeout)

    async def resolve_rxcui(self, name: str) -> Optional[str]:
        payload = await self._get_json("/rxcui.json", params={"name": name.strip(), "search": 2})
        return parse_rxcui(payload)

    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        rxcui1 = await self.resolve_rxcui(med1)
        rxcui2 = await self.resolve_rxcui(med2)
        if not rxcui1 or not rxcui2:
            logger.info(f"RxNorm could not resolve {med1 if not rxcui1 else med2}")
            return None

        payload = await self._get_json("/interaction/list.json", params={"rxcuis": f"{rxcui1} {rxcui2}"})
        return parse_rxnorm_interactions(payload)
