"""
FDA drug label provider (openFDA drug/label endpoint)
Label warnings feed both pair signals and single-medication results
"""
import asyncio
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from src.core.models import RawSourceSignal, Severity
from src.providers.base import ProviderAdapter
from src.providers.text_severity import mentions

logger = logging.getLogger(__name__)

SEVERE_KEYWORDS = ['fatal', 'death', 'life-threatening', 'contraindicated']
MODERATE_KEYWORDS = ['severe', 'serious', 'avoid', 'do not', 'warning']

LABEL_WARNING_FIELDS = ("boxed_warning", "drug_interactions", "warnings_and_cautions", "warnings")


class LabelResult(BaseModel):
    boxed_warning: List[str] = []
    drug_interactions: List[str] = []
    warnings_and_cautions: List[str] = []
    warnings: List[str] = []


class LabelResponse(BaseModel):
    results: List[LabelResult] = []


def parse_label_warnings(payload: Any) -> List[str]:
    """Warning paragraphs of the first label, boxed warnings first"""
    if not payload:
        return []
    try:
        parsed = LabelResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"FDA label payload failed validation: {e.error_count()} errors")
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return []
        first = results[0]
        return [
            text.strip()
            for name in LABEL_WARNING_FIELDS
            for text in (first.get(name) or [])
            if isinstance(text, str) and text.strip()
        ]

    if not parsed.results:
        return []
    label = parsed.results[0]
    warnings = []
    for name in LABEL_WARNING_FIELDS:
        for text in getattr(label, name):
            text = text.strip()
            if text and text not in warnings:
                warnings.append(text)
    return warnings


def label_severity(warnings: List[str]) -> Severity:
    lowered = [w.lower() for w in warnings]
    if any(k in w for w in lowered for k in SEVERE_KEYWORDS):
        return Severity.SEVERE
    if any(k in w for w in lowered for k in MODERATE_KEYWORDS):
        return Severity.MODERATE
    return Severity.MINOR


def build_label_signal(
    med1: str, med1_warnings: List[str],
    med2: str, med2_warnings: List[str]
) -> Optional[RawSourceSignal]:
    """Signal from label paragraphs that mention the other medication"""
    relevant = [w for w in med1_warnings if mentions(w, med2)]
    relevant += [w for w in med2_warnings if mentions(w, med1) and w not in relevant]
    if not relevant:
        return None
    return RawSourceSignal(
        provider_name=settings.FDA_LABEL_PROVIDER,
        severity=label_severity(relevant),
        description=relevant[0],
        is_reliable_hint=True,
    )


class FdaLabelProvider(ProviderAdapter):
    name = settings.FDA_LABEL_PROVIDER

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, api_key: Optional[str] = None):
        super().__init__(base_url or settings.OPENFDA_API_URL, client, timeout)
        self.api_key = api_key if api_key is not None else settings.OPENFDA_API_KEY

    def _search_params(self, medication: str) -> dict:
        name = medication.strip().replace('"', '')
        params = {
            "search": f'openfda.generic_name:"{name}" OR openfda.brand_name:"{name}"',
            "limit": 1,
        }
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def _warnings(self, medication: str) -> List[str]:
        payload = await self._get_json("/drug/label.json", params=self._search_params(medication))
        return parse_label_warnings(payload)

    async def fetch_warnings(self, medication: str) -> List[str]:
        """Label warnings for one medication; empty on any provider trouble"""
        try:
            return await asyncio.wait_for(self._warnings(medication), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"FDA label lookup timed out for {medication}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"FDA label lookup failed for {medication}: {e}")
        return []

    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        med1_warnings, med2_warnings = await asyncio.gather(self._warnings(med1), self._warnings(med2))
        return build_label_signal(med1, med1_warnings, med2, med2_warnings)
