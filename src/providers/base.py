"""
Multi-Source Interaction Consensus Engine - Provider Adapter Base
Typed boundary between raw provider payloads and RawSourceSignal
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional, Tuple

import httpx
from pydantic import ValidationError

from config import settings
from src.core.models import RawSourceSignal, Severity

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


SEVERITY_FIELD_NAMES = ("severity", "risk", "risk_level", "level", "intensity")
DESCRIPTION_FIELD_NAMES = ("description", "summary", "text", "label", "message", "sentence")
CONFIDENCE_FIELD_NAMES = ("confidence", "confidence_score", "confidenceScore", "score")


def _walk(payload: Any, depth: int = 0) -> Iterator[Tuple[str, Any]]:
    """Depth-first (key, value) pairs of a nested JSON document"""
    if depth > 8:
        return
    if isinstance(payload, dict):
        for key, value in payload.items():
            yield key, value
            yield from _walk(value, depth + 1)
    elif isinstance(payload, list):
        for item in payload:
            yield from _walk(item, depth + 1)


def recover_signal_fields(payload: Any) -> Dict[str, Any]:
    """
    Best-effort structural recovery for a payload that failed strict parsing.

    Returns whatever severity, description and confidence values can be
    found anywhere in the document; missing fields are left out.
    """
    recovered: Dict[str, Any] = {}
    for key, value in _walk(payload):
        if "severity" not in recovered and key in SEVERITY_FIELD_NAMES and isinstance(value, str):
            severity = Severity.parse(value)
            if severity != Severity.UNKNOWN:
                recovered["severity"] = severity
        elif "description" not in recovered and key in DESCRIPTION_FIELD_NAMES \
                and isinstance(value, str) and len(value.strip()) > settings.MIN_DESCRIPTION_LENGTH:
            recovered["description"] = value.strip()
        elif "confidence" not in recovered and key in CONFIDENCE_FIELD_NAMES \
                and isinstance(value, (int, float)) and not isinstance(value, bool):
            # Some providers report 0-1, others 0-100
            recovered["confidence"] = int(round(value * 100 if value <= 1 else value))
    return recovered


class ProviderAdapter(ABC):
    """
    One external source of interaction evidence.

    fetch() never raises for provider trouble: network errors, timeouts,
    HTTP errors and malformed payloads all resolve to None.
    """

    name: str = ""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUTS.get(
            self.name, settings.DEFAULT_PROVIDER_TIMEOUT
        )
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=self.timeout)

    async def fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        try:
            return await asyncio.wait_for(self._fetch(med1, med2), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} timed out after {self.timeout}s for {med1} + {med2}")
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} request failed for {med1} + {med2}: {e}")
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"{self.name} returned an unusable payload for {med1} + {med2}: {e}")
        return None

    @abstractmethod
    async def _fetch(self, med1: str, med2: str) -> Optional[RawSourceSignal]:
        ...

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET a JSON document; 404 means no data"""
        resp = await self.http_client.get(f"{self.base_url}{path}", params=params)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def _post_json(self, url: str, body: Dict[str, Any]) -> Optional[Any]:
        resp = await self.http_client.post(url, content=json.dumps(body),
                                           headers={"Content-Type": "application/json"})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} timeout={self.timeout}>"
