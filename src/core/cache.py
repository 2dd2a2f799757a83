"""
Multi-Source Interaction Consensus Engine - Session Cache
In-process map from canonical pair/triple key to the last computed result
"""
import logging
from typing import Callable, Dict, Optional

from src.core.models import InteractionResult, canonical_key, normalize_medication_name

logger = logging.getLogger(__name__)


class SessionCache:
    """
    Process- or batch-lifetime result cache.

    Writes are plain upserts (last writer wins). Identical inputs produce
    equal results, so concurrent writers for one key need no locking.
    """

    def __init__(self, normalize: Callable[[str], str] = normalize_medication_name):
        self.normalize = normalize
        self._entries: Dict[str, InteractionResult] = {}

    def key_for(self, *medications: str) -> str:
        return canonical_key(*medications, normalize=self.normalize)

    def get(self, *medications: str) -> Optional[InteractionResult]:
        return self._entries.get(self.key_for(*medications))

    def put(self, result: InteractionResult) -> None:
        key = self.key_for(*result.medications)
        self._entries[key] = result
        logger.debug(f"Cached {key} ({result.severity.value})")

    def clear(self) -> None:
        logger.info(f"Clearing session cache ({len(self._entries)} entries)")
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
