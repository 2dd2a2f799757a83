"""
Multi-Source Interaction Consensus Engine - Interaction Service
Engine facade: owns the session cache, the provider set and the persisted store
"""
import logging
from typing import Callable, List, Optional, Sequence

import httpx

from config import settings
from src.core.models import (
    InteractionResult, CombinationResult, CombinationType, no_data_result, normalize_medication_name
)
from src.core.cache import SessionCache
from src.core.high_risk import get_high_risk_checker
from src.core.persistence import PersistedResultStore, JsonFileResultStore
from src.core.pair_processor import PairProcessor
from src.core.combination import CombinationAggregator
from src.providers.rxnorm import RxNormProvider
from src.providers.suppai import SuppAiProvider
from src.providers.fda_label import FdaLabelProvider
from src.providers.adverse_events import AdverseEventsProvider
from src.providers.literature import LiteratureProvider

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
                    format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)


def build_default_providers(client: Optional[httpx.AsyncClient] = None) -> list:
    """Live provider adapters in a fixed order"""
    providers = [
        RxNormProvider(client=client),
        SuppAiProvider(client=client),
        FdaLabelProvider(client=client),
        AdverseEventsProvider(client=client),
    ]
    if settings.ENABLE_LITERATURE_ANALYSIS:
        providers.append(LiteratureProvider(client=client))
    return providers


class InteractionEngine:
    """
    Public entry point for interaction checks.

    check_pair and check_all_combinations always return result objects;
    faults are logged and converted to ``unknown`` results.
    """

    def __init__(
        self,
        providers: Optional[Sequence] = None,
        store: Optional[PersistedResultStore] = None,
        normalize: Callable[[str], str] = normalize_medication_name,
        warnings_provider=None
    ):
        self.providers = list(providers) if providers is not None else build_default_providers()
        if store is None and providers is None and settings.ENABLE_PERSISTED_CACHE:
            store = JsonFileResultStore(normalize=normalize)
        self.store = store
        self.cache = SessionCache(normalize=normalize)

        if warnings_provider is None:
            warnings_provider = next(
                (p for p in self.providers if hasattr(p, "fetch_warnings")), None
            )

        self.pair_processor = PairProcessor(
            providers=self.providers,
            cache=self.cache,
            store=self.store,
            high_risk=get_high_risk_checker(),
        )
        self.aggregator = CombinationAggregator(
            pair_processor=self.pair_processor,
            warnings_provider=warnings_provider,
            cache=self.cache,
        )
        logger.info(
            f"Interaction engine initialized with providers "
            f"{[getattr(p, 'name', type(p).__name__) for p in self.providers]}"
        )

    async def check_pair(self, med1: str, med2: str) -> InteractionResult:
        return await self.pair_processor.check_pair(med1, med2)

    async def check_all_combinations(self, medications: Sequence[str]) -> List[CombinationResult]:
        try:
            return await self.aggregator.check_all_combinations(medications)
        except Exception as e:
            logger.exception(f"Combination check failed for {list(medications)}")
            fallback = no_data_result(
                tuple(m for m in medications if m),
                description=f"An error occurred while checking these medications: {e}.",
            )
            return [CombinationResult.from_result(fallback, _fallback_type(fallback))]

    def clear_cache(self) -> None:
        self.cache.clear()

    async def aclose(self) -> None:
        for provider in self.providers:
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()


def _fallback_type(result: InteractionResult) -> CombinationType:
    if len(result.medications) == 1:
        return CombinationType.SINGLE
    if len(result.medications) == 2:
        return CombinationType.PAIR
    return CombinationType.TRIPLE


# Singleton instance
_interaction_engine: Optional[InteractionEngine] = None

def get_interaction_engine() -> InteractionEngine:
    """Get or create interaction engine singleton"""
    global _interaction_engine
    if _interaction_engine is None:
        _interaction_engine = InteractionEngine()
    return _interaction_engine
