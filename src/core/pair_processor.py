"""
Multi-Source Interaction Consensus Engine - Pair Processor
High-risk check -> cache -> parallel provider fetch -> consensus -> persist
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from config import settings
from src.core.models import (
    InteractionResult, RawSourceSignal, Severity, EventStats,
    no_data_result, is_no_data_provider
)
from src.core.cache import SessionCache
from src.core.high_risk import HighRiskChecker, get_high_risk_checker
from src.core.persistence import PersistedResultStore, should_replace
from src.consensus.calculator import ConsensusCalculator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class PairProcessor:
    """
    Resolves one medication pair into an InteractionResult.

    Providers are any objects with a ``name``, a ``timeout`` in seconds and
    an ``async fetch(med1, med2) -> RawSourceSignal | None`` method.
    check_pair never raises: missing data is an ``unknown`` result and
    internal faults become a fallback result carrying the error text.
    """

    def __init__(
        self,
        providers: Sequence,
        cache: Optional[SessionCache] = None,
        store: Optional[PersistedResultStore] = None,
        high_risk: Optional[HighRiskChecker] = None,
        calculator: Optional[ConsensusCalculator] = None,
        store_timeout: float = settings.PERSISTED_STORE_TIMEOUT_SECONDS
    ):
        self.providers = list(providers)
        self.cache = cache if cache is not None else SessionCache()
        self.store = store
        self.high_risk = high_risk or get_high_risk_checker()
        self.calculator = calculator or ConsensusCalculator()
        self.store_timeout = store_timeout

    async def check_pair(self, med1: str, med2: str) -> InteractionResult:
        try:
            return await self._process(med1, med2)
        except Exception as e:
            logger.exception(f"Pair check failed for {med1} + {med2}")
            return no_data_result(
                (med1, med2),
                description=f"An error occurred while checking {med1} and {med2}: {e}. "
                            f"Consult a healthcare professional.",
            )

    async def _process(self, med1: str, med2: str) -> InteractionResult:
        high_risk = self.high_risk.check(med1, med2)
        if high_risk is not None:
            return high_risk

        cached = self.cache.get(med1, med2)
        if cached is not None and cached.has_data:
            logger.debug(f"Session cache hit for {med1} + {med2}")
            return cached

        signals = await self.collect_signals(med1, med2)
        usable = [s for s in signals if s is not None and not is_no_data_provider(s.provider_name)]

        if not usable:
            logger.info(f"No provider data for {med1} + {med2}")
            return await self._fallback(med1, med2)

        event_stats = self._pair_event_stats(usable)
        consensus = self.calculator.calculate(usable, event_stats)
        if not consensus.trace.contributing:
            logger.info(f"No provider signal for {med1} + {med2} carried evidence")
            return await self._fallback(med1, med2)

        result = InteractionResult(
            medications=(med1, med2),
            severity=consensus.severity,
            description=consensus.description,
            sources=tuple(consensus.trace.signals),
            confidence_score=consensus.confidence_score,
            ai_validated=consensus.ai_validated,
            event_stats=event_stats,
        )

        await self._persist(med1, med2, result)
        self.cache.put(result)
        return result

    async def _fallback(self, med1: str, med2: str) -> InteractionResult:
        """Persisted result when one exists, otherwise the standard no-data result"""
        persisted = await self._load_persisted(med1, med2)
        if persisted is not None:
            logger.info(f"Using persisted result for {med1} + {med2}")
            self.cache.put(persisted)
            return persisted
        return no_data_result((med1, med2))

    async def collect_signals(self, med1: str, med2: str) -> List[Optional[RawSourceSignal]]:
        """All providers concurrently; each failure or timeout becomes None"""
        return list(await asyncio.gather(*(self._fetch_one(p, med1, med2) for p in self.providers)))

    async def _fetch_one(self, provider, med1: str, med2: str) -> Optional[RawSourceSignal]:
        name = getattr(provider, "name", provider.__class__.__name__)
        timeout = getattr(provider, "timeout", None) or settings.PROVIDER_TIMEOUTS.get(
            name, settings.DEFAULT_PROVIDER_TIMEOUT
        )
        try:
            return await asyncio.wait_for(provider.fetch(med1, med2), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{name} timed out after {timeout}s for {med1} + {med2}")
        except Exception as e:
            logger.warning(f"{name} failed for {med1} + {med2}: {e}")
        return None

    @staticmethod
    def _pair_event_stats(signals: List[RawSourceSignal]) -> Optional[EventStats]:
        for signal in signals:
            if signal.provider_name == settings.ADVERSE_EVENTS_PROVIDER and signal.has_events:
                return signal.event_data
        return None

    async def _load_persisted(self, med1: str, med2: str) -> Optional[InteractionResult]:
        if self.store is None:
            return None
        try:
            result = await asyncio.wait_for(self.store.get(med1, med2), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Persisted store timed out reading {med1} + {med2}")
            return None
        except Exception as e:
            logger.warning(f"Persisted store read failed for {med1} + {med2}: {e}")
            return None
        if result is None or result.severity == Severity.UNKNOWN and not result.has_data:
            return None
        return result

    async def _persist(self, med1: str, med2: str, result: InteractionResult) -> None:
        if self.store is None:
            return
        try:
            existing = await asyncio.wait_for(self.store.get(med1, med2), timeout=self.store_timeout)
            if should_replace(existing, result):
                await asyncio.wait_for(self.store.save(med1, med2, result), timeout=self.store_timeout)
                logger.debug(f"Persisted result for {med1} + {med2}")
            else:
                logger.debug(f"Kept stronger persisted result for {med1} + {med2}")
        except asyncio.TimeoutError:
            logger.warning(f"Persisted store timed out writing {med1} + {med2}")
        except Exception as e:
            logger.warning(f"Persisted store write failed for {med1} + {med2}: {e}")
