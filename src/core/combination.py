"""
Multi-Source Interaction Consensus Engine - Combination Aggregator
Singles, pairs and triples for a list of medications
"""
import asyncio
import logging
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from config import settings
from src.core.models import (
    InteractionResult, CombinationResult, CombinationType, RawSourceSignal,
    Severity, most_severe, no_data_result, normalize_medication_name
)
from src.core.cache import SessionCache
from src.core.pair_processor import PairProcessor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


TRIPLE_SUMMARIES = {
    Severity.SEVERE: "Taking {names} together poses serious risks. {count} of the evaluated "
                     "medication pairs have severe interaction warnings.",
    Severity.MODERATE: "Caution is advised when taking {names} together. {count} of the evaluated "
                       "medication pairs have moderate interaction warnings that may require "
                       "dose adjustments or monitoring.",
    Severity.MINOR: "Minimal interaction concerns when taking {names} together. {count} of the "
                    "evaluated medication pairs have minor interaction warnings.",
    Severity.SAFE: "No significant interactions detected between {names}. The evaluated "
                   "medication pairs appear safe to take together based on available data.",
    Severity.UNKNOWN: "Limited data is available about how {names} interact when taken together. "
                      "Review the individual pair results and consult a healthcare professional.",
}


def unique_medications(medications: Sequence[str]) -> List[str]:
    """Drop blanks and repeats (by canonical name), keeping first spelling and order"""
    seen = set()
    unique = []
    for med in medications:
        if med is None:
            continue
        canonical = normalize_medication_name(med)
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        unique.append(med.strip())
    return unique


def medication_triples(medications: Sequence[str], limit: int = settings.MAX_TRIPLE_COMBINATIONS
                       ) -> List[Tuple[str, str, str]]:
    return list(combinations(medications, 3))[:limit]


def _join_names(names: Sequence[str]) -> str:
    return ", ".join(names[:-1]) + f", and {names[-1]}"


def merge_sources(results: Sequence[InteractionResult]) -> Tuple[RawSourceSignal, ...]:
    """Union of sources, de-duplicated by (provider name, severity)"""
    seen = set()
    merged = []
    for result in results:
        for source in result.sources:
            key = (source.provider_name, source.severity)
            if key in seen:
                continue
            seen.add(key)
            merged.append(source)
    return tuple(merged)


def describe_triple(medications: Sequence[str], severity: Severity,
                    valid_pairs: Sequence[InteractionResult]) -> str:
    count = sum(1 for r in valid_pairs if r.severity == severity)
    text = TRIPLE_SUMMARIES[severity].format(names=_join_names(medications), count=count)
    if len(valid_pairs) < 3:
        text += f" Only {len(valid_pairs)} out of 3 possible pairs could be evaluated."
    return text


def aggregate_triple(medications: Tuple[str, str, str],
                     pair_results: Sequence[InteractionResult]) -> InteractionResult:
    """Fold three pair results into one triple result"""
    valid = [r for r in pair_results if r.severity is not None and r.has_data]
    if not valid:
        return no_data_result(
            medications,
            description=f"No interaction data available for the combination of "
                        f"{_join_names(medications)}. None of the 3 possible pairs could be evaluated.",
        )

    severity = most_severe(r.severity for r in valid)
    confidence = int(round(float(np.mean([r.confidence_score for r in valid]))))
    return InteractionResult(
        medications=medications,
        severity=severity,
        description=describe_triple(medications, severity, valid),
        sources=merge_sources(valid),
        confidence_score=max(0, min(100, confidence)),
        ai_validated=any(r.ai_validated for r in valid),
    )


class CombinationAggregator:
    """Runs the pair processor over every pair and (capped) triple of a medication list"""

    def __init__(self, pair_processor: PairProcessor, warnings_provider=None,
                 cache: Optional[SessionCache] = None,
                 max_triples: int = settings.MAX_TRIPLE_COMBINATIONS):
        self.pair_processor = pair_processor
        self.warnings_provider = warnings_provider
        self.cache = cache if cache is not None else pair_processor.cache
        self.max_triples = max_triples

    async def check_triple(self, med1: str, med2: str, med3: str) -> InteractionResult:
        medications = (med1, med2, med3)
        try:
            cached = self.cache.get(*medications)
            if cached is not None and cached.has_data:
                return cached

            pair_results = await asyncio.gather(
                self.pair_processor.check_pair(med1, med2),
                self.pair_processor.check_pair(med1, med3),
                self.pair_processor.check_pair(med2, med3),
            )
            result = aggregate_triple(medications, pair_results)
            logger.info(
                f"Triple {' + '.join(medications)}: {result.severity.value} "
                f"({result.confidence_score}%) from {sum(1 for r in pair_results if r.has_data)}/3 pairs"
            )
            if result.has_data:
                self.cache.put(result)
            return result
        except Exception as e:
            logger.exception(f"Triple check failed for {' + '.join(medications)}")
            return no_data_result(
                medications,
                description=f"An error occurred while checking {_join_names(medications)}: {e}.",
            )

    async def check_single(self, medication: str) -> InteractionResult:
        warnings: List[str] = []
        if self.warnings_provider is not None:
            try:
                warnings = await self.warnings_provider.fetch_warnings(medication)
            except Exception as e:
                logger.warning(f"Warning lookup failed for {medication}: {e}")

        warnings = warnings[:settings.MAX_SINGLE_WARNINGS]
        if not warnings:
            return no_data_result(
                (medication,),
                description=f"No label warnings available for {medication}.",
            )

        sources = tuple(
            RawSourceSignal(
                provider_name=settings.FDA_LABEL_PROVIDER,
                severity=Severity.MINOR,
                description=warning,
            )
            for warning in warnings
        )
        return InteractionResult(
            medications=(medication,),
            severity=Severity.MINOR,
            description=warnings[0],
            sources=sources,
            confidence_score=0,
            ai_validated=False,
        )

    async def check_all_combinations(self, medications: Sequence[str]) -> List[CombinationResult]:
        meds = unique_medications(medications)
        if not meds:
            return []

        pairs = list(combinations(meds, 2))
        triples = medication_triples(meds, self.max_triples) if len(meds) >= 3 else []
        logger.info(f"Checking {len(meds)} singles, {len(pairs)} pairs, {len(triples)} triples")

        singles, pair_results, triple_results = await asyncio.gather(
            asyncio.gather(*(self.check_single(m) for m in meds)),
            asyncio.gather(*(self.pair_processor.check_pair(a, b) for a, b in pairs)),
            asyncio.gather(*(self.check_triple(a, b, c) for a, b, c in triples)),
        )

        results: List[CombinationResult] = []
        results.extend(CombinationResult.from_result(r, CombinationType.SINGLE) for r in singles)
        results.extend(CombinationResult.from_result(r, CombinationType.PAIR) for r in pair_results)
        results.extend(CombinationResult.from_result(r, CombinationType.TRIPLE) for r in triple_results)
        return results


def summarize(results: Sequence[CombinationResult]) -> Dict[str, object]:
    """Counts by type and severity plus the worst multi-medication result"""
    by_severity = {s.value: 0 for s in Severity}
    by_type = {t.value: 0 for t in CombinationType}
    for r in results:
        by_type[r.combination_type.value] += 1
        if r.combination_type != CombinationType.SINGLE:
            by_severity[r.severity.value] += 1

    multi = [r for r in results if r.combination_type != CombinationType.SINGLE]
    worst = most_severe(r.severity for r in multi)
    return {
        "total": len(results),
        "by_type": by_type,
        "by_severity": by_severity,
        "worst_severity": worst.value,
        "requires_action": worst == Severity.SEVERE,
    }
