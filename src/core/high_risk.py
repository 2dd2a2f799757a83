"""
Multi-Source Interaction Consensus Engine - High-Risk Override Checker
Known dangerous class-level combinations that bypass every external provider
"""
import logging
from typing import List, Dict, Optional, Tuple

from config import settings
from src.core.models import InteractionResult, RawSourceSignal, Severity

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Term groups matched as substrings of the lowercased medication text
TERM_GROUPS: Dict[str, List[str]] = {
    "benzodiazepine": [
        "xanax", "alprazolam", "benzodiazepine", "valium", "diazepam", "ativan",
        "lorazepam", "klonopin", "clonazepam", "restoril", "temazepam",
        "midazolam", "chlordiazepoxide", "librium"
    ],
    "alcohol": [
        "alcohol", "ethanol", "wine", "beer", "liquor", "vodka", "whiskey",
        "whisky", "tequila", "bourbon"
    ],
    "opioid": [
        "opioid", "morphine", "codeine", "oxycodone", "oxycontin", "percocet",
        "hydrocodone", "vicodin", "hydromorphone", "fentanyl", "methadone",
        "tramadol", "tapentadol", "meperidine", "buprenorphine"
    ],
    "maoi": [
        "maoi", "phenelzine", "nardil", "tranylcypromine", "parnate",
        "isocarboxazid", "marplan", "selegiline", "rasagiline"
    ],
    "serotonergic": [
        "ssri", "fluoxetine", "prozac", "sertraline", "zoloft", "paroxetine",
        "paxil", "citalopram", "celexa", "escitalopram", "lexapro",
        "venlafaxine", "effexor", "duloxetine", "cymbalta", "tramadol",
        "meperidine", "linezolid"
    ],
    "pde5_inhibitor": [
        "sildenafil", "viagra", "revatio", "tadalafil", "cialis", "vardenafil",
        "levitra", "avanafil"
    ],
    "nitrate": [
        "nitroglycerin", "nitroglycerine", "glyceryl trinitrate", "isosorbide",
        "imdur", "nitrostat", "amyl nitrite"
    ],
    "methotrexate": ["methotrexate", "trexall", "otrexup"],
    "trimethoprim": ["trimethoprim", "bactrim", "septra", "co-trimoxazole", "cotrimoxazole"],
}


# Format: (class group, interacts-with group, fixed warning description)
HIGH_RISK_RULES: List[Tuple[str, str, str]] = [
    ("benzodiazepine", "alcohol",
     "DANGER: Combining benzodiazepines with alcohol can cause severe sedation, "
     "respiratory depression, coma, and death. Avoid alcohol completely while taking this medication."),
    ("opioid", "alcohol",
     "DANGER: Opioids combined with alcohol greatly increase the risk of fatal "
     "respiratory depression and overdose. Do not drink alcohol while taking opioids."),
    ("opioid", "benzodiazepine",
     "DANGER: Concomitant use of opioids and benzodiazepines may result in profound "
     "sedation, respiratory depression, coma, and death. Reserve for patients without alternatives."),
    ("maoi", "serotonergic",
     "DANGER: MAO inhibitors with serotonergic drugs can cause life-threatening "
     "serotonin syndrome. This combination is contraindicated; a washout period is required."),
    ("pde5_inhibitor", "nitrate",
     "DANGER: PDE5 inhibitors with nitrates can cause a sudden, severe drop in blood "
     "pressure leading to fainting, heart attack, or stroke. This combination is contraindicated."),
    ("methotrexate", "trimethoprim",
     "DANGER: Trimethoprim with methotrexate causes additive antifolate toxicity and "
     "reduced methotrexate clearance, risking fatal bone marrow suppression."),
]


class HighRiskChecker:
    """Curated lookup of combinations that must never be diluted by provider disagreement"""

    def __init__(self, rules: Optional[List[Tuple[str, str, str]]] = None,
                 term_groups: Optional[Dict[str, List[str]]] = None):
        self.rules = rules if rules is not None else HIGH_RISK_RULES
        self.term_groups = term_groups if term_groups is not None else TERM_GROUPS
        logger.info(f"High-risk checker initialized with {len(self.rules)} rules")

    def _matches(self, text: str, group: str) -> bool:
        return any(term in text for term in self.term_groups.get(group, []))

    def find_rule(self, med1: str, med2: str) -> Optional[Tuple[str, str, str]]:
        """First rule matching the pair in either order"""
        text1 = (med1 or "").lower()
        text2 = (med2 or "").lower()
        if not text1 or not text2:
            return None

        for rule in self.rules:
            class_group, interacts_group, _ = rule
            if self._matches(text1, class_group) and self._matches(text2, interacts_group):
                return rule
            if self._matches(text2, class_group) and self._matches(text1, interacts_group):
                return rule
        return None

    def check(self, med1: str, med2: str) -> Optional[InteractionResult]:
        """Fixed severe verdict for a known dangerous pair, None otherwise"""
        rule = self.find_rule(med1, med2)
        if rule is None:
            return None

        class_group, interacts_group, description = rule
        logger.info(f"High-risk override: {med1} + {med2} ({class_group} + {interacts_group})")

        source = RawSourceSignal(
            provider_name=settings.HIGH_RISK_PROVIDER,
            severity=Severity.SEVERE,
            description=description,
            confidence=settings.HIGH_RISK_CONFIDENCE,
            is_reliable_hint=True,
        )
        return InteractionResult(
            medications=(med1, med2),
            severity=Severity.SEVERE,
            description=description,
            sources=(source,),
            confidence_score=settings.HIGH_RISK_CONFIDENCE,
            ai_validated=False,
        )


# Singleton instance
_high_risk_checker: Optional[HighRiskChecker] = None

def get_high_risk_checker() -> HighRiskChecker:
    """Get or create high-risk checker singleton"""
    global _high_risk_checker
    if _high_risk_checker is None:
        _high_risk_checker = HighRiskChecker()
    return _high_risk_checker
