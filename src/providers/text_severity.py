"""
Keyword severity detection for free-text label and literature content
"""
import re
from typing import List, Tuple

from src.core.models import Severity


# Checked top to bottom; the first matching group wins
SEVERITY_KEYWORDS: List[Tuple[Severity, List[str]]] = [
    (Severity.SEVERE, [
        "contraindicated", "life-threatening", "life threatening", "fatal",
        "death", "severe", "serious", "danger", "boxed warning",
        "do not use", "should not be used", "avoid concomitant"
    ]),
    (Severity.MODERATE, [
        "moderate", "significant", "monitor", "caution", "dose adjustment",
        "adjust the dose", "increase the risk", "increased risk", "may increase",
        "may decrease"
    ]),
    (Severity.MINOR, [
        "minor", "mild", "unlikely", "minimal", "small increase"
    ]),
    (Severity.SAFE, [
        "no interaction", "no clinically significant", "no significant interaction",
        "not expected to interact", "safe to use together"
    ]),
]

_NEGATED_SAFE = re.compile(r"\bno (known |clinically )?(significant )?interactions?\b")


def detect_severity_from_text(text: str) -> Severity:
    """Best-guess severity for a block of prose, UNKNOWN when nothing matches"""
    if not text:
        return Severity.UNKNOWN
    lowered = " ".join(text.lower().split())

    # Explicit "no interaction" statements outrank incidental alarming words
    if _NEGATED_SAFE.search(lowered) and "contraindicated" not in lowered:
        return Severity.SAFE

    for severity, keywords in SEVERITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return severity
    return Severity.UNKNOWN


def mentions(text: str, term: str) -> bool:
    """Whole-word, case-insensitive mention of a medication name in text"""
    if not text or not term:
        return False
    return re.search(r"\b" + re.escape(term.lower().strip()) + r"\b", text.lower()) is not None
