"""
Return Categorization - Pure Business Rules.

Keyword classification, category normalization and the heuristic analysis
used whenever the external classifier is unavailable or returns nothing
usable.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.domain import DomainService

from .policies import (
    CATEGORIES,
    CategoryLabel,
    SentimentLabel,
    SeverityLevel,
    HEURISTIC_ANALYSIS_CONFIDENCE,
)


# =============================================================================
# KEYWORD TABLES
# =============================================================================

# Ordered: on equal match counts the earlier category wins
CATEGORY_KEYWORDS: List[Tuple[str, List[str]]] = [
    (CategoryLabel.SIZING.value, ["size", "fit", "tight", "loose", "narrow", "wide", "small", "big"]),
    (CategoryLabel.QUALITY.value, ["broken", "defect", "tear", "ripped", "peel", "damaged", "poor quality"]),
    (CategoryLabel.NOT_AS_DESCRIBED.value, ["not as described", "different", "color", "photo", "material", "expectation"]),
    (CategoryLabel.SHIPPING_DAMAGE.value, ["shipping", "box", "arrived damaged", "delivery damage"]),
    (CategoryLabel.CHANGED_MIND.value, ["changed my mind", "no longer needed", "do not want", "impulse"]),
]

# Ordered substring rules for free-form labels
CATEGORY_LABEL_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("size", "fit"), CategoryLabel.SIZING.value),
    (("quality", "defect", "damage"), CategoryLabel.QUALITY.value),
    (("describe", "photo", "expect"), CategoryLabel.NOT_AS_DESCRIBED.value),
    (("ship",), CategoryLabel.SHIPPING_DAMAGE.value),
    (("mind",), CategoryLabel.CHANGED_MIND.value),
]

HIGH_SEVERITY_PATTERN = re.compile(r"unsafe|injury|dangerous|completely broken|fell apart", re.IGNORECASE)
MEDIUM_SEVERITY_PATTERN = re.compile(r"broken|defect|peel|damaged|bad", re.IGNORECASE)
NEUTRAL_SENTIMENT_PATTERN = re.compile(r"love|great|good", re.IGNORECASE)


# =============================================================================
# CLASSIFICATION
# =============================================================================

def detect_category_by_keyword(text: Optional[str]) -> str:
    """
    Pick the category whose keywords occur most often in the text.

    Each keyword counts once if it appears anywhere (case-insensitive).
    Returns "other" when nothing matches.
    """
    lower = (text or "").lower()
    best_category = CategoryLabel.OTHER.value
    best_matches = 0

    for category, keywords in CATEGORY_KEYWORDS:
        matches = sum(1 for keyword in keywords if keyword in lower)
        if matches > best_matches:
            best_category = category
            best_matches = matches

    return best_category


def normalize_category(label: Any) -> str:
    """
    Map a free-form category label onto the canonical set.

    Canonical labels are returned unchanged ("shipping_damage" would
    otherwise match the quality rule through "damage"). Unrecognised
    non-empty labels come back lower-cased and trimmed; empty ones become
    "other".
    """
    normalized = str(label if label is not None else "").lower().strip()

    if normalized in CATEGORIES:
        return normalized

    for substrings, category in CATEGORY_LABEL_RULES:
        if any(s in normalized for s in substrings):
            return category

    return normalized or CategoryLabel.OTHER.value


def category_display_name(category: str) -> str:
    """Human-readable category name ("not_as_described" -> "not as described")."""
    return category.replace("_", " ")


# =============================================================================
# HEURISTIC ANALYSIS
# =============================================================================

@dataclass
class ReturnAnalysis:
    """Categorization of a single return."""
    category: str
    sentiment: str
    severity: str
    confidence: float
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "sentiment": self.sentiment,
            "severity": self.severity,
            "confidence": self.confidence,
            "summary": self.summary,
        }


def detect_severity(text: str) -> str:
    if HIGH_SEVERITY_PATTERN.search(text):
        return SeverityLevel.HIGH.value
    if MEDIUM_SEVERITY_PATTERN.search(text):
        return SeverityLevel.MEDIUM.value
    return SeverityLevel.LOW.value


def detect_sentiment(text: str) -> str:
    if NEUTRAL_SENTIMENT_PATTERN.search(text):
        return SentimentLabel.NEUTRAL.value
    return SentimentLabel.NEGATIVE.value


class HeuristicAnalyzer(DomainService):
    """
    Best-effort analysis of one return reason without a language model.

    An explicit category hint wins over the reason text.
    """

    def execute(
        self,
        reason_text: Optional[str],
        category_hint: Optional[str] = None,
        product: Optional[Dict[str, Any]] = None,
    ) -> ReturnAnalysis:
        text = reason_text or ""
        if category_hint:
            category = normalize_category(category_hint)
        else:
            category = detect_category_by_keyword(text)

        return ReturnAnalysis(
            category=category,
            sentiment=detect_sentiment(text),
            severity=detect_severity(text),
            confidence=HEURISTIC_ANALYSIS_CONFIDENCE,
            summary=f"Likely {category_display_name(category)} return based on customer narrative.",
        )


def heuristic_return_analysis(
    reason_text: Optional[str],
    category_hint: Optional[str] = None,
    product: Optional[Dict[str, Any]] = None,
) -> ReturnAnalysis:
    """Convenience wrapper around HeuristicAnalyzer."""
    return HeuristicAnalyzer().execute(reason_text, category_hint, product)
