"""
Model Response Reconciliation - Pure Business Logic.

Merges an externally produced candidate (parsed model JSON, possibly
missing, partial or wrong) with the locally computed fallback. Every field
is validated on its own and replaced by the fallback's value when absent,
of the wrong type, outside its valid set or not a finite number.

These functions never raise.
"""

from collections.abc import Mapping
from typing import Any, List, Optional

from core.domain import coerce_number, round_half_up

from .categorization import ReturnAnalysis, normalize_category
from .patterns import PatternInsight, PatternSummary
from .policies import CATEGORIES, PRIORITY_TIERS, SENTIMENTS, SEVERITIES
from .recommendations import RecommendationItem, RecommendationPack


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _text(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return fallback


def _choice(value: Any, valid: List[str], fallback: str) -> str:
    return value if isinstance(value, str) and value in valid else fallback


def _confidence(value: Any, fallback: float) -> float:
    number = coerce_number(value)
    if number is None or not 0.0 <= number <= 1.0:
        return fallback
    return number


def _non_negative_int(value: Any, fallback: int) -> int:
    number = coerce_number(value)
    if number is None or number < 0:
        return fallback
    return round_half_up(number)


def _category(value: Any, fallback: str) -> str:
    if not isinstance(value, str) or not value.strip():
        return fallback
    category = normalize_category(value)
    return category if category in CATEGORIES else fallback


# =============================================================================
# RECONCILERS
# =============================================================================

def parse_return_analysis(candidate: Any, fallback: ReturnAnalysis) -> ReturnAnalysis:
    """Validated single-return analysis."""
    if not isinstance(candidate, Mapping):
        return fallback

    return ReturnAnalysis(
        category=_category(candidate.get("category"), fallback.category),
        sentiment=_choice(candidate.get("sentiment"), SENTIMENTS, fallback.sentiment),
        severity=_choice(candidate.get("severity"), SEVERITIES, fallback.severity),
        confidence=_confidence(candidate.get("confidence"), fallback.confidence),
        summary=_text(candidate.get("summary"), fallback.summary),
    )


def _source_pattern(value: Any, fallback: PatternSummary) -> PatternSummary:
    if not isinstance(value, Mapping):
        return fallback
    try:
        return PatternSummary.from_dict(value)
    except (KeyError, TypeError, ValueError, OverflowError):
        return fallback


def parse_pattern_insight(candidate: Any, fallback: PatternInsight) -> PatternInsight:
    """Validated pattern insight."""
    if not isinstance(candidate, Mapping):
        return fallback

    return PatternInsight(
        title=_text(candidate.get("title"), fallback.title),
        description=_text(candidate.get("description"), fallback.description),
        priority=_choice(candidate.get("priority"), PRIORITY_TIERS, fallback.priority),
        confidence=_confidence(candidate.get("confidence"), fallback.confidence),
        returns_analyzed=_non_negative_int(candidate.get("returnsAnalyzed"), fallback.returns_analyzed),
        source_pattern=_source_pattern(candidate.get("sourcePattern"), fallback.source_pattern),
        estimated_savings_cents=_non_negative_int(
            candidate.get("estimatedSavingsCents"), fallback.estimated_savings_cents
        ),
    )


def _recommendation_item(item: Any, fallback_priority: str) -> Optional[RecommendationItem]:
    if not isinstance(item, Mapping):
        return None

    action = item.get("action")
    action = action.strip() if isinstance(action, str) else ""
    if not action:
        return None

    return RecommendationItem(
        action=action,
        priority=_choice(item.get("priority"), PRIORITY_TIERS, fallback_priority),
        estimated_impact_cents=_non_negative_int(item.get("estimatedImpactCents"), 0),
    )


def parse_recommendations(candidate: Any, fallback: RecommendationPack) -> RecommendationPack:
    """
    Validated recommendation pack.

    A candidate list replaces the fallback list entirely (items without an
    action are dropped); without one the fallback list is kept as is.
    """
    if not isinstance(candidate, Mapping):
        return fallback

    raw_items = candidate.get("recommendations")
    if isinstance(raw_items, list):
        items = [
            rebuilt
            for rebuilt in (_recommendation_item(item, fallback.priority) for item in raw_items)
            if rebuilt is not None
        ]
    else:
        items = list(fallback.recommendations)

    return RecommendationPack(
        recommendations=items,
        estimated_savings_cents=_non_negative_int(
            candidate.get("estimatedSavingsCents"), fallback.estimated_savings_cents
        ),
        confidence=_confidence(candidate.get("confidence"), fallback.confidence),
        priority=fallback.priority,
    )


def parse_impact_note(candidate: Any, fallback: str) -> str:
    """Validated impact note text."""
    if not isinstance(candidate, Mapping):
        return fallback
    return _text(candidate.get("impactNote"), fallback)
