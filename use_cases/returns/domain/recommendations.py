"""
Recommendation Synthesis - Pure Business Logic.

Turns a pattern insight into three ranked actions with estimated impact,
drawn from category-specific template banks.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.domain import DomainService, round_half_up

from .categorization import normalize_category
from .patterns import PatternInsight
from .policies import (
    DEFAULT_CONFIDENCE,
    DEFAULT_TUNING,
    RECOMMENDATIONS_PER_INSIGHT,
    CategoryLabel,
    InsightTuning,
    PriorityTier,
)


# =============================================================================
# TEMPLATE BANKS
# =============================================================================

SIZING_ACTIONS = [
    "Update size chart to call out fit tendency (e.g. 'runs narrow; size up 0.5').",
    "Add additional fit photography and side profile images to product detail page.",
    "Introduce wide-fit variant based on repeat sizing complaints.",
]

QUALITY_ACTIONS = [
    "Escalate defect cluster to supplier QA with defect examples and return IDs.",
    "Add inbound quality checkpoint for vulnerable components before fulfillment.",
    "Refresh product description to set realistic durability expectations.",
]

GENERIC_ACTIONS = [
    "Run PDP content update experiment to better align customer expectations before purchase.",
    "Create post-purchase fit/use guidance email to reduce avoidable returns.",
    "Monitor weekly return trend and alert if category share exceeds threshold.",
]

ACTION_TEMPLATES: Dict[str, List[str]] = {
    CategoryLabel.SIZING.value: SIZING_ACTIONS,
    CategoryLabel.QUALITY.value: QUALITY_ACTIONS,
}


@dataclass
class RecommendationItem:
    action: str
    priority: str
    estimated_impact_cents: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "priority": self.priority,
            "estimatedImpactCents": self.estimated_impact_cents,
        }


@dataclass
class RecommendationPack:
    """Recommendations for one insight plus the savings and confidence they claim."""
    recommendations: List[RecommendationItem] = field(default_factory=list)
    estimated_savings_cents: int = 0
    confidence: float = DEFAULT_CONFIDENCE
    priority: str = PriorityTier.MEDIUM.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "estimatedSavingsCents": self.estimated_savings_cents,
            "confidence": self.confidence,
        }


class RecommendationSynthesizer(DomainService):
    """
    Builds the fallback recommendation list for an insight.

    The first action claims the largest impact; every item shares the
    insight's priority.
    """

    def __init__(self, tuning: InsightTuning = DEFAULT_TUNING):
        self.tuning = tuning

    def execute(
        self,
        top_category: Optional[str],
        priority: Optional[str],
        estimated_savings_cents: Optional[int],
    ) -> List[RecommendationItem]:
        category = normalize_category(top_category or CategoryLabel.OTHER.value)
        tier = priority or PriorityTier.MEDIUM.value
        actions = ACTION_TEMPLATES.get(category, GENERIC_ACTIONS)

        base_impact = self.base_impact(estimated_savings_cents or 0)
        return [
            RecommendationItem(
                action=action,
                priority=tier,
                estimated_impact_cents=self.impact_for(base_impact, index),
            )
            for index, action in enumerate(actions[:RECOMMENDATIONS_PER_INSIGHT])
        ]

    def base_impact(self, estimated_savings_cents: int) -> int:
        return max(self.tuning.impact_base_floor_cents, round_half_up(estimated_savings_cents / 3))

    def impact_for(self, base_impact: int, index: int) -> int:
        t = self.tuning
        scaled = base_impact * (t.impact_decay_start - index * t.impact_decay_step)
        return max(t.impact_min_cents, round_half_up(scaled))

    def from_insight(self, insight: PatternInsight) -> List[RecommendationItem]:
        """Recommendations for a reconciled pattern insight."""
        return self.execute(
            insight.source_pattern.top_category if insight.source_pattern else None,
            insight.priority,
            insight.estimated_savings_cents,
        )


def default_recommendations_from_pattern(insight: PatternInsight) -> List[RecommendationItem]:
    """Convenience wrapper around RecommendationSynthesizer with default tuning."""
    return RecommendationSynthesizer().from_insight(insight)
