"""
Insight Engine.

Runs each classifier step as fallback-then-reconcile: the local result is
computed first, the external classifier is asked for its version, and the
two are merged field by field. A missing or broken classifier response only
ever means the local result is used.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from classifier_client import ClassifierClient

from .domain import (
    HeuristicAnalyzer,
    PatternInsight,
    PatternSynthesizer,
    RecommendationPack,
    RecommendationSynthesizer,
    ReturnAnalysis,
    build_fallback_insight,
    parse_impact_note,
    parse_pattern_insight,
    parse_recommendations,
    parse_return_analysis,
)
from .domain.policies import DEFAULT_TUNING, InsightTuning
from .prompts import (
    IMPACT_NOTE_PROMPT,
    PATTERN_DETECTION_PROMPT,
    RECOMMENDATIONS_PROMPT,
    RETURN_ANALYSIS_PROMPT,
)

logger = logging.getLogger(__name__)

# Expected return reduction quoted in locally written impact notes
IMPACT_NOTE_REDUCTION_PERCENT = 6


def format_usd(cents: Optional[int]) -> str:
    """Format cents as US dollars ("$1,234.50"); "$0" when there is no amount."""
    if not cents:
        return "$0"
    return f"${cents / 100:,.2f}"


def fallback_impact_note(estimated_impact_cents: Optional[int]) -> str:
    return (
        f"Completed action is expected to reduce returns by {IMPACT_NOTE_REDUCTION_PERCENT}% "
        f"and save {format_usd(estimated_impact_cents)} next quarter."
    )


class InsightEngine:
    """Return categorization, pattern detection, recommendations and impact notes."""

    def __init__(self, classifier: ClassifierClient, tuning: InsightTuning = DEFAULT_TUNING):
        self.classifier = classifier
        self.analyzer = HeuristicAnalyzer()
        self.patterns = PatternSynthesizer(tuning)
        self.recommender = RecommendationSynthesizer(tuning)

    async def analyze_return_reason(
        self,
        reason_text: str,
        category_hint: Optional[str] = None,
        product: Optional[Dict[str, Any]] = None,
    ) -> ReturnAnalysis:
        """Categorize one return."""
        logger.info(f"[insights] analyze_return_reason:start product={(product or {}).get('name')}")
        fallback = self.analyzer.execute(reason_text, category_hint, product)

        candidate = await self.classifier.classify(
            RETURN_ANALYSIS_PROMPT,
            {"reasonText": reason_text, "categoryHint": category_hint, "product": product},
        )

        result = parse_return_analysis(candidate, fallback)
        logger.info(f"[insights] analyze_return_reason:done category={result.category}")
        return result

    async def detect_patterns(
        self,
        product: Dict[str, Any],
        returns: List[Mapping[str, Any]],
    ) -> PatternInsight:
        """Summarize the returns of one product into an insight."""
        logger.info(f"[insights] detect_patterns:start product={product.get('name')} returns={len(returns)}")
        baseline = self.patterns.execute(returns)
        fallback = build_fallback_insight(baseline)

        candidate = await self.classifier.classify(
            PATTERN_DETECTION_PROMPT,
            {
                "product": product,
                "returns": [
                    {
                        "reasonText": row.get("reason_text"),
                        "category": row.get("category"),
                        "severity": row.get("severity"),
                        "unitPriceCents": row.get("unit_price_cents"),
                    }
                    for row in returns
                ],
            },
        )

        result = parse_pattern_insight(candidate, fallback)
        logger.info(f"[insights] detect_patterns:done priority={result.priority}")
        return result

    async def generate_recommendations(
        self,
        product: Dict[str, Any],
        pattern_insight: PatternInsight,
    ) -> RecommendationPack:
        """Three ranked actions for a pattern insight."""
        logger.info(f"[insights] generate_recommendations:start product={product.get('name')}")
        fallback = RecommendationPack(
            recommendations=self.recommender.from_insight(pattern_insight),
            estimated_savings_cents=pattern_insight.estimated_savings_cents,
            confidence=pattern_insight.confidence,
            priority=pattern_insight.priority,
        )

        candidate = await self.classifier.classify(
            RECOMMENDATIONS_PROMPT,
            {"product": product, "patternInsight": pattern_insight.to_dict()},
        )

        result = parse_recommendations(candidate, fallback)
        logger.info(f"[insights] generate_recommendations:done count={len(result.recommendations)}")
        return result

    async def generate_impact_note(
        self,
        product: Dict[str, Any],
        action_item: Dict[str, Any],
        insight: Optional[Dict[str, Any]] = None,
    ) -> str:
        """One or two sentences on the expected outcome of a completed action."""
        logger.info(f"[insights] generate_impact_note:start action={action_item.get('description')}")
        fallback = fallback_impact_note(action_item.get("estimated_impact_cents"))

        candidate = await self.classifier.classify(
            IMPACT_NOTE_PROMPT,
            {"product": product, "actionItem": action_item, "insight": insight or {}},
        )

        result = parse_impact_note(candidate, fallback)
        logger.info("[insights] generate_impact_note:done")
        return result
