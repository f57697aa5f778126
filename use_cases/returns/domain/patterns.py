"""
Return Pattern Synthesis - Pure Business Logic.

Aggregates the returns of one product into a PatternSummary and builds the
locally computed insight that model output is reconciled against.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.domain import DomainService, round_half_up

from .categorization import category_display_name, detect_category_by_keyword, normalize_category
from .policies import (
    CATEGORIES,
    DEFAULT_TUNING,
    FALLBACK_INSIGHT_CONFIDENCE,
    HIGH_SEVERITIES,
    CategoryLabel,
    InsightTuning,
    PriorityTier,
)


def share_of(count: int, total: int) -> float:
    """count / total to two decimals, halves rounded up; 0 for no returns."""
    if total == 0:
        return 0.0
    return round_half_up(count * 100 / total) / 100


@dataclass
class CategoryCount:
    category: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "count": self.count}


@dataclass
class PatternSummary:
    """Aggregated view of a product's returns."""
    total_returns: int
    top_category: str
    top_count: int
    top_share: float
    priority: str
    high_severity_count: int
    potential_savings_cents: int
    category_counts: List[CategoryCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalReturns": self.total_returns,
            "topCategory": self.top_category,
            "topCount": self.top_count,
            "topShare": self.top_share,
            "priority": self.priority,
            "highSeverityCount": self.high_severity_count,
            "potentialSavingsCents": self.potential_savings_cents,
            "categoryCounts": [c.to_dict() for c in self.category_counts],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatternSummary":
        """
        Build from the camelCase JSON form.

        Raises:
            ValueError / TypeError / KeyError: If the data is not a consistent summary
        """
        counts = [
            CategoryCount(category=str(c["category"]), count=int(c["count"]))
            for c in data["categoryCounts"]
        ]
        summary = cls(
            total_returns=int(data["totalReturns"]),
            top_category=str(data["topCategory"]),
            top_count=int(data["topCount"]),
            top_share=float(data["topShare"]),
            priority=str(data["priority"]),
            high_severity_count=int(data["highSeverityCount"]),
            potential_savings_cents=int(data["potentialSavingsCents"]),
            category_counts=counts,
        )
        summary.check_invariants()
        return summary

    def check_invariants(self) -> None:
        if min(self.total_returns, self.top_count, self.high_severity_count, self.potential_savings_cents) < 0:
            raise ValueError("Negative totals in pattern summary")
        if self.top_category not in CATEGORIES:
            raise ValueError(f"Unknown category: {self.top_category}")
        if self.priority not in [p.value for p in PriorityTier]:
            raise ValueError(f"Unknown priority: {self.priority}")

        for c in self.category_counts:
            if c.category not in CATEGORIES or c.count <= 0:
                raise ValueError(f"Invalid category count: {c.category}={c.count}")
        if sum(c.count for c in self.category_counts) != self.total_returns:
            raise ValueError("categoryCounts do not sum to totalReturns")

        if self.category_counts:
            first = self.category_counts[0]
            if (first.category, first.count) != (self.top_category, self.top_count):
                raise ValueError("topCategory / topCount do not lead categoryCounts")
            if any(c.count > self.top_count for c in self.category_counts):
                raise ValueError("topCount is not the largest category count")
        elif self.top_count != 0:
            raise ValueError("topCount without categoryCounts")

        if self.top_share != share_of(self.top_count, self.total_returns):
            raise ValueError(f"topShare {self.top_share} does not match topCount / totalReturns")
        if self.high_severity_count > self.total_returns:
            raise ValueError("highSeverityCount exceeds totalReturns")


class PatternSynthesizer(DomainService):
    """
    Computes category concentration, priority tier and savings estimate.

    Each row may carry: category, severity, reason_text, unit_price_cents.
    Rows without a category are classified from their reason text.
    """

    def __init__(self, tuning: InsightTuning = DEFAULT_TUNING):
        self.tuning = tuning

    def execute(self, rows: Optional[Iterable[Mapping[str, Any]]]) -> PatternSummary:
        counts: Dict[str, int] = {}
        high_severity_count = 0
        total_order_value_cents = 0
        total = 0

        for row in rows or []:
            total += 1
            raw_category = row.get("category")
            if raw_category:
                category = normalize_category(raw_category)
            else:
                category = detect_category_by_keyword(row.get("reason_text") or "")
            counts[category] = counts.get(category, 0) + 1

            total_order_value_cents += int(row.get("unit_price_cents") or 0)

            if str(row.get("severity") or "").lower() in HIGH_SEVERITIES:
                high_severity_count += 1

        # sorted() is stable, so ties keep first-seen order
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        top_category, top_count = ranked[0] if ranked else (CategoryLabel.OTHER.value, 0)
        top_share = share_of(top_count, total)

        return PatternSummary(
            total_returns=total,
            top_category=top_category,
            top_count=top_count,
            top_share=top_share,
            priority=self.priority_for(top_share, high_severity_count),
            high_severity_count=high_severity_count,
            potential_savings_cents=self.savings_for(total_order_value_cents, top_share),
            category_counts=[CategoryCount(category=c, count=n) for c, n in ranked],
        )

    def priority_for(self, top_share: float, high_severity_count: int) -> str:
        t = self.tuning
        if top_share >= t.critical_share or high_severity_count >= t.critical_high_severity_count:
            return PriorityTier.CRITICAL.value
        if top_share >= t.high_share:
            return PriorityTier.HIGH.value
        if top_share >= t.medium_share:
            return PriorityTier.MEDIUM.value
        return PriorityTier.LOW.value

    def savings_for(self, total_order_value_cents: int, top_share: float) -> int:
        t = self.tuning
        fraction = min(t.savings_fraction_cap, t.savings_base_fraction + top_share / 2)
        return round_half_up(total_order_value_cents * fraction)


def synthesize_pattern_data(rows: Optional[Iterable[Mapping[str, Any]]]) -> PatternSummary:
    """Convenience wrapper around PatternSynthesizer with default tuning."""
    return PatternSynthesizer().execute(rows)


# =============================================================================
# PATTERN INSIGHT
# =============================================================================

@dataclass
class PatternInsight:
    """Narrative framing of a pattern summary."""
    title: str
    description: str
    priority: str
    confidence: float
    returns_analyzed: int
    source_pattern: PatternSummary
    estimated_savings_cents: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "confidence": self.confidence,
            "returnsAnalyzed": self.returns_analyzed,
            "sourcePattern": self.source_pattern.to_dict(),
            "estimatedSavingsCents": self.estimated_savings_cents,
        }


def build_fallback_insight(baseline: PatternSummary) -> PatternInsight:
    """Locally written insight for a pattern summary."""
    category = category_display_name(baseline.top_category)
    return PatternInsight(
        title=f"{round_half_up(baseline.top_share * 100)}% of returns linked to {category} issues",
        description=(
            f"Analysis of {baseline.total_returns} returns indicates concentrated "
            f"{category} friction for this product."
        ),
        priority=baseline.priority,
        confidence=FALLBACK_INSIGHT_CONFIDENCE,
        returns_analyzed=baseline.total_returns,
        source_pattern=baseline,
        estimated_savings_cents=baseline.potential_savings_cents,
    )
