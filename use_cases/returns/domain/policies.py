"""
Returns Policies - Pure Business Rules.

Enumerations, tuning constants and request validators for the returns
insight engine. They have NO dependencies on databases or external services.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List

from core.domain import Validator, ValidationError


# =============================================================================
# ENUMERATIONS
# =============================================================================

class CategoryLabel(str, Enum):
    """Canonical return categories."""
    SIZING = "sizing"
    QUALITY = "quality"
    NOT_AS_DESCRIBED = "not_as_described"
    SHIPPING_DAMAGE = "shipping_damage"
    CHANGED_MIND = "changed_mind"
    OTHER = "other"


class SeverityLevel(str, Enum):
    """Severity of a single return, ordered by increasing impact."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SentimentLabel(str, Enum):
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"


class PriorityTier(str, Enum):
    """Urgency of an insight or recommendation (Low < Medium < High < Critical)."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ActionItemStatus(str, Enum):
    NEW = "New"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


CATEGORIES = [c.value for c in CategoryLabel]
SEVERITIES = [s.value for s in SeverityLevel]
SENTIMENTS = [s.value for s in SentimentLabel]
PRIORITY_TIERS = [p.value for p in PriorityTier]
ACTION_ITEM_STATUSES = [s.value for s in ActionItemStatus]

# Severities counted towards the high-severity escalation rule
HIGH_SEVERITIES = [SeverityLevel.HIGH.value, SeverityLevel.CRITICAL.value]


# =============================================================================
# CONFIGURATION (product-tuning constants)
# =============================================================================

@dataclass(frozen=True)
class InsightTuning:
    """
    Constants behind priority scoring, savings and impact estimates.

    The defaults reproduce the production behaviour exactly; pass a custom
    instance to the synthesizers to experiment with other values.
    """
    critical_share: float = 0.6
    high_share: float = 0.45
    medium_share: float = 0.3
    critical_high_severity_count: int = 5

    # Recoverable fraction of returned order value: base + topShare / 2, capped
    savings_base_fraction: float = 0.1
    savings_fraction_cap: float = 0.35

    # Recommendation impact schedule: max(floor, base * (start - i * step))
    impact_base_floor_cents: int = 50000
    impact_min_cents: int = 15000
    impact_decay_start: float = 1.2
    impact_decay_step: float = 0.15


DEFAULT_TUNING = InsightTuning()

# Confidence assigned to locally computed results
HEURISTIC_ANALYSIS_CONFIDENCE = 0.68
FALLBACK_INSIGHT_CONFIDENCE = 0.79
DEFAULT_CONFIDENCE = 0.7

RECOMMENDATIONS_PER_INSIGHT = 3


# =============================================================================
# VALIDATORS
# =============================================================================

class ReturnSubmissionValidator(Validator):
    """
    Validates a return submission before it reaches the analyzer.
    """

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = []

        order_item_id = data.get("orderItemId")
        if order_item_id in (None, "", 0):
            errors.append(ValidationError(
                field="orderItemId",
                message="orderItemId is required",
                code="required",
            ))

        reason_text = data.get("reasonText")
        if not isinstance(reason_text, str) or not reason_text.strip():
            errors.append(ValidationError(
                field="reasonText",
                message="reasonText is required",
                code="required",
            ))

        category_hint = data.get("categoryHint")
        if category_hint is not None and not isinstance(category_hint, str):
            errors.append(ValidationError(
                field="categoryHint",
                message="categoryHint must be a string",
                code="invalid_type",
            ))

        return errors


class ActionItemValidator(Validator):
    """
    Validates a new action item created from an insight recommendation.
    """

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = []

        if not data.get("description"):
            errors.append(ValidationError(
                field="description",
                message="description is required",
                code="required",
            ))

        priority = data.get("priority")
        if not priority:
            errors.append(ValidationError(
                field="priority",
                message="priority is required",
                code="required",
            ))
        elif priority not in PRIORITY_TIERS:
            errors.append(ValidationError(
                field="priority",
                message=f"Invalid priority. Must be one of: {', '.join(PRIORITY_TIERS)}",
                code="invalid_choice",
            ))

        impact = data.get("estimatedImpactCents")
        if impact is not None and (isinstance(impact, bool) or not isinstance(impact, int) or impact < 0):
            errors.append(ValidationError(
                field="estimatedImpactCents",
                message="estimatedImpactCents must be a non-negative integer",
                code="invalid_type",
            ))

        return errors


class ActionItemPatchValidator(Validator):
    """
    Validates a status / assignment / due-date patch for an action item.
    """

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = []

        status = data.get("status")
        if status and status not in ACTION_ITEM_STATUSES:
            errors.append(ValidationError(
                field="status",
                message=f"Invalid status. Must be one of: {', '.join(ACTION_ITEM_STATUSES)}",
                code="invalid_choice",
            ))

        return errors


def format_errors(errors: List[ValidationError]) -> str:
    """Join validation errors into a single client-facing message."""
    return "; ".join(f"{e.field}: {e.message}" for e in errors)
