"""
Returns Use Case.

Customer return submission with categorization, merchant dashboards,
pattern insights and action items.

Structure:
- domain/: heuristics, pattern synthesis and model-output reconciliation
- models.py / repository.py: SQLAlchemy persistence
- insight_engine.py: classifier calls with local fallbacks
- analytics.py: return analysis and insight generation workflows
- routes.py: customer and merchant HTTP routes
"""

from use_cases.returns.analytics import ReturnsAnalyticsService, generate_insight_in_background
from use_cases.returns.insight_engine import InsightEngine
from use_cases.returns.repository import ReturnsRepository
from use_cases.returns.routes import customer_router, merchant_router

__all__ = [
    "InsightEngine",
    "ReturnsAnalyticsService",
    "ReturnsRepository",
    "customer_router",
    "generate_insight_in_background",
    "merchant_router",
]
