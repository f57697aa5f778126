"""
Returns Analytics Service.

Coordinates the repository and the insight engine:
- process_return_analysis: categorize a new return and store the result
- generate_product_insight: turn a product's returns into a stored insight
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from .insight_engine import InsightEngine
from .repository import ReturnsRepository

logger = logging.getLogger(__name__)


class ReturnsAnalyticsService:
    """Service layer between the HTTP routes and the insight engine."""

    def __init__(self, repository: ReturnsRepository, engine: InsightEngine, insight_threshold: int = 5):
        self.repository = repository
        self.engine = engine
        self.insight_threshold = insight_threshold

    async def process_return_analysis(
        self,
        return_id: int,
        reason_text: str,
        category_hint: Optional[str] = None,
        product: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Analyze a return, upsert the analysis and mark the return processed."""
        analysis = await self.engine.analyze_return_reason(reason_text, category_hint, product)
        payload = analysis.to_dict()

        self.repository.save_return_analysis(return_id, payload)
        self.repository.mark_return_processed(return_id)
        return payload

    async def generate_product_insight(
        self,
        product_id: int,
        merchant_id: int,
        threshold: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Detect patterns in a product's returns and store a new insight.

        Returns:
            {"skipped": True, "reason": ...} when the product is unknown or has
            too few returns, else {"skipped": False, "insightId": ..., **insight}
        """
        min_returns = self.insight_threshold if threshold is None else threshold
        detail = self.repository.get_product_detail(product_id, merchant_id)

        if detail["product"] is None:
            return {"skipped": True, "reason": "product_not_found"}

        rows = self.repository.list_returns_for_pattern_detection(product_id, merchant_id)
        if len(rows) < min_returns:
            logger.info(
                f"Skipping insight for product {product_id}: {len(rows)} returns, threshold {min_returns}"
            )
            return {
                "skipped": True,
                "reason": "insufficient_returns",
                "returnsAnalyzed": len(rows),
                "threshold": min_returns,
            }

        pattern_insight = await self.engine.detect_patterns(detail["product"], rows)
        pack = await self.engine.generate_recommendations(detail["product"], pattern_insight)

        insight = {
            "title": pattern_insight.title,
            "description": pattern_insight.description,
            "priority": pattern_insight.priority,
            "confidence": pattern_insight.confidence,
            "estimatedSavingsCents": pack.estimated_savings_cents,
            "returnsAnalyzed": pattern_insight.returns_analyzed,
            "recommendations": [item.to_dict() for item in pack.recommendations],
            "sourcePattern": pattern_insight.source_pattern.to_dict(),
        }
        created = self.repository.insert_insight(product_id, insight)

        return {"skipped": False, "insightId": created["id"], **insight}


async def generate_insight_in_background(
    session_factory: sessionmaker,
    engine: InsightEngine,
    product_id: int,
    merchant_id: int,
    threshold: Optional[int],
    default_threshold: int,
) -> None:
    """
    Insight generation scheduled after a return submission.

    Runs on its own session. Failures are logged and dropped so they never
    reach the request that scheduled it.
    """
    session = session_factory()
    try:
        service = ReturnsAnalyticsService(ReturnsRepository(session), engine, default_threshold)
        result = await service.generate_product_insight(product_id, merchant_id, threshold)
        if result["skipped"]:
            logger.info(f"Background insight for product {product_id} skipped: {result['reason']}")
        else:
            logger.info(f"Background insight {result['insightId']} created for product {product_id}")
    except Exception as e:
        logger.error(f"Background insight generation failed for product {product_id}: {e}", exc_info=True)
    finally:
        session.close()
