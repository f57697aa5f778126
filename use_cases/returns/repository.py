"""
Returns Repository.

Data access for the returns flow: customer orders and returns, per-return
analysis, merchant dashboards, insights and action items.

Every method returns plain dicts (snake_case keys, one per row) so routes can
hand them straight to the JSON encoder. Aggregations are written with
portable SQLAlchemy constructs and finished in Python where PostgreSQL-only
SQL would otherwise be needed, so the same code runs on SQLite in tests.
"""

import logging
import random
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.data import QueryOptions, SqlAlchemyUnitOfWork

from .domain.policies import PRIORITY_TIERS, ActionItemStatus
from .models import (
    ActionItem,
    Insight,
    Order,
    OrderItem,
    Product,
    Return,
    ReturnAnalysisRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

PRODUCT_SORTS = ["mostReturns", "costImpact", "newestIssues"]

# Demo orders created for a customer who has none
SEED_STATUS_PLAN = ["delivered", "delivered", "shipping", "processing", "in_transit"]

TREND_DAYS = 30
TOP_ISSUES_LIMIT = 5

# Critical first, unknown priorities last
_PRIORITY_RANK = {tier: i + 1 for i, tier in enumerate(PRIORITY_TIERS)}


def _rate(numerator: int, denominator: int) -> float:
    return 0 if denominator == 0 else round(numerator / denominator, 4)


class ReturnsRepository:
    """Repository for returns, insights and action items."""

    def __init__(self, session: Session, rng: Optional[random.Random] = None):
        self.session = session
        self._rng = rng or random.Random()

    # =========================================================================
    # CUSTOMER ORDERS
    # =========================================================================

    def list_customer_orders(self, customer_sub: str) -> List[Dict[str, Any]]:
        """Order items for a customer, newest delivery first (undelivered last)."""
        stmt = (
            select(Order, OrderItem, Product)
            .join(OrderItem, OrderItem.order_id == Order.id)
            .join(Product, Product.id == OrderItem.product_id)
            .where(Order.customer_sub == customer_sub)
            .order_by(Order.delivered_at.is_(None), Order.delivered_at.desc(), Order.id.desc(), OrderItem.id)
        )
        return [
            {
                "order_id": order.id,
                "status": order.status,
                "delivered_at": order.delivered_at,
                "order_item_id": item.id,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "product_id": product.id,
                "product_name": product.name,
                "image_url": product.image_url,
                "sku": product.sku,
            }
            for order, item, product in self.session.execute(stmt)
        ]

    def _random_products(self, limit: int) -> List[Product]:
        products = list(self.session.scalars(select(Product).order_by(Product.id)))
        self._rng.shuffle(products)
        return products[:limit]

    def _add_order(self, customer_sub: str, customer_name: Optional[str], status: str, days_ago: int) -> Order:
        now = utcnow()
        created_at = now - timedelta(days=days_ago)
        order = Order(
            customer_sub=customer_sub,
            customer_name=customer_name or "Customer",
            status=status,
            created_at=created_at,
            delivered_at=created_at + timedelta(days=2) if status == "delivered" else None,
        )
        self.session.add(order)
        self.session.flush()
        return order

    def seed_customer_orders(self, customer_sub: str, customer_name: Optional[str] = None) -> None:
        """Create a small set of demo orders for a customer with none."""
        products = self._random_products(5)
        if not products:
            return

        for i, status in enumerate(SEED_STATUS_PLAN):
            order = self._add_order(customer_sub, customer_name, status, days_ago=2 + i * 2)
            item_count = 2 if status == "delivered" else 1
            for j in range(item_count):
                product = products[(i + j) % len(products)]
                self.session.add(OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=1,
                    unit_price_cents=product.price_cents,
                ))

        self.session.commit()
        logger.info(f"Seeded {len(SEED_STATUS_PLAN)} demo orders for {customer_sub}")

    def ensure_customer_order_status(self, customer_sub: str, customer_name: Optional[str], status: str) -> None:
        """Make sure the customer has at least one order in the given status."""
        existing = self.session.scalar(
            select(Order.id).where(Order.customer_sub == customer_sub, Order.status == status).limit(1)
        )
        if existing is not None:
            return

        products = self._random_products(1)
        if not products:
            return

        order = self._add_order(customer_sub, customer_name, status, days_ago=1)
        self.session.add(OrderItem(
            order_id=order.id,
            product_id=products[0].id,
            quantity=1,
            unit_price_cents=products[0].price_cents,
        ))
        self.session.commit()

    # =========================================================================
    # RETURN OPERATIONS
    # =========================================================================

    def get_order_item_with_product(self, order_item_id: int) -> Optional[Dict[str, Any]]:
        """Look up an order item together with its product."""
        row = self.session.execute(
            select(OrderItem, Product)
            .join(Product, Product.id == OrderItem.product_id)
            .where(OrderItem.id == order_item_id)
        ).first()
        if row is None:
            return None

        item, product = row
        return {
            "order_item_id": item.id,
            "unit_price_cents": item.unit_price_cents,
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "image_url": product.image_url,
            "merchant_id": product.merchant_id,
        }

    def create_return(
        self,
        order_item_id: int,
        customer_sub: str,
        reason_text: str,
        category_hint: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a new return in 'submitted' status."""
        record = Return(
            order_item_id=order_item_id,
            customer_sub=customer_sub,
            reason_text=reason_text,
            category_hint=category_hint or None,
            photo_url=photo_url or None,
            status="submitted",
        )
        self.session.add(record)
        self.session.commit()
        logger.info(f"Created return {record.id} for order item {order_item_id}")
        return {"id": record.id, "submitted_at": record.submitted_at}

    def mark_return_processed(self, return_id: int) -> None:
        record = self.session.get(Return, return_id)
        if record is not None:
            record.status = "processed"
            self.session.commit()

    def save_return_analysis(self, return_id: int, analysis: Dict[str, Any]) -> None:
        """Insert or replace the analysis for a return."""
        record = self.session.scalar(
            select(ReturnAnalysisRecord).where(ReturnAnalysisRecord.return_id == return_id)
        )
        if record is None:
            record = ReturnAnalysisRecord(return_id=return_id)
            self.session.add(record)

        record.category = analysis["category"]
        record.sentiment = analysis["sentiment"]
        record.severity = analysis["severity"]
        record.confidence = analysis["confidence"]
        record.summary = analysis["summary"]
        record.raw_json = dict(analysis)
        record.analyzed_at = utcnow()
        self.session.commit()

    def list_customer_returns(self, customer_sub: str) -> List[Dict[str, Any]]:
        """A customer's returns with product and analysis, newest first."""
        stmt = (
            select(Return, Product, ReturnAnalysisRecord)
            .join(OrderItem, OrderItem.id == Return.order_item_id)
            .join(Product, Product.id == OrderItem.product_id)
            .outerjoin(ReturnAnalysisRecord, ReturnAnalysisRecord.return_id == Return.id)
            .where(Return.customer_sub == customer_sub)
            .order_by(Return.submitted_at.desc(), Return.id.desc())
        )
        return [
            {
                "id": ret.id,
                "order_item_id": ret.order_item_id,
                "status": ret.status,
                "reason_text": ret.reason_text,
                "submitted_at": ret.submitted_at,
                "product_name": product.name,
                "image_url": product.image_url,
                "category": analysis.category if analysis else None,
                "sentiment": analysis.sentiment if analysis else None,
                "severity": analysis.severity if analysis else None,
                "confidence": analysis.confidence if analysis else None,
            }
            for ret, product, analysis in self.session.execute(stmt)
        ]

    # =========================================================================
    # MERCHANT DASHBOARD
    # =========================================================================

    def get_merchant_dashboard(self, merchant_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        """Headline metrics, 30-day daily return trend and top 5 categories."""
        total_order_items = self.session.scalar(
            select(func.count(OrderItem.id))
            .join(Product, Product.id == OrderItem.product_id)
            .where(Product.merchant_id == merchant_id)
        ) or 0

        returns_stmt = (
            select(Return.submitted_at, OrderItem.unit_price_cents)
            .join(OrderItem, OrderItem.id == Return.order_item_id)
            .join(Product, Product.id == OrderItem.product_id)
            .where(Product.merchant_id == merchant_id)
        )
        merchant_returns = self.session.execute(returns_stmt).all()
        total_returns = len(merchant_returns)
        cost_of_returns = sum(price or 0 for _, price in merchant_returns)

        insights_generated = self.session.scalar(
            select(func.count(Insight.id))
            .join(Product, Product.id == Insight.product_id)
            .where(Product.merchant_id == merchant_id)
        ) or 0

        # Daily buckets from 29 days ago through today
        today = today or utcnow().date()
        days = [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]
        buckets: Dict[date, int] = OrderedDict((day, 0) for day in days)
        for submitted_at, _ in merchant_returns:
            day = submitted_at.date()
            if day in buckets:
                buckets[day] += 1

        count_col = func.count(ReturnAnalysisRecord.id).label("count")
        top_issues = self.session.execute(
            select(ReturnAnalysisRecord.category, count_col)
            .join(Return, Return.id == ReturnAnalysisRecord.return_id)
            .join(OrderItem, OrderItem.id == Return.order_item_id)
            .join(Product, Product.id == OrderItem.product_id)
            .where(Product.merchant_id == merchant_id)
            .group_by(ReturnAnalysisRecord.category)
            .order_by(count_col.desc(), ReturnAnalysisRecord.category)
            .limit(TOP_ISSUES_LIMIT)
        ).all()

        return {
            "metrics": {
                "totalReturns": total_returns,
                "returnRate": _rate(total_returns, total_order_items),
                "costOfReturnsCents": int(cost_of_returns),
                "aiInsightsGenerated": int(insights_generated),
            },
            "trend": [{"day": day.isoformat(), "returns": count} for day, count in buckets.items()],
            "topIssues": [{"category": category, "count": count} for category, count in top_issues],
        }

    # =========================================================================
    # MERCHANT PRODUCTS
    # =========================================================================

    def list_merchant_products(self, merchant_id: int, sort_by: str = "mostReturns") -> List[Dict[str, Any]]:
        """Merchant products with return counts, cost, rate and category breakdown."""
        products = list(self.session.scalars(
            select(Product).where(Product.merchant_id == merchant_id).order_by(Product.id)
        ))
        product_ids = [p.id for p in products]
        if not product_ids:
            return []

        order_item_counts = dict(self.session.execute(
            select(OrderItem.product_id, func.count(OrderItem.id))
            .where(OrderItem.product_id.in_(product_ids))
            .group_by(OrderItem.product_id)
        ).all())

        return_stats = {
            product_id: (total, cost, latest)
            for product_id, total, cost, latest in self.session.execute(
                select(
                    OrderItem.product_id,
                    func.count(Return.id),
                    func.coalesce(func.sum(OrderItem.unit_price_cents), 0),
                    func.max(Return.submitted_at),
                )
                .join(Return, Return.order_item_id == OrderItem.id)
                .where(OrderItem.product_id.in_(product_ids))
                .group_by(OrderItem.product_id)
            )
        }

        breakdown: Dict[int, List[Dict[str, Any]]] = {}
        for product_id, category, count in self.session.execute(
            select(OrderItem.product_id, ReturnAnalysisRecord.category, func.count(ReturnAnalysisRecord.id))
            .join(Return, Return.order_item_id == OrderItem.id)
            .join(ReturnAnalysisRecord, ReturnAnalysisRecord.return_id == Return.id)
            .where(OrderItem.product_id.in_(product_ids))
            .group_by(OrderItem.product_id, ReturnAnalysisRecord.category)
            .order_by(OrderItem.product_id, ReturnAnalysisRecord.category)
        ):
            breakdown.setdefault(product_id, []).append({"category": category, "count": count})

        rows = []
        for product in products:
            total_returns, cost, latest = return_stats.get(product.id, (0, 0, None))
            total_order_items = order_item_counts.get(product.id, 0)
            rows.append({
                "product_id": product.id,
                "name": product.name,
                "sku": product.sku,
                "image_url": product.image_url,
                "price_cents": product.price_cents,
                "total_returns": int(total_returns),
                "estimated_cost_cents": int(cost),
                "latest_return_at": latest,
                "total_order_items": int(total_order_items),
                "return_rate": _rate(int(total_returns), int(total_order_items)),
                "category_breakdown": breakdown.get(product.id, []),
            })

        return self._sort_products(rows, sort_by)

    @staticmethod
    def _sort_products(rows: List[Dict[str, Any]], sort_by: str) -> List[Dict[str, Any]]:
        if sort_by == "costImpact":
            return sorted(rows, key=lambda r: (-r["estimated_cost_cents"], -r["total_returns"]))
        if sort_by == "newestIssues":
            # Products without returns go last
            dated = sorted(
                (r for r in rows if r["latest_return_at"] is not None),
                key=lambda r: r["latest_return_at"],
                reverse=True,
            )
            return dated + [r for r in rows if r["latest_return_at"] is None]
        return sorted(rows, key=lambda r: -r["total_returns"])

    def get_product_detail(self, product_id: int, merchant_id: int) -> Dict[str, Any]:
        """Product, its returns with analysis and customer name, and the latest insight."""
        product = self.session.scalar(
            select(Product).where(Product.id == product_id, Product.merchant_id == merchant_id)
        )
        if product is None:
            return {"product": None, "returns": [], "latestInsight": None}

        stmt = (
            select(Return, Order, ReturnAnalysisRecord)
            .join(OrderItem, OrderItem.id == Return.order_item_id)
            .join(Order, Order.id == OrderItem.order_id)
            .outerjoin(ReturnAnalysisRecord, ReturnAnalysisRecord.return_id == Return.id)
            .where(OrderItem.product_id == product_id)
            .order_by(Return.submitted_at.desc(), Return.id.desc())
        )
        returns = [
            {
                "id": ret.id,
                "submitted_at": ret.submitted_at,
                "reason_text": ret.reason_text,
                "status": ret.status,
                "category": analysis.category if analysis else None,
                "severity": analysis.severity if analysis else None,
                "sentiment": analysis.sentiment if analysis else None,
                "confidence": analysis.confidence if analysis else None,
                "customer_name": order.customer_name or order.customer_sub,
                "customer_sub": order.customer_sub,
            }
            for ret, order, analysis in self.session.execute(stmt)
        ]

        latest = self.session.scalar(
            select(Insight)
            .where(Insight.product_id == product_id)
            .order_by(Insight.created_at.desc(), Insight.id.desc())
            .limit(1)
        )

        return {
            "product": self._product_dict(product),
            "returns": returns,
            "latestInsight": self._insight_dict(latest) if latest else None,
        }

    def list_returns_for_pattern_detection(self, product_id: int, merchant_id: int) -> List[Dict[str, Any]]:
        """Rows fed to the pattern synthesizer for one product."""
        stmt = (
            select(Return, OrderItem, Product, ReturnAnalysisRecord)
            .join(OrderItem, OrderItem.id == Return.order_item_id)
            .join(Product, Product.id == OrderItem.product_id)
            .outerjoin(ReturnAnalysisRecord, ReturnAnalysisRecord.return_id == Return.id)
            .where(Product.id == product_id, Product.merchant_id == merchant_id)
            .order_by(Return.submitted_at.desc(), Return.id.desc())
        )
        return [
            {
                "id": ret.id,
                "reason_text": ret.reason_text,
                "submitted_at": ret.submitted_at,
                "category": analysis.category if analysis else None,
                "severity": analysis.severity if analysis else None,
                "sentiment": analysis.sentiment if analysis else None,
                "confidence": analysis.confidence if analysis else None,
                "product_name": product.name,
                "sku": product.sku,
                "unit_price_cents": item.unit_price_cents,
            }
            for ret, item, product, analysis in self.session.execute(stmt)
        ]

    # =========================================================================
    # INSIGHT OPERATIONS
    # =========================================================================

    def insert_insight(self, product_id: int, insight: Dict[str, Any]) -> Dict[str, Any]:
        """Store a generated insight (camelCase payload) and return its id."""
        record = Insight(
            product_id=product_id,
            title=insight["title"],
            description=insight["description"],
            priority=insight["priority"],
            confidence=insight["confidence"],
            estimated_savings_cents=insight["estimatedSavingsCents"],
            returns_analyzed=insight["returnsAnalyzed"],
            recommendations=list(insight["recommendations"]),
            source_pattern=dict(insight["sourcePattern"]),
        )
        self.session.add(record)
        self.session.commit()
        logger.info(f"Stored insight {record.id} for product {product_id}")
        return {"id": record.id, "created_at": record.created_at}

    def get_insight_for_merchant(self, insight_id: int, merchant_id: int) -> Optional[Dict[str, Any]]:
        """An insight, only if its product belongs to the merchant."""
        row = self.session.execute(
            select(Insight, Product)
            .join(Product, Product.id == Insight.product_id)
            .where(Insight.id == insight_id, Product.merchant_id == merchant_id)
        ).first()
        if row is None:
            return None

        insight, product = row
        return {
            "id": insight.id,
            "product_id": insight.product_id,
            "title": insight.title,
            "recommendations": insight.recommendations,
            "source_pattern": insight.source_pattern,
            "estimated_savings_cents": insight.estimated_savings_cents,
            "priority": insight.priority,
            "confidence": insight.confidence,
            "product_name": product.name,
            "product_sku": product.sku,
            "image_url": product.image_url,
        }

    # =========================================================================
    # ACTION ITEM OPERATIONS
    # =========================================================================

    @staticmethod
    def _new_action_item(insight_id: int, product_id: int, description: str, priority: str,
                         estimated_impact_cents: Optional[int]) -> ActionItem:
        return ActionItem(
            insight_id=insight_id,
            product_id=product_id,
            description=description,
            priority=priority,
            estimated_impact_cents=estimated_impact_cents or 0,
            status=ActionItemStatus.NEW.value,
        )

    def insert_action_item(
        self,
        insight_id: int,
        product_id: int,
        description: str,
        priority: str,
        estimated_impact_cents: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Create one action item in status 'New'."""
        item = self._new_action_item(insight_id, product_id, description, priority, estimated_impact_cents)
        self.session.add(item)
        self.session.commit()
        return self._action_item_dict(item)

    def insert_action_items(
        self,
        insight_id: int,
        product_id: int,
        recommendations: Iterable[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """Create one action item per recommendation; all or nothing."""
        with SqlAlchemyUnitOfWork(self.session) as uow:
            items = [
                self._new_action_item(
                    insight_id,
                    product_id,
                    recommendation["action"],
                    recommendation["priority"],
                    recommendation.get("estimatedImpactCents"),
                )
                for recommendation in recommendations
            ]
            uow.session.add_all(items)
            uow.session.flush()

        logger.info(f"Created {len(items)} action items for insight {insight_id}")
        return [self._action_item_dict(item) for item in items]

    def list_action_items(self, merchant_id: int, options: Optional[QueryOptions] = None) -> List[Dict[str, Any]]:
        """
        Merchant action items, Critical first then newest.

        Supported filters: product_id, priority, status, assigned_to.
        """
        filters = (options or QueryOptions()).active_filters()

        stmt = (
            select(ActionItem, Product)
            .join(Product, Product.id == ActionItem.product_id)
            .where(Product.merchant_id == merchant_id)
        )
        if "product_id" in filters:
            stmt = stmt.where(ActionItem.product_id == int(filters["product_id"]))
        if "priority" in filters:
            stmt = stmt.where(ActionItem.priority == filters["priority"])
        if "status" in filters:
            stmt = stmt.where(ActionItem.status == filters["status"])
        if "assigned_to" in filters:
            stmt = stmt.where(ActionItem.assigned_to == filters["assigned_to"])

        rows = [
            self._action_item_dict(item, product)
            for item, product in self.session.execute(stmt)
        ]
        rows.sort(key=lambda r: (r["created_at"], r["id"]), reverse=True)
        rows.sort(key=lambda r: _PRIORITY_RANK.get(r["priority"], 0), reverse=True)
        return rows

    def update_action_item(
        self,
        action_item_id: int,
        merchant_id: int,
        patch: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Apply a patch to a merchant's action item.

        Patch keys: status (applied when truthy), assigned_to, due_date and
        impact_note (applied when present; empty values clear the field).

        Returns:
            The updated item with product name and insight title, or None if
            the item is unknown to this merchant or the patch is empty
        """
        updates: Dict[str, Any] = {}
        if patch.get("status"):
            updates["status"] = patch["status"]
        for key in ("assigned_to", "due_date", "impact_note"):
            if key in patch:
                updates[key] = patch[key] or None

        if not updates:
            return None

        row = self.session.execute(
            select(ActionItem, Product)
            .join(Product, Product.id == ActionItem.product_id)
            .where(ActionItem.id == action_item_id, Product.merchant_id == merchant_id)
        ).first()
        if row is None:
            return None

        item, product = row
        for key, value in updates.items():
            setattr(item, key, value)
        self.session.commit()

        insight_title = None
        if item.insight_id is not None:
            insight_title = self.session.scalar(select(Insight.title).where(Insight.id == item.insight_id))

        result = self._action_item_dict(item, product)
        result["insight_id"] = item.insight_id
        result["insight_title"] = insight_title
        return result

    # =========================================================================
    # ROW MAPPING
    # =========================================================================

    @staticmethod
    def _product_dict(product: Product) -> Dict[str, Any]:
        return {
            "id": product.id,
            "merchant_id": product.merchant_id,
            "name": product.name,
            "sku": product.sku,
            "image_url": product.image_url,
            "price_cents": product.price_cents,
        }

    @staticmethod
    def _insight_dict(insight: Insight) -> Dict[str, Any]:
        return {
            "id": insight.id,
            "title": insight.title,
            "description": insight.description,
            "priority": insight.priority,
            "confidence": insight.confidence,
            "estimated_savings_cents": insight.estimated_savings_cents,
            "returns_analyzed": insight.returns_analyzed,
            "recommendations": insight.recommendations,
            "source_pattern": insight.source_pattern,
            "created_at": insight.created_at,
        }

    @staticmethod
    def _action_item_dict(item: ActionItem, product: Optional[Product] = None) -> Dict[str, Any]:
        row = {
            "id": item.id,
            "insight_id": item.insight_id,
            "product_id": item.product_id,
            "description": item.description,
            "priority": item.priority,
            "estimated_impact_cents": item.estimated_impact_cents,
            "status": item.status,
            "assigned_to": item.assigned_to,
            "due_date": item.due_date,
            "impact_note": item.impact_note,
            "created_at": item.created_at,
        }
        if product is not None:
            row["product_name"] = product.name
            row["image_url"] = product.image_url
        return row
