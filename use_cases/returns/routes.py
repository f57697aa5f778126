"""
HTTP routes for the returns API.

customer_router: /api/customer (role: customer)
merchant_router: /api/merchant (role: merchant)
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Request

from auth import UserContext, get_current_user, require_role
from core.data import QueryOptions
from core.errors import ForbiddenError, InvalidRequestError, NotFoundError

from .analytics import ReturnsAnalyticsService, generate_insight_in_background
from .dependencies import (
    get_analytics,
    get_insight_engine,
    get_repository,
    merchant_id_for,
)
from .domain.policies import (
    ActionItemPatchValidator,
    ActionItemStatus,
    ActionItemValidator,
    ReturnSubmissionValidator,
    format_errors,
)
from .insight_engine import InsightEngine
from .repository import ReturnsRepository
from .schemas import ActionItemCreate, ActionItemPatch, GenerateInsightRequest, ReturnSubmission

logger = logging.getLogger(__name__)

customer_router = APIRouter(
    prefix="/api/customer",
    tags=["customer"],
    dependencies=[Depends(require_role("customer"))],
)

merchant_router = APIRouter(
    prefix="/api/merchant",
    tags=["merchant"],
    dependencies=[Depends(require_role("merchant"))],
)


def group_orders(rows):
    """Collapse order-item rows into orders with nested items."""
    orders = {}
    for row in rows:
        order = orders.setdefault(row["order_id"], {
            "id": row["order_id"],
            "status": row["status"],
            "deliveredAt": row["delivered_at"],
            "items": [],
        })
        order["items"].append({
            "orderItemId": row["order_item_id"],
            "quantity": row["quantity"],
            "unitPriceCents": row["unit_price_cents"],
            "product": {
                "id": row["product_id"],
                "name": row["product_name"],
                "imageUrl": row["image_url"],
                "sku": row["sku"],
            },
        })
    return list(orders.values())


# =============================================================================
# CUSTOMER ROUTES
# =============================================================================

@customer_router.get("/orders")
async def list_orders(
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    """Customer orders; demo orders are created on first visit."""
    rows = repository.list_customer_orders(user.sub)
    if not rows:
        repository.seed_customer_orders(user.sub, user.name)
        rows = repository.list_customer_orders(user.sub)

    if not any(row["status"] == "in_transit" for row in rows):
        repository.ensure_customer_order_status(user.sub, user.name, "in_transit")
        rows = repository.list_customer_orders(user.sub)

    return {"orders": group_orders(rows)}


@customer_router.get("/returns")
async def list_returns(
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    return {"returns": repository.list_customer_returns(user.sub)}


@customer_router.post("/returns", status_code=201)
async def submit_return(
    request: Request,
    background_tasks: BackgroundTasks,
    body: ReturnSubmission,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
    analytics: ReturnsAnalyticsService = Depends(get_analytics),
    engine: InsightEngine = Depends(get_insight_engine),
):
    """Submit a return, analyze it, and schedule insight generation for the product."""
    errors = ReturnSubmissionValidator().validate(body.model_dump(by_alias=True))
    if errors:
        raise InvalidRequestError(format_errors(errors))

    item = repository.get_order_item_with_product(body.order_item_id)
    if item is None:
        raise NotFoundError("order_item_not_found")

    created = repository.create_return(
        order_item_id=body.order_item_id,
        customer_sub=user.sub,
        reason_text=body.reason_text,
        category_hint=body.category_hint,
        photo_url=body.photo_url,
    )

    analysis = await analytics.process_return_analysis(
        return_id=created["id"],
        reason_text=body.reason_text,
        category_hint=body.category_hint,
        product={"id": item["product_id"], "name": item["product_name"], "sku": item["sku"]},
    )

    settings = request.app.state.settings
    background_tasks.add_task(
        generate_insight_in_background,
        request.app.state.session_factory,
        engine,
        item["product_id"],
        item["merchant_id"],
        settings.auto_insight_threshold,
        settings.insight_threshold,
    )

    return {
        "message": "Return submitted and analyzed.",
        "returnId": created["id"],
        "analysis": analysis,
    }


# =============================================================================
# MERCHANT ROUTES
# =============================================================================

@merchant_router.get("/dashboard")
async def dashboard(
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    return repository.get_merchant_dashboard(merchant_id_for(user))


@merchant_router.get("/products")
async def list_products(
    sort_by: str = Query(default="mostReturns", alias="sortBy"),
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    return {"products": repository.list_merchant_products(merchant_id_for(user), sort_by)}


@merchant_router.get("/products/{product_id}")
async def product_detail(
    product_id: int,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    detail = repository.get_product_detail(product_id, merchant_id_for(user))
    if detail["product"] is None:
        raise NotFoundError("product_not_found")
    return detail


@merchant_router.post("/products/{product_id}/generate-insight")
async def generate_insight(
    request: Request,
    product_id: int,
    body: Optional[GenerateInsightRequest] = Body(default=None),
    user: UserContext = Depends(get_current_user),
    analytics: ReturnsAnalyticsService = Depends(get_analytics),
):
    """Generate an insight now; a missing or zero threshold uses AUTO_INSIGHT_THRESHOLD."""
    threshold = (body.threshold if body else None) or request.app.state.settings.auto_insight_threshold
    return await analytics.generate_product_insight(product_id, merchant_id_for(user), threshold)


async def _create_action_item(
    insight_id: int,
    body: ActionItemCreate,
    user: UserContext,
    repository: ReturnsRepository,
):
    errors = ActionItemValidator().validate(body.model_dump(by_alias=True))
    if errors:
        raise InvalidRequestError(format_errors(errors))

    insight = repository.get_insight_for_merchant(insight_id, merchant_id_for(user))
    if insight is None:
        raise NotFoundError("insight_not_found")

    action_item = repository.insert_action_item(
        insight_id,
        insight["product_id"],
        description=body.description,
        priority=body.priority,
        estimated_impact_cents=body.estimated_impact_cents,
    )
    return {"actionItem": action_item}


@merchant_router.post("/insights/{insight_id}/action-items", status_code=201)
async def create_action_item(
    insight_id: int,
    body: ActionItemCreate,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    return await _create_action_item(insight_id, body, user, repository)


@merchant_router.post("/insight/{insight_id}/action-items", status_code=201, include_in_schema=False)
async def create_action_item_alias(
    insight_id: int,
    body: ActionItemCreate,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    return await _create_action_item(insight_id, body, user, repository)


@merchant_router.post("/insights/{insight_id}/action-items/bulk", status_code=201)
async def create_action_items_bulk(
    request: Request,
    insight_id: int,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    """One action item per stored recommendation, created atomically."""
    if not request.app.state.settings.bulk_actions_enabled:
        raise ForbiddenError(
            "Bulk action item creation is disabled. Use per-action creation endpoint.",
            code="bulk_actions_disabled",
        )

    insight = repository.get_insight_for_merchant(insight_id, merchant_id_for(user))
    if insight is None:
        raise NotFoundError("insight_not_found")

    recommendations = [
        r for r in insight["recommendations"] or []
        if isinstance(r, dict) and r.get("action")
    ]
    items = repository.insert_action_items(insight_id, insight["product_id"], recommendations)
    return {"actionItems": items}


@merchant_router.get("/action-items")
async def list_action_items(
    product_id: Optional[int] = Query(default=None, alias="productId"),
    priority: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    assigned_to: Optional[str] = Query(default=None, alias="assignedTo"),
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
):
    options = QueryOptions(filters={
        "product_id": product_id,
        "priority": priority,
        "status": status,
        "assigned_to": assigned_to,
    })
    return {"actionItems": repository.list_action_items(merchant_id_for(user), options)}


@merchant_router.patch("/action-items/{action_item_id}")
async def update_action_item(
    action_item_id: int,
    body: ActionItemPatch,
    user: UserContext = Depends(get_current_user),
    repository: ReturnsRepository = Depends(get_repository),
    engine: InsightEngine = Depends(get_insight_engine),
):
    """Update status, assignee or due date; completing an item adds an impact note."""
    errors = ActionItemPatchValidator().validate(body.model_dump(by_alias=True))
    if errors:
        raise InvalidRequestError(format_errors(errors))

    merchant_id = merchant_id_for(user)
    updated = repository.update_action_item(action_item_id, merchant_id, body.to_patch())
    if updated is None:
        raise NotFoundError("action_item_not_found_or_empty_patch")

    if body.status == ActionItemStatus.COMPLETED.value and not updated["impact_note"]:
        try:
            note = await engine.generate_impact_note(
                product={"id": updated["product_id"], "name": updated.get("product_name")},
                action_item=updated,
                insight={"title": updated.get("insight_title")},
            )
            with_note = repository.update_action_item(action_item_id, merchant_id, {"impact_note": note})
            return {"actionItem": with_note or updated}
        except Exception as e:
            logger.warning(f"Impact note generation failed for action item {action_item_id}: {e}")

    return {"actionItem": updated}
