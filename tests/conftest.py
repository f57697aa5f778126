"""Shared fixtures: in-memory database, fake classifier and seeded catalogue."""

from datetime import timedelta
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from classifier_client import ClassifierClient
from config import Settings
from main import create_app
from shared.database import create_db_engine, create_session_factory, init_schema
from use_cases.returns.domain import heuristic_return_analysis
from use_cases.returns.models import Order, OrderItem, Product, utcnow
from use_cases.returns.repository import ReturnsRepository

CUSTOMER_SUB = "demo|customer-demo"

CUSTOMER_HEADERS = {"x-demo-role": "customer"}
MERCHANT_HEADERS = {"x-demo-role": "merchant", "x-demo-merchant-id": "1"}


class FakeClassifier(ClassifierClient):
    """Classifier returning canned responses keyed by system prompt."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        super().__init__(None, "fake-model")
        self.responses = responses or {}
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def classify(self, system_prompt, payload):
        self.calls.append({"prompt": system_prompt, "payload": payload})
        return self.responses.get(system_prompt)


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite:///:memory:",
        "auth_disabled": True,
        "openai_api_key": "",
        "azure_openai_endpoint": "",
    }
    values.update(overrides)
    return Settings(**values)


def seed_catalog(session) -> Dict[str, int]:
    """Two merchant-1 products, one merchant-2 product and a delivered order."""
    trail = Product(merchant_id=1, name="Trail Runner Shoe", sku="TR-1", price_cents=12000)
    bag = Product(merchant_id=1, name="Everywhere Belt Bag", sku="BB-1", price_cents=4000)
    foreign = Product(merchant_id=2, name="Other Merchant Tee", sku="OM-1", price_cents=3000)
    session.add_all([trail, bag, foreign])
    session.flush()

    delivered = utcnow() - timedelta(days=3)
    order = Order(customer_sub=CUSTOMER_SUB, customer_name="Customer Demo", status="delivered",
                  created_at=delivered - timedelta(days=2), delivered_at=delivered)
    other_order = Order(customer_sub="seed|other", customer_name="Other Customer", status="delivered",
                        created_at=delivered, delivered_at=delivered)
    session.add_all([order, other_order])
    session.flush()

    trail_item = OrderItem(order_id=order.id, product_id=trail.id, quantity=1, unit_price_cents=12000)
    bag_item = OrderItem(order_id=order.id, product_id=bag.id, quantity=1, unit_price_cents=4000)
    foreign_item = OrderItem(order_id=other_order.id, product_id=foreign.id, quantity=1, unit_price_cents=3000)
    session.add_all([trail_item, bag_item, foreign_item])
    session.commit()

    return {
        "trail_id": trail.id,
        "bag_id": bag.id,
        "foreign_id": foreign.id,
        "trail_item_id": trail_item.id,
        "bag_item_id": bag_item.id,
        "foreign_item_id": foreign_item.id,
        "order_id": order.id,
    }


def add_analyzed_returns(repository: ReturnsRepository, order_item_id: int, reasons: List[str],
                         customer_sub: str = CUSTOMER_SUB) -> List[int]:
    """Create returns with heuristic analyses for one order item."""
    ids = []
    for reason in reasons:
        created = repository.create_return(order_item_id, customer_sub, reason)
        repository.save_return_analysis(created["id"], heuristic_return_analysis(reason).to_dict())
        repository.mark_return_processed(created["id"])
        ids.append(created["id"])
    return ids


SIZING_REASONS = [
    "Runs small, the size is too tight.",
    "Too narrow in the toe, needed a size up.",
    "The fit is tight across the top.",
    "Size chart is off, much too small.",
    "Feels tight and narrow.",
]


@pytest.fixture
def session():
    engine = create_db_engine("sqlite:///:memory:")
    init_schema(engine)
    db = create_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def repository(session):
    return ReturnsRepository(session)


@pytest.fixture
def catalog(session):
    return seed_catalog(session)


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def client(settings, fake_classifier):
    app = create_app(settings=settings, classifier=fake_classifier)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_catalog(client):
    """Seed the app's own database and return the catalogue ids."""
    db = client.app.state.session_factory()
    try:
        return seed_catalog(db)
    finally:
        db.close()


@pytest.fixture
def app_repository(client):
    db = client.app.state.session_factory()
    try:
        yield ReturnsRepository(db)
    finally:
        db.close()
