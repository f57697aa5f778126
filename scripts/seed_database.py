"""
Demo Data Seed Script for the Returns Insights API.

Creates the schema and populates sample products, orders, returns and their
heuristic analyses. Data is generated from a fixed random seed so repeated
runs against an empty database produce the same rows.

Usage:
    python scripts/seed_database.py

Environment:
    DATABASE_URL - Target database (defaults to the local SQLite file)
"""

import logging
import random
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv(project_root / ".env")

from sqlalchemy import func, select

from config import settings
from shared.database import create_db_engine, create_session_factory, init_schema
from use_cases.returns.domain import HeuristicAnalyzer
from use_cases.returns.models import Order, OrderItem, Product, Return, ReturnAnalysisRecord, utcnow

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

SEED = 20240601
MERCHANT_ID = 1
CUSTOMER_COUNT = 40
ORDERS_PER_CUSTOMER = 3

# (name, price in cents, category weights for generated return reasons)
PRODUCTS = [
    ("Align High-Rise Pant 25\"", 9800, {"sizing": 0.55, "quality": 0.25, "not_as_described": 0.2}),
    ("Everywhere Belt Bag", 3800, {"quality": 0.55, "not_as_described": 0.3, "sizing": 0.15}),
    ("Swiftly Tech Short-Sleeve Shirt", 7800, {"sizing": 0.35, "quality": 0.35, "not_as_described": 0.3}),
    ("Define Jacket", 11800, {"sizing": 0.33, "quality": 0.33, "not_as_described": 0.34}),
    ("Trail Runner Shoe", 14800, {"sizing": 0.6, "quality": 0.2, "shipping_damage": 0.2}),
    ("City Adventurer Backpack", 12800, {"quality": 0.5, "shipping_damage": 0.3, "changed_mind": 0.2}),
]

REASONS = {
    "sizing": [
        "The size runs small and feels tight through the hips.",
        "Too narrow in the toe box, I needed a half size up.",
        "The fit is loose in the waist but tight in the thighs.",
        "Sleeves are too short and the chest fit is too small.",
    ],
    "quality": [
        "The zipper broke after a week and the seam started to tear.",
        "Stitching came apart and the fabric ripped near the pocket.",
        "Coating started to peel after the first wash, poor quality.",
        "Strap was damaged and the buckle defect made it unusable.",
    ],
    "not_as_described": [
        "Color looks different in person than in the photo.",
        "Material is thinner than the product page suggested, not as described.",
        "The texture is different from what I expected from the photos.",
    ],
    "shipping_damage": [
        "Box was crushed and the item arrived damaged.",
        "Delivery damage on the sole, the shipping box was torn open.",
    ],
    "changed_mind": [
        "I changed my mind, no longer needed.",
        "Impulse purchase, I do not want it anymore.",
    ],
}


def weighted_pick(rng: random.Random, weights: Dict[str, float]) -> str:
    categories = list(weights)
    return rng.choices(categories, weights=[weights[c] for c in categories], k=1)[0]


def slugify(value: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "-" for ch in value.upper())
    return "-".join(part for part in cleaned.split("-") if part)[:42]


# =============================================================================
# DATA PREPARATION
# =============================================================================

def seed_products(session) -> List[Product]:
    products = [
        Product(
            merchant_id=MERCHANT_ID,
            name=name,
            sku=f"SKU-{slugify(name)}",
            image_url=None,
            price_cents=price,
        )
        for name, price, _ in PRODUCTS
    ]
    session.add_all(products)
    session.flush()
    return products


def seed_orders_and_returns(session, rng: random.Random, products: List[Product]) -> Dict[str, int]:
    analyzer = HeuristicAnalyzer()
    weights = {name: bias for name, _, bias in PRODUCTS}
    now = utcnow()
    counts = {"orders": 0, "order_items": 0, "returns": 0}

    for c in range(CUSTOMER_COUNT):
        customer_sub = f"seed|customer-{c + 1:03d}"
        customer_name = f"Customer {c + 1}"

        for _ in range(ORDERS_PER_CUSTOMER):
            created_at = now - timedelta(days=rng.randint(3, 60))
            order = Order(
                customer_sub=customer_sub,
                customer_name=customer_name,
                status="delivered",
                created_at=created_at,
                delivered_at=created_at + timedelta(days=2),
            )
            session.add(order)
            session.flush()
            counts["orders"] += 1

            for product in rng.sample(products, k=rng.randint(1, 2)):
                item = OrderItem(order_id=order.id, product_id=product.id, quantity=1,
                                 unit_price_cents=product.price_cents)
                session.add(item)
                session.flush()
                counts["order_items"] += 1

                if rng.random() > 0.35:
                    continue

                category = weighted_pick(rng, weights[product.name])
                reason = rng.choice(REASONS[category])
                submitted_at = min(now, order.delivered_at + timedelta(days=rng.randint(1, 20)))
                ret = Return(
                    order_item_id=item.id,
                    customer_sub=customer_sub,
                    reason_text=reason,
                    status="processed",
                    submitted_at=submitted_at,
                )
                session.add(ret)
                session.flush()

                analysis = analyzer.execute(reason)
                session.add(ReturnAnalysisRecord(
                    return_id=ret.id,
                    category=analysis.category,
                    sentiment=analysis.sentiment,
                    severity=analysis.severity,
                    confidence=analysis.confidence,
                    summary=analysis.summary,
                    raw_json=analysis.to_dict(),
                    analyzed_at=submitted_at,
                ))
                counts["returns"] += 1

    return counts


def main():
    """Main entry point."""
    logger.info("=" * 60)
    logger.info("Returns Insights - Demo Data Seed Script")
    logger.info("=" * 60)

    engine = create_db_engine(settings.database_url)
    init_schema(engine)
    session = create_session_factory(engine)()

    try:
        existing = session.scalar(select(func.count(Product.id)))
        if existing:
            logger.info(f"Database already holds {existing} products; nothing to do")
            return

        rng = random.Random(SEED)
        products = seed_products(session)
        counts = seed_orders_and_returns(session, rng, products)
        session.commit()

        logger.info(f"  products: {len(products)}")
        for name, count in counts.items():
            logger.info(f"  {name}: {count}")
        logger.info("=" * 60)
        logger.info("COMPLETE")
    except Exception as e:
        session.rollback()
        logger.error(f"Seeding failed: {e}")
        raise
    finally:
        session.close()
        engine.dispose()


if __name__ == "__main__":
    main()
