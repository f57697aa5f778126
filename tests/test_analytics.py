"""Tests for the analytics service, insight engine and repository queries."""
import pytest

from core.data import QueryOptions
from use_cases.returns.analytics import ReturnsAnalyticsService, generate_insight_in_background
from use_cases.returns.insight_engine import InsightEngine, fallback_impact_note, format_usd
from use_cases.returns.models import Return, ReturnAnalysisRecord
from use_cases.returns.prompts import (
    PATTERN_DETECTION_PROMPT,
    RECOMMENDATIONS_PROMPT,
    RETURN_ANALYSIS_PROMPT,
)
from shared.database import create_db_engine, create_session_factory, init_schema
from tests.conftest import SIZING_REASONS, FakeClassifier, add_analyzed_returns


def service_for(repository, classifier=None, threshold=5):
    return ReturnsAnalyticsService(repository, InsightEngine(classifier or FakeClassifier()), threshold)


class TestProcessReturnAnalysis:
    async def test_fallback_analysis_is_stored(self, session, repository, catalog):
        created = repository.create_return(catalog["trail_item_id"], "demo|customer-demo", "Way too narrow")

        analysis = await service_for(repository).process_return_analysis(created["id"], "Way too narrow")

        assert analysis["category"] == "sizing"
        record = session.get(Return, created["id"])
        assert record.status == "processed"
        assert record.analysis.category == "sizing"
        assert record.analysis.raw_json == analysis

    async def test_classifier_result_is_reconciled(self, session, repository, catalog):
        classifier = FakeClassifier({RETURN_ANALYSIS_PROMPT: {
            "category": "Defective", "severity": "catastrophic", "confidence": 0.95, "summary": "Broken sole.",
        }})
        created = repository.create_return(catalog["trail_item_id"], "demo|customer-demo", "Sole broke")

        analysis = await service_for(repository, classifier).process_return_analysis(
            created["id"], "Sole broke", product={"id": catalog["trail_id"], "name": "Trail Runner Shoe"}
        )

        assert analysis["category"] == "quality"
        assert analysis["severity"] == "low"
        assert analysis["confidence"] == 0.95
        assert classifier.calls[0]["payload"]["product"]["name"] == "Trail Runner Shoe"

    async def test_reanalysis_upserts(self, session, repository, catalog):
        created = repository.create_return(catalog["trail_item_id"], "demo|customer-demo", "Too small")
        service = service_for(repository)
        await service.process_return_analysis(created["id"], "Too small")
        await service.process_return_analysis(created["id"], "Too small", category_hint="quality")

        records = session.query(ReturnAnalysisRecord).filter_by(return_id=created["id"]).all()
        assert len(records) == 1
        assert records[0].category == "quality"


class TestGenerateProductInsight:
    async def test_unknown_product(self, repository, catalog):
        result = await service_for(repository).generate_product_insight(9999, 1)
        assert result == {"skipped": True, "reason": "product_not_found"}

    async def test_other_merchants_product_is_unknown(self, repository, catalog):
        result = await service_for(repository).generate_product_insight(catalog["foreign_id"], 1)
        assert result["reason"] == "product_not_found"

    async def test_insufficient_returns(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS[:3])

        result = await service_for(repository).generate_product_insight(catalog["trail_id"], 1)

        assert result == {
            "skipped": True,
            "reason": "insufficient_returns",
            "returnsAnalyzed": 3,
            "threshold": 5,
        }

    async def test_explicit_threshold_overrides_default(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS[:3])
        result = await service_for(repository).generate_product_insight(catalog["trail_id"], 1, threshold=3)
        assert result["skipped"] is False

    async def test_insight_from_fallbacks(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS)

        result = await service_for(repository).generate_product_insight(catalog["trail_id"], 1)

        assert result["skipped"] is False
        assert result["title"] == "100% of returns linked to sizing issues"
        assert result["priority"] == "Critical"
        assert result["returnsAnalyzed"] == 5
        # 5 x 12000 x 0.35
        assert result["estimatedSavingsCents"] == 21000
        assert len(result["recommendations"]) == 3
        assert result["sourcePattern"]["topCategory"] == "sizing"

        latest = repository.get_product_detail(catalog["trail_id"], 1)["latestInsight"]
        assert latest["id"] == result["insightId"]
        assert latest["recommendations"] == result["recommendations"]

    async def test_savings_come_from_recommendation_pack(self, repository, catalog):
        classifier = FakeClassifier({
            PATTERN_DETECTION_PROMPT: {"title": "Toe box runs narrow", "priority": "High"},
            RECOMMENDATIONS_PROMPT: {
                "recommendations": [{"action": "Add wide-fit variant", "priority": "High",
                                     "estimatedImpactCents": 70000}],
                "estimatedSavingsCents": 180000,
                "confidence": 0.91,
            },
        })
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS)

        result = await service_for(repository, classifier).generate_product_insight(catalog["trail_id"], 1)

        assert result["title"] == "Toe box runs narrow"
        assert result["priority"] == "High"
        assert result["estimatedSavingsCents"] == 180000
        assert result["recommendations"] == [
            {"action": "Add wide-fit variant", "priority": "High", "estimatedImpactCents": 70000}
        ]

    async def test_latest_insight_is_most_recent(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS)
        service = service_for(repository)
        await service.generate_product_insight(catalog["trail_id"], 1)
        second = await service.generate_product_insight(catalog["trail_id"], 1)

        latest = repository.get_product_detail(catalog["trail_id"], 1)["latestInsight"]
        assert latest["id"] == second["insightId"]


class TestBackgroundInsight:
    @pytest.fixture
    def session_factory(self):
        engine = create_db_engine("sqlite:///:memory:")
        init_schema(engine)
        yield create_session_factory(engine)
        engine.dispose()

    async def test_failures_are_logged_not_raised(self, session_factory, caplog):
        class BrokenEngine(InsightEngine):
            async def detect_patterns(self, product, returns):
                raise RuntimeError("boom")

        from tests.conftest import seed_catalog
        from use_cases.returns.repository import ReturnsRepository

        session = session_factory()
        ids = seed_catalog(session)
        add_analyzed_returns(ReturnsRepository(session), ids["trail_item_id"], SIZING_REASONS)
        session.close()

        await generate_insight_in_background(
            session_factory, BrokenEngine(FakeClassifier()), ids["trail_id"], 1, None, 5
        )

        assert "Background insight generation failed" in caplog.text


class TestImpactNote:
    def test_format_usd(self):
        assert format_usd(None) == "$0"
        assert format_usd(0) == "$0"
        assert format_usd(60000) == "$600.00"
        assert format_usd(123456789) == "$1,234,567.89"

    def test_fallback_note(self):
        assert fallback_impact_note(52500) == (
            "Completed action is expected to reduce returns by 6% and save $525.00 next quarter."
        )

    async def test_engine_uses_fallback_without_classifier_output(self):
        note = await InsightEngine(FakeClassifier()).generate_impact_note(
            {"id": 1, "name": "Shoe"}, {"description": "Update size chart", "estimated_impact_cents": None}
        )
        assert note == "Completed action is expected to reduce returns by 6% and save $0 next quarter."


class TestRepositoryQueries:
    def test_dashboard_metrics(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS[:2])
        add_analyzed_returns(repository, catalog["bag_item_id"], ["The zipper broke, clear defect"])

        dashboard = repository.get_merchant_dashboard(1)

        assert dashboard["metrics"]["totalReturns"] == 3
        # 3 returns over 2 merchant order items
        assert dashboard["metrics"]["returnRate"] == 1.5
        assert dashboard["metrics"]["costOfReturnsCents"] == 12000 * 2 + 4000
        assert len(dashboard["trend"]) == 30
        assert dashboard["trend"][-1]["returns"] == 3
        assert dashboard["topIssues"][0] == {"category": "sizing", "count": 2}

    def test_products_sorting_and_breakdown(self, repository, catalog):
        add_analyzed_returns(repository, catalog["bag_item_id"], ["Broken strap, defect"] * 2)
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS[:1])

        by_returns = repository.list_merchant_products(1, "mostReturns")
        by_cost = repository.list_merchant_products(1, "costImpact")

        assert [p["product_id"] for p in by_returns] == [catalog["bag_id"], catalog["trail_id"]]
        assert [p["product_id"] for p in by_cost] == [catalog["trail_id"], catalog["bag_id"]]
        bag = by_returns[0]
        assert bag["category_breakdown"] == [{"category": "quality", "count": 2}]
        assert bag["return_rate"] == 2.0
        assert all(p["product_id"] != catalog["foreign_id"] for p in by_returns)

    def test_newest_issues_puts_quiet_products_last(self, repository, catalog):
        add_analyzed_returns(repository, catalog["trail_item_id"], SIZING_REASONS[:1])
        rows = repository.list_merchant_products(1, "newestIssues")
        assert rows[0]["product_id"] == catalog["trail_id"]
        assert rows[-1]["latest_return_at"] is None

    def test_action_items_order_and_filters(self, repository, catalog):
        insight = repository.insert_insight(catalog["trail_id"], {
            "title": "t", "description": "d", "priority": "High", "confidence": 0.8,
            "estimatedSavingsCents": 0, "returnsAnalyzed": 5, "recommendations": [], "sourcePattern": {},
        })
        for description, priority in [("a", "Low"), ("b", "Critical"), ("c", "Medium"), ("d", "Critical")]:
            repository.insert_action_item(insight["id"], catalog["trail_id"], description, priority)

        rows = repository.list_action_items(1)
        assert [r["priority"] for r in rows] == ["Critical", "Critical", "Medium", "Low"]
        # newest first within a tier
        assert [r["description"] for r in rows[:2]] == ["d", "b"]

        critical = repository.list_action_items(1, QueryOptions(filters={"priority": "Critical", "status": ""}))
        assert {r["description"] for r in critical} == {"b", "d"}
        assert repository.list_action_items(2) == []

    def test_bulk_insert_is_all_or_nothing(self, repository, catalog):
        insight = repository.insert_insight(catalog["trail_id"], {
            "title": "t", "description": "d", "priority": "High", "confidence": 0.8,
            "estimatedSavingsCents": 0, "returnsAnalyzed": 5, "recommendations": [], "sourcePattern": {},
        })
        with pytest.raises(KeyError):
            repository.insert_action_items(insight["id"], catalog["trail_id"], [
                {"action": "ok", "priority": "High"},
                {"priority": "High"},
            ])
        assert repository.list_action_items(1) == []

    def test_update_is_merchant_scoped(self, repository, catalog):
        item = repository.insert_action_item(None, catalog["trail_id"], "Update chart", "High", 60000)

        assert repository.update_action_item(item["id"], 2, {"status": "In Progress"}) is None
        assert repository.update_action_item(item["id"], 1, {}) is None

        updated = repository.update_action_item(item["id"], 1, {"status": "In Progress", "assigned_to": "sam"})
        assert updated["status"] == "In Progress"
        assert updated["assigned_to"] == "sam"
        assert updated["product_name"] == "Trail Runner Shoe"
        assert updated["insight_title"] is None

        cleared = repository.update_action_item(item["id"], 1, {"assigned_to": ""})
        assert cleared["assigned_to"] is None
        assert cleared["status"] == "In Progress"
