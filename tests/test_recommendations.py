"""Tests for recommendation synthesis."""
import pytest

from use_cases.returns.domain import (
    RecommendationSynthesizer,
    build_fallback_insight,
    default_recommendations_from_pattern,
    synthesize_pattern_data,
)
from use_cases.returns.domain.recommendations import GENERIC_ACTIONS, QUALITY_ACTIONS, SIZING_ACTIONS


def insight_for(category, count=4, price=12000):
    rows = [{"category": category, "unit_price_cents": price} for _ in range(count)]
    return build_fallback_insight(synthesize_pattern_data(rows))


class TestTemplateBanks:
    def test_sizing_bank(self):
        items = default_recommendations_from_pattern(insight_for("sizing"))
        assert [i.action for i in items] == SIZING_ACTIONS

    def test_quality_bank(self):
        items = default_recommendations_from_pattern(insight_for("quality"))
        assert [i.action for i in items] == QUALITY_ACTIONS

    @pytest.mark.parametrize("category", ["not_as_described", "shipping_damage", "changed_mind", "other"])
    def test_generic_bank(self, category):
        items = default_recommendations_from_pattern(insight_for(category))
        assert [i.action for i in items] == GENERIC_ACTIONS

    def test_exactly_three_items(self):
        assert len(RecommendationSynthesizer().execute("sizing", "High", 90000)) == 3


class TestImpactSchedule:
    def test_floor_applies_to_small_savings(self):
        items = RecommendationSynthesizer().execute("sizing", "High", 0)
        assert [i.estimated_impact_cents for i in items] == [60000, 52500, 45000]

    def test_scales_with_savings(self):
        items = RecommendationSynthesizer().execute("quality", "Critical", 300000)
        assert [i.estimated_impact_cents for i in items] == [120000, 105000, 90000]

    @pytest.mark.parametrize("savings", [1, 16800, 150001, 999999, 12345678])
    def test_impacts_strictly_decrease(self, savings):
        impacts = [i.estimated_impact_cents for i in RecommendationSynthesizer().execute("other", None, savings)]
        assert impacts[0] > impacts[1] > impacts[2]
        assert all(impact >= 15000 for impact in impacts)


class TestPriority:
    def test_items_carry_insight_priority(self):
        items = default_recommendations_from_pattern(insight_for("sizing"))
        assert {i.priority for i in items} == {"Critical"}

    def test_missing_priority_defaults_to_medium(self):
        items = RecommendationSynthesizer().execute("sizing", None, 0)
        assert {i.priority for i in items} == {"Medium"}

    def test_free_form_category_is_normalized(self):
        items = RecommendationSynthesizer().execute("Fit issue", "Low", 0)
        assert [i.action for i in items] == SIZING_ACTIONS

    def test_to_dict(self):
        item = RecommendationSynthesizer().execute("sizing", "High", 0)[0]
        assert item.to_dict() == {
            "action": SIZING_ACTIONS[0],
            "priority": "High",
            "estimatedImpactCents": 60000,
        }
