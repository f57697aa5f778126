"""
Returns Insight Domain Layer.

Contains pure business logic for the returns insight engine: the heuristics
used when the external classifier is unavailable, and the reconcilers that
validate its output. No database access or I/O.
"""

from .categorization import (
    HeuristicAnalyzer,
    ReturnAnalysis,
    detect_category_by_keyword,
    heuristic_return_analysis,
    normalize_category,
)
from .patterns import (
    PatternInsight,
    PatternSummary,
    PatternSynthesizer,
    build_fallback_insight,
    synthesize_pattern_data,
)
from .recommendations import (
    RecommendationItem,
    RecommendationPack,
    RecommendationSynthesizer,
    default_recommendations_from_pattern,
)
from .reconciliation import (
    parse_impact_note,
    parse_pattern_insight,
    parse_recommendations,
    parse_return_analysis,
)
from .policies import InsightTuning, PriorityTier

__all__ = [
    "HeuristicAnalyzer",
    "ReturnAnalysis",
    "detect_category_by_keyword",
    "heuristic_return_analysis",
    "normalize_category",
    "PatternInsight",
    "PatternSummary",
    "PatternSynthesizer",
    "build_fallback_insight",
    "synthesize_pattern_data",
    "RecommendationItem",
    "RecommendationPack",
    "RecommendationSynthesizer",
    "default_recommendations_from_pattern",
    "parse_impact_note",
    "parse_pattern_insight",
    "parse_recommendations",
    "parse_return_analysis",
    "InsightTuning",
    "PriorityTier",
]
