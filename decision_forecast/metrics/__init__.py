"""Metrics module - Collapse risk and lever sensitivity."""

from decision_forecast.metrics.collapse import CollapseAnalyzer, CollapseMetrics, compute_collapse_risk
from decision_forecast.metrics.sensitivity import LeverRanker, LeverSuggestion, rank_levers

__all__ = [
    "CollapseAnalyzer",
    "CollapseMetrics",
    "compute_collapse_risk",
    "LeverRanker",
    "LeverSuggestion",
    "rank_levers",
]
