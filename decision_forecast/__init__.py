"""
Decision Forecast

Stochastic forecasts of a trajectory under uncertainty, and comparison of
named decision branches by expected outcome.

A seeded step model is run across many worlds by a Monte Carlo runner. The
aggregate feeds a lever sensitivity ranker and a decision tree evaluator
that reports Pareto-dominant branches.
"""

from decision_forecast.engine import (
    Action,
    MonteCarloConfig,
    ScenarioConfig,
    SimulationResult,
    StateVector,
    Strategy,
    run_monte_carlo,
    run_monte_carlo_async,
)
from decision_forecast.policies.base import ActionPolicy, ConstantPolicy
from decision_forecast.swarm.executor import SwarmExecutor
from decision_forecast.metrics.collapse import CollapseAnalyzer, compute_collapse_risk
from decision_forecast.metrics.sensitivity import rank_levers
from decision_forecast.decision.tree import evaluate_decision_tree

__version__ = "0.1.0"

__all__ = [
    # Core types
    "Action",
    "StateVector",
    "Strategy",
    "ScenarioConfig",
    "MonteCarloConfig",
    "SimulationResult",
    # Running
    "run_monte_carlo",
    "run_monte_carlo_async",
    "SwarmExecutor",
    # Policy interface
    "ActionPolicy",
    "ConstantPolicy",
    # Metrics
    "CollapseAnalyzer",
    "compute_collapse_risk",
    "rank_levers",
    # Decisions
    "evaluate_decision_tree",
]
