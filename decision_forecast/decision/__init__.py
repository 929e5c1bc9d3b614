"""Decision module - Decision tree evaluation and branch comparison."""

from decision_forecast.decision.tree import (
    BranchMappingError,
    DecisionEvaluationResult,
    DecisionTree,
    dominates,
    evaluate_decision_tree,
)
from decision_forecast.decision.builder import BranchSpec, DecisionRequest, build_tree, evaluate_branches

__all__ = [
    "BranchMappingError",
    "DecisionEvaluationResult",
    "DecisionTree",
    "dominates",
    "evaluate_decision_tree",
    "BranchSpec",
    "DecisionRequest",
    "build_tree",
    "evaluate_branches",
]
