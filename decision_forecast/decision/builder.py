"""
Decision requests.

Turns a flat request (shared simulation settings plus up to three branch
stances) into a decision tree, evaluates it with one Monte Carlo run per
branch, and flattens the evaluation into per-branch reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from decision_forecast.decision.tree import (
    MAX_BRANCHES,
    BranchEvaluation,
    BranchMappingError,
    ChanceNode,
    Constraint,
    DecisionEvaluationResult,
    DecisionNode,
    DecisionTree,
    DecisionTreeEdge,
    OutcomeNode,
    evaluate_decision_tree,
)
from decision_forecast.engine.control import CancelLike
from decision_forecast.engine.monte_carlo import DEFAULT_RUNS, MonteCarloConfig
from decision_forecast.engine.scenario import build_policy, build_scenario_params
from decision_forecast.engine.state import StateVector, Strategy

logger = logging.getLogger(__name__)

ROOT_ID = "root-decision"
ROOT_CONSTRAINTS = (
    Constraint("expectedScore", min=-50),
    Constraint("collapseRisk", max=0.6),
)
UP_UTILITY = {"narrativeScore": 14.0, "expectedScore": 8.0}
DOWN_UTILITY = {"narrativeScore": -6.0, "expectedScore": -10.0}


@dataclass(frozen=True)
class BranchSpec:
    """
    One top-level choice in a decision request.

    Attributes:
        id: Caller's branch id
        label: Display label, also the key used to map the tree edge back
            to this branch
        strategy: Stance simulated for this branch
        risk_appetite: Courage level, roughly 0-1
        uncertainty: Fog level, roughly 0-1
        black_swan_enabled: Whether black swans can fire
        reasons: Why the branch might play out
        next_actions: Suggested follow-ups
    """
    id: str
    label: str
    strategy: Strategy = Strategy.BALANCE
    risk_appetite: float = 0.5
    uncertainty: float = 0.5
    black_swan_enabled: bool = False
    reasons: Tuple[str, ...] = ()
    next_actions: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        object.__setattr__(self, "reasons", tuple(self.reasons))
        object.__setattr__(self, "next_actions", tuple(self.next_actions))

    @property
    def chance_id(self) -> str:
        return f"chance-{self.id}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BranchSpec":
        return cls(
            id=str(data["id"]),
            label=str(data["label"]),
            strategy=Strategy.parse(data.get("strategy", Strategy.BALANCE.value)),
            risk_appetite=float(data.get("riskAppetite", 0.5)),
            uncertainty=float(data.get("uncertainty", 0.5)),
            black_swan_enabled=bool(data.get("blackSwanEnabled", False)),
            reasons=tuple(data.get("reasons", ())),
            next_actions=tuple(data.get("nextActions", ())),
        )


@dataclass(frozen=True)
class DecisionRequest:
    """Shared simulation settings plus the branches to compare."""
    horizon_months: float
    dt_days: float
    seed: int
    base_state: StateVector
    branches: Tuple[BranchSpec, ...] = ()
    runs: int = DEFAULT_RUNS

    def __post_init__(self):
        if self.dt_days == 0:
            raise ValueError("dt_days must be non-zero")
        object.__setattr__(self, "branches", tuple(self.branches))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionRequest":
        return cls(
            horizon_months=float(data["horizonMonths"]),
            dt_days=float(data["dtDays"]),
            seed=int(data["seed"]),
            base_state=StateVector.from_dict(data["baseState"]),
            branches=tuple(BranchSpec.from_dict(b) for b in data.get("branches", ())),
            runs=int(data.get("runs", DEFAULT_RUNS)),
        )


def _branch_nodes(branch: BranchSpec) -> List[Any]:
    return [
        ChanceNode(id=branch.chance_id, label=branch.label),
        OutcomeNode(
            id=f"outcome-up-{branch.id}",
            label=f"{branch.label} / up",
            utility=dict(UP_UTILITY),
            reasons=branch.reasons,
            next_actions=branch.next_actions,
        ),
        OutcomeNode(
            id=f"outcome-down-{branch.id}",
            label=f"{branch.label} / down",
            utility=dict(DOWN_UTILITY),
            reasons=branch.reasons,
            next_actions=branch.next_actions,
        ),
    ]


def _branch_edges(branch: BranchSpec) -> List[DecisionTreeEdge]:
    return [
        DecisionTreeEdge(
            source=ROOT_ID,
            target=branch.chance_id,
            label=branch.label,
            utility_adjustments={
                "resilience": (1 - branch.uncertainty) * 8,
                "optionality": (1 - branch.risk_appetite) * 6,
            },
        ),
        DecisionTreeEdge(
            source=branch.chance_id,
            target=f"outcome-up-{branch.id}",
            probability=0.62 - branch.uncertainty * 0.2,
        ),
        DecisionTreeEdge(
            source=branch.chance_id,
            target=f"outcome-down-{branch.id}",
            probability=0.38 + branch.uncertainty * 0.2,
        ),
    ]


def build_tree(request: DecisionRequest) -> DecisionTree:
    """Build a root decision with one up/down chance node per branch."""
    nodes: List[Any] = [DecisionNode(id=ROOT_ID, label="Decision root", constraints=ROOT_CONSTRAINTS)]
    edges: List[DecisionTreeEdge] = []
    for branch in request.branches[:MAX_BRANCHES]:
        nodes.extend(_branch_nodes(branch))
        edges.extend(_branch_edges(branch))
    return DecisionTree(root_id=ROOT_ID, nodes=tuple(nodes), edges=tuple(edges))


class BranchSimulationMapper:
    """
    Maps root edges back to branch simulation configs by edge label.

    Each branch is seeded with ``request.seed`` offset by the length of the
    edge's target id, so branches with different ids draw different worlds.
    """

    def __init__(self, request: DecisionRequest, cancel_token: Optional[CancelLike] = None):
        self.request = request
        self.cancel_token = cancel_token
        self._by_label = {branch.label: branch for branch in request.branches}

    def __call__(self, edge: DecisionTreeEdge) -> MonteCarloConfig:
        branch = self._by_label.get(edge.label or "")
        if branch is None:
            raise BranchMappingError(
                f"Unknown branch {edge.label!r} while mapping decision tree to simulation"
            )
        request = self.request
        return MonteCarloConfig(
            horizon_months=request.horizon_months,
            dt_days=request.dt_days,
            base_state=request.base_state,
            action_policy=build_policy(branch.strategy, branch.risk_appetite, branch.uncertainty),
            scenario_params=build_scenario_params(
                request.seed + len(edge.target),
                branch.uncertainty,
                branch.risk_appetite,
                branch.black_swan_enabled,
            ),
            runs=request.runs,
            cancel_token=self.cancel_token,
        )


@dataclass(frozen=True)
class BranchReport:
    """Flattened per-branch result handed back to a host."""
    id: str
    label: str
    expected_utility: Dict[str, float]
    p10: float
    p50: float
    p90: float
    collapse_risk: float
    reasons: Tuple[str, ...] = ()
    next_actions: Tuple[str, ...] = ()
    constraints_satisfied: bool = True
    dominant: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "expectedUtility": dict(self.expected_utility),
            "percentiles": {"p10": self.p10, "p50": self.p50, "p90": self.p90},
            "collapseRisk": self.collapse_risk,
            "reasons": list(self.reasons),
            "nextActions": list(self.next_actions),
            "constraintsSatisfied": self.constraints_satisfied,
            "dominant": self.dominant,
        }


def _first_nonempty(branch: BranchEvaluation, attribute: str) -> Tuple[str, ...]:
    for outcome in branch.outcomes:
        values = getattr(outcome, attribute)
        if values:
            return tuple(values)
    return ()


def build_reports(
    request: DecisionRequest,
    evaluation: DecisionEvaluationResult,
) -> List[BranchReport]:
    reports = []
    for index, branch in enumerate(evaluation.branches):
        percentiles = branch.percentiles
        reports.append(
            BranchReport(
                id=request.branches[index].id if index < len(request.branches) else f"branch-{index}",
                label=branch.decision_edge.label or f"Branch {index + 1}",
                expected_utility=dict(branch.expected_utility),
                p10=0.0 if percentiles is None else percentiles.p10,
                p50=0.0 if percentiles is None else percentiles.p50,
                p90=0.0 if percentiles is None else percentiles.p90,
                collapse_risk=branch.collapse_risk or 0.0,
                reasons=_first_nonempty(branch, "reasons"),
                next_actions=_first_nonempty(branch, "next_actions"),
                constraints_satisfied=branch.constraints_satisfied,
                dominant=index in evaluation.dominant_branch_indexes,
            )
        )
    return reports


def evaluate_branches(
    request: DecisionRequest,
    cancel_token: Optional[CancelLike] = None,
) -> List[BranchReport]:
    """
    Evaluate a decision request end to end.

    Args:
        request: Shared settings and branches
        cancel_token: Forwarded to every branch simulation

    Returns:
        One BranchReport per evaluated branch, in request order

    Raises:
        BranchMappingError: If a tree edge has no matching branch
    """
    tree = build_tree(request)
    evaluation = evaluate_decision_tree(tree, BranchSimulationMapper(request, cancel_token))
    logger.debug(
        "Evaluated %d branches, dominant=%s",
        len(evaluation.branches), list(evaluation.dominant_branch_indexes),
    )
    return build_reports(request, evaluation)
