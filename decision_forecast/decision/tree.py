"""
Decision tree evaluation.

A tree is rooted at a Decision node. Every edge leaving the root is a branch
under comparison. Below the root the walk is depth-first: chance edges
multiply the path probability, every edge adds its utility adjustments, and
Outcome nodes end the path with their own utility added on top.

Each branch gets a probability-weighted expected utility, a constraint check
and, optionally, a Monte Carlo run of the branch's policy. Branches are then
compared for Pareto dominance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from decision_forecast.engine.distribution import Percentiles
from decision_forecast.engine.monte_carlo import MonteCarloConfig, SimulationResult, run_monte_carlo
from decision_forecast.metrics.collapse import compute_collapse_risk

logger = logging.getLogger(__name__)

MAX_BRANCHES = 3
MAX_REASONS = 2
MAX_NEXT_ACTIONS = 3

UtilityVector = Dict[str, float]


class BranchMappingError(LookupError):
    """A decision edge could not be mapped to a simulation config."""


class NodeKind(Enum):
    DECISION = "decision"
    CHANCE = "chance"
    OUTCOME = "outcome"


@dataclass(frozen=True)
class Constraint:
    """
    Bounds on one utility component. Either bound may be omitted.

    Attributes:
        key: Utility component name (missing components count as 0)
        min: Inclusive lower bound
        max: Inclusive upper bound
    """
    key: str
    min: Optional[float] = None
    max: Optional[float] = None

    def check(self, utility: Mapping[str, float]) -> bool:
        value = utility.get(self.key, 0.0)
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Constraint":
        return cls(key=data["key"], min=data.get("min"), max=data.get("max"))


def check_constraints(utility: Mapping[str, float], constraints: Sequence[Constraint]) -> bool:
    return all(constraint.check(utility) for constraint in constraints)


@dataclass(frozen=True)
class DecisionNode:
    id: str
    label: str
    constraints: Tuple[Constraint, ...] = ()
    kind = NodeKind.DECISION


@dataclass(frozen=True)
class ChanceNode:
    id: str
    label: str
    kind = NodeKind.CHANCE


@dataclass(frozen=True)
class OutcomeNode:
    """
    Terminal node.

    Attributes:
        utility: Utility earned on reaching this node
        constraints: Checked against the path utility of this outcome
        reasons: Why this outcome happens
        next_actions: Suggested follow-ups
    """
    id: str
    label: str
    utility: Mapping[str, float] = field(default_factory=dict)
    constraints: Tuple[Constraint, ...] = ()
    reasons: Tuple[str, ...] = ()
    next_actions: Tuple[str, ...] = ()
    kind = NodeKind.OUTCOME


TreeNode = Union[DecisionNode, ChanceNode, OutcomeNode]


@dataclass(frozen=True)
class DecisionTreeEdge:
    """
    Directed edge between two nodes.

    Attributes:
        source: Id of the node the edge leaves (wire name ``from``)
        target: Id of the node the edge enters (wire name ``to``)
        label: Branch label, used to map root edges to simulations
        probability: Chance-edge probability; missing ones are filled
        utility_adjustments: Utility added when the edge is taken
    """
    source: str
    target: str
    label: Optional[str] = None
    probability: Optional[float] = None
    utility_adjustments: Optional[Mapping[str, float]] = None

    def with_probability(self, probability: float) -> "DecisionTreeEdge":
        return DecisionTreeEdge(
            source=self.source,
            target=self.target,
            label=self.label,
            probability=probability,
            utility_adjustments=self.utility_adjustments,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"from": self.source, "to": self.target}
        if self.label is not None:
            data["label"] = self.label
        if self.probability is not None:
            data["probability"] = self.probability
        if self.utility_adjustments is not None:
            data["utilityAdjustments"] = dict(self.utility_adjustments)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionTreeEdge":
        return cls(
            source=data["from"],
            target=data["to"],
            label=data.get("label"),
            probability=data.get("probability"),
            utility_adjustments=data.get("utilityAdjustments"),
        )


def _node_from_dict(data: Dict[str, Any]) -> TreeNode:
    kind = NodeKind(data["type"])
    constraints = tuple(Constraint.from_dict(c) for c in data.get("constraints", ()))
    if kind is NodeKind.DECISION:
        return DecisionNode(id=data["id"], label=data.get("label", ""), constraints=constraints)
    if kind is NodeKind.CHANCE:
        return ChanceNode(id=data["id"], label=data.get("label", ""))
    return OutcomeNode(
        id=data["id"],
        label=data.get("label", ""),
        utility=dict(data.get("utility", {})),
        constraints=constraints,
        reasons=tuple(data.get("reasons", ())),
        next_actions=tuple(data.get("nextActions", ())),
    )


@dataclass(frozen=True)
class DecisionTree:
    """
    A tree of decision, chance and outcome nodes.

    Attributes:
        root_id: Id of the root Decision node
        nodes: All nodes
        edges: All edges, in the order their branches should be listed
    """
    root_id: str
    nodes: Tuple[TreeNode, ...]
    edges: Tuple[DecisionTreeEdge, ...]
    _index: Dict[str, TreeNode] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))
        index: Dict[str, TreeNode] = {}
        for node in self.nodes:
            index.setdefault(node.id, node)
        object.__setattr__(self, "_index", index)

    def node(self, node_id: str) -> Optional[TreeNode]:
        return self._index.get(node_id)

    @property
    def root(self) -> Optional[TreeNode]:
        return self.node(self.root_id)

    def outgoing(self, node_id: str) -> List[DecisionTreeEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionTree":
        return cls(
            root_id=data["rootId"],
            nodes=tuple(_node_from_dict(node) for node in data["nodes"]),
            edges=tuple(DecisionTreeEdge.from_dict(edge) for edge in data["edges"]),
        )


@dataclass(frozen=True)
class EvaluatedOutcome:
    """A reachable outcome with its path probability and path utility."""
    node_id: str
    label: str
    probability: float
    utility: Mapping[str, float]
    reasons: Tuple[str, ...] = ()
    next_actions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "label": self.label,
            "probability": self.probability,
            "utility": dict(self.utility),
            "reasons": list(self.reasons),
            "nextActions": list(self.next_actions),
        }


@dataclass(frozen=True)
class BranchEvaluation:
    """
    Evaluation of one root edge.

    Attributes:
        decision_edge: The root edge
        expected_utility: Probability-weighted sum of outcome utilities
        outcomes: Every reachable outcome under the branch
        constraints_satisfied: Root and outcome constraints all pass
        simulation: Monte Carlo result for the branch, when requested
        percentiles: Score percentiles of that simulation
        collapse_risk: Collapse risk of that simulation
    """
    decision_edge: DecisionTreeEdge
    expected_utility: Mapping[str, float]
    outcomes: Tuple[EvaluatedOutcome, ...]
    constraints_satisfied: bool
    simulation: Optional[SimulationResult] = None
    percentiles: Optional[Percentiles] = None
    collapse_risk: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decisionEdge": self.decision_edge.to_dict(),
            "expectedUtility": dict(self.expected_utility),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "constraintsSatisfied": self.constraints_satisfied,
            "percentiles": None if self.percentiles is None else self.percentiles.to_dict(),
            "collapseRisk": self.collapse_risk,
        }


@dataclass(frozen=True)
class DecisionEvaluationResult:
    branches: Tuple[BranchEvaluation, ...] = ()
    dominant_branch_indexes: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "branches": [branch.to_dict() for branch in self.branches],
            "dominantBranchIndexes": list(self.dominant_branch_indexes),
        }


def add_utility(base: Mapping[str, float], delta: Optional[Mapping[str, float]]) -> UtilityVector:
    result = dict(base)
    if delta:
        for key, value in delta.items():
            result[key] = result.get(key, 0.0) + (value or 0.0)
    return result


def scale_utility(utility: Mapping[str, float], factor: float) -> UtilityVector:
    return {key: value * factor for key, value in utility.items()}


def expected_utility(outcomes: Sequence[EvaluatedOutcome]) -> UtilityVector:
    total: UtilityVector = {}
    for outcome in outcomes:
        total = add_utility(total, scale_utility(outcome.utility, outcome.probability))
    return total


def normalize_chance_edges(edges: Sequence[DecisionTreeEdge]) -> List[DecisionTreeEdge]:
    """
    Fill missing chance probabilities evenly from the remainder.

    When the explicit probabilities already sum to 1 or more the edges are
    returned unchanged, so the total can exceed 1 and edges without a
    probability stay at 0.
    """
    if not edges:
        return []
    explicit_sum = sum(edge.probability or 0.0 for edge in edges)
    missing = [edge for edge in edges if edge.probability is None]
    if not missing or explicit_sum >= 1:
        return list(edges)
    fill = (1 - explicit_sum) / len(missing)
    return [edge.with_probability(fill) if edge.probability is None else edge for edge in edges]


def evaluate_from_node(
    tree: DecisionTree,
    node_id: str,
    utility_carry: Mapping[str, float],
    probability_carry: float,
) -> List[EvaluatedOutcome]:
    """Collect every outcome reachable from ``node_id``. Unknown ids yield nothing."""
    node = tree.node(node_id)
    if node is None:
        return []

    if node.kind is NodeKind.OUTCOME:
        return [
            EvaluatedOutcome(
                node_id=node.id,
                label=node.label,
                probability=probability_carry,
                utility=add_utility(utility_carry, node.utility),
                reasons=tuple(node.reasons[:MAX_REASONS]),
                next_actions=tuple(node.next_actions[:MAX_NEXT_ACTIONS]),
            )
        ]

    outgoing = tree.outgoing(node.id)
    is_chance = node.kind is NodeKind.CHANCE
    if is_chance:
        outgoing = normalize_chance_edges(outgoing)

    outcomes: List[EvaluatedOutcome] = []
    for edge in outgoing:
        edge_probability = (edge.probability or 0.0) if is_chance else 1.0
        outcomes.extend(
            evaluate_from_node(
                tree,
                edge.target,
                add_utility(utility_carry, edge.utility_adjustments),
                probability_carry * edge_probability,
            )
        )
    return outcomes


def dominates(left: Mapping[str, float], right: Mapping[str, float]) -> bool:
    """True if ``left`` is nowhere worse than ``right`` and somewhere strictly better."""
    strictly_better = False
    for key in set(left) | set(right):
        l_value = left.get(key, 0.0)
        r_value = right.get(key, 0.0)
        if l_value < r_value:
            return False
        if l_value > r_value:
            strictly_better = True
    return strictly_better


def dominant_indexes(utilities: Sequence[Mapping[str, float]]) -> Tuple[int, ...]:
    """Indexes of the utilities that dominate every other one."""
    return tuple(
        index
        for index, utility in enumerate(utilities)
        if all(
            other_index == index or dominates(utility, other)
            for other_index, other in enumerate(utilities)
        )
    )


EdgeToSimConfig = Callable[[DecisionTreeEdge], Optional[MonteCarloConfig]]


def _outcome_constraints_pass(tree: DecisionTree, outcomes: Sequence[EvaluatedOutcome]) -> bool:
    for outcome in outcomes:
        node = tree.node(outcome.node_id)
        if node is not None and node.kind is NodeKind.OUTCOME:
            if not check_constraints(outcome.utility, node.constraints):
                return False
    return True


def evaluate_branch(
    tree: DecisionTree,
    root: DecisionNode,
    edge: DecisionTreeEdge,
    edge_to_sim_config: Optional[EdgeToSimConfig] = None,
) -> BranchEvaluation:
    outcomes = evaluate_from_node(tree, edge.target, add_utility({}, edge.utility_adjustments), 1.0)
    expected = expected_utility(outcomes)
    satisfied = check_constraints(expected, root.constraints) and _outcome_constraints_pass(tree, outcomes)

    simulation = None
    collapse_risk = None
    if edge_to_sim_config is not None:
        config = edge_to_sim_config(edge)
        if config is None:
            raise BranchMappingError(f"No simulation config for decision edge {edge.label or edge.target!r}")
        simulation = run_monte_carlo(config)
        collapse_risk = compute_collapse_risk(simulation)

    return BranchEvaluation(
        decision_edge=edge,
        expected_utility=expected,
        outcomes=tuple(outcomes),
        constraints_satisfied=satisfied,
        simulation=simulation,
        percentiles=None if simulation is None else simulation.score_percentiles,
        collapse_risk=collapse_risk,
    )


def evaluate_decision_tree(
    tree: DecisionTree,
    edge_to_sim_config: Optional[EdgeToSimConfig] = None,
) -> DecisionEvaluationResult:
    """
    Evaluate the branches leaving the root of a decision tree.

    Args:
        tree: Tree whose root must be a Decision node
        edge_to_sim_config: Optional mapping from a root edge to the Monte
            Carlo config simulating that branch. Errors it raises propagate
            and abandon the whole evaluation; returning None raises
            BranchMappingError.

    Returns:
        DecisionEvaluationResult with at most three branches, in edge order
    """
    root = tree.root
    if root is None or root.kind is not NodeKind.DECISION:
        logger.warning("Decision tree root %r is missing or not a decision node", tree.root_id)
        return DecisionEvaluationResult()

    decision_edges = tree.outgoing(root.id)[:MAX_BRANCHES]
    branches = tuple(
        evaluate_branch(tree, root, edge, edge_to_sim_config)
        for edge in decision_edges
    )
    return DecisionEvaluationResult(
        branches=branches,
        dominant_branch_indexes=dominant_indexes([branch.expected_utility for branch in branches]),
    )
