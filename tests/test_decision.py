"""
Tests for decision tree evaluation and decision requests.
"""

import pytest
from decision_forecast.decision.builder import (
    ROOT_ID,
    BranchSimulationMapper,
    BranchSpec,
    DecisionRequest,
    build_tree,
    evaluate_branches,
)
from decision_forecast.decision.tree import (
    BranchMappingError,
    ChanceNode,
    Constraint,
    DecisionNode,
    DecisionTree,
    DecisionTreeEdge,
    OutcomeNode,
    check_constraints,
    dominant_indexes,
    dominates,
    evaluate_decision_tree,
    evaluate_from_node,
    normalize_chance_edges,
)
from decision_forecast.engine.monte_carlo import MonteCarloConfig
from decision_forecast.engine.state import Action, ScenarioParams, StateVector, Strategy
from decision_forecast.policies.base import ConstantPolicy


def two_outcome_tree():
    return DecisionTree(
        root_id="root",
        nodes=(
            DecisionNode(id="root", label="Choose", constraints=(Constraint("value", min=0),)),
            OutcomeNode(id="a", label="A", utility={"value": 5, "speed": 2}),
            OutcomeNode(id="b", label="B", utility={"value": 3, "speed": 1}),
        ),
        edges=(
            DecisionTreeEdge(source="root", target="a", label="A"),
            DecisionTreeEdge(source="root", target="b", label="B"),
        ),
    )


def sim_config_for(edge):
    return MonteCarloConfig(
        horizon_months=6,
        dt_days=5,
        base_state=StateVector(100, 35, 22, 16),
        action_policy=ConstantPolicy(
            Action(
                strategy=Strategy.BALANCE if edge.label == "A" else Strategy.DEFENSE,
                risk_bias=0.5,
                uncertainty_bias=0.4,
            )
        ),
        scenario_params=ScenarioParams(seed=77 if edge.label == "A" else 78, uncertainty=0.4, risk_appetite=0.5),
        runs=120,
    )


def make_request(**overrides):
    params = dict(
        runs=120,
        horizon_months=6,
        dt_days=5,
        seed=11,
        base_state=StateVector(100, 30, 20, 20),
        branches=(
            BranchSpec("A", "A", Strategy.ATTACK, 0.8, 0.6, False, ("r1",), ("n1",)),
            BranchSpec("B", "B", Strategy.BALANCE, 0.5, 0.4, True, ("r2",), ("n2",)),
            BranchSpec("C", "C", Strategy.DEFENSE, 0.3, 0.2, True, ("r3",), ("n3",)),
        ),
    )
    params.update(overrides)
    return DecisionRequest(**params)


class TestConstraints:
    """Tests for Constraint."""

    def test_bounds(self):
        assert Constraint("x", min=0).check({"x": 0})
        assert not Constraint("x", min=0).check({"x": -1})
        assert Constraint("x", max=1).check({"x": 1})
        assert not Constraint("x", max=1).check({"x": 2})
        assert Constraint("x").check({"x": 1e9})

    def test_missing_key_counts_as_zero(self):
        assert Constraint("collapseRisk", max=0.6).check({})
        assert not Constraint("value", min=1).check({})

    def test_all_must_pass(self):
        constraints = [Constraint("a", min=0), Constraint("b", max=5)]

        assert check_constraints({"a": 1, "b": 5}, constraints)
        assert not check_constraints({"a": 1, "b": 6}, constraints)
        assert check_constraints({}, [])


class TestDominance:
    """Tests for Pareto dominance."""

    def test_strict_dominance(self):
        assert dominates({"value": 5, "speed": 2}, {"value": 3, "speed": 1})
        assert not dominates({"value": 3, "speed": 1}, {"value": 5, "speed": 2})

    def test_equal_is_not_dominance(self):
        assert not dominates({"value": 1}, {"value": 1})

    def test_tradeoff(self):
        left = {"value": 5, "speed": 1}
        right = {"value": 3, "speed": 2}

        assert not dominates(left, right)
        assert not dominates(right, left)
        assert dominant_indexes([left, right]) == ()

    def test_missing_keys(self):
        assert dominates({"value": 1}, {})
        assert not dominates({"value": 1}, {"speed": 1})

    def test_single_branch_is_dominant(self):
        assert dominant_indexes([{"value": 0}]) == (0,)


class TestChanceNormalization:
    """Tests for normalize_chance_edges."""

    def test_fills_missing_evenly(self):
        edges = [
            DecisionTreeEdge("c", "x", probability=0.2),
            DecisionTreeEdge("c", "y"),
            DecisionTreeEdge("c", "z"),
        ]
        normalized = normalize_chance_edges(edges)

        assert [e.probability for e in normalized] == pytest.approx([0.2, 0.4, 0.4])

    def test_all_missing(self):
        normalized = normalize_chance_edges([DecisionTreeEdge("c", "x"), DecisionTreeEdge("c", "y")])

        assert [e.probability for e in normalized] == pytest.approx([0.5, 0.5])

    def test_explicit_sum_at_least_one_unchanged(self):
        edges = [
            DecisionTreeEdge("c", "x", probability=0.7),
            DecisionTreeEdge("c", "y", probability=0.5),
            DecisionTreeEdge("c", "z"),
        ]

        assert normalize_chance_edges(edges) == edges

    def test_empty(self):
        assert normalize_chance_edges([]) == []


class TestEvaluateFromNode:
    """Tests for path accumulation."""

    def make_tree(self):
        return DecisionTree(
            root_id="root",
            nodes=(
                DecisionNode(id="root", label="Root"),
                ChanceNode(id="chance", label="Chance"),
                OutcomeNode(id="win", label="Win", utility={"value": 10},
                            reasons=("a", "b", "c"), next_actions=("1", "2", "3", "4")),
                DecisionNode(id="inner", label="Inner"),
                OutcomeNode(id="lose", label="Lose", utility={"value": -4}),
            ),
            edges=(
                DecisionTreeEdge("root", "chance", label="Go", utility_adjustments={"bonus": 1}),
                DecisionTreeEdge("chance", "win", probability=0.6),
                DecisionTreeEdge("chance", "inner", utility_adjustments={"value": 1}),
                DecisionTreeEdge("inner", "lose"),
            ),
        )

    def test_probabilities_and_utilities(self):
        outcomes = evaluate_from_node(self.make_tree(), "chance", {"bonus": 1}, 1.0)

        assert [o.node_id for o in outcomes] == ["win", "lose"]
        assert outcomes[0].probability == pytest.approx(0.6)
        assert outcomes[1].probability == pytest.approx(0.4)
        assert outcomes[0].utility == {"bonus": 1, "value": 10}
        assert outcomes[1].utility == {"bonus": 1, "value": -3}

    def test_reasons_and_actions_capped(self):
        outcomes = evaluate_from_node(self.make_tree(), "win", {}, 1.0)

        assert outcomes[0].reasons == ("a", "b")
        assert outcomes[0].next_actions == ("1", "2", "3")

    def test_unknown_node_yields_nothing(self):
        assert evaluate_from_node(self.make_tree(), "missing", {}, 1.0) == []

    def test_expected_utility(self):
        result = evaluate_decision_tree(self.make_tree())
        branch = result.branches[0]

        assert branch.expected_utility["value"] == pytest.approx(0.6 * 10 + 0.4 * -3)
        assert branch.expected_utility["bonus"] == pytest.approx(1.0)
        assert branch.simulation is None
        assert branch.percentiles is None


class TestEvaluateDecisionTree:
    """Tests for evaluate_decision_tree."""

    def test_dominant_choice_with_simulation(self):
        result = evaluate_decision_tree(two_outcome_tree(), sim_config_for)

        assert len(result.branches) == 2
        assert result.branches[0].expected_utility["value"] == 5
        assert result.branches[1].expected_utility["value"] == 3
        assert result.dominant_branch_indexes == (0,)
        assert isinstance(result.branches[0].percentiles.p50, float)
        assert 0.0 <= result.branches[0].collapse_risk <= 1.0
        assert result.branches[0].simulation.runs == 120

    def test_deterministic(self):
        first = evaluate_decision_tree(two_outcome_tree(), sim_config_for)
        second = evaluate_decision_tree(two_outcome_tree(), sim_config_for)

        assert first == second

    def test_branches_capped_at_three(self):
        nodes = [DecisionNode(id="root", label="Root")]
        edges = []
        for index in range(5):
            nodes.append(OutcomeNode(id=f"o{index}", label=str(index), utility={"value": index}))
            edges.append(DecisionTreeEdge("root", f"o{index}", label=str(index)))

        result = evaluate_decision_tree(DecisionTree("root", tuple(nodes), tuple(edges)))

        assert len(result.branches) == 3
        assert result.dominant_branch_indexes == (2,)

    def test_constraint_failures(self):
        tree = DecisionTree(
            root_id="root",
            nodes=(
                DecisionNode(id="root", label="Root", constraints=(Constraint("value", min=4),)),
                OutcomeNode(id="a", label="A", utility={"value": 5}, constraints=(Constraint("value", max=4),)),
                OutcomeNode(id="b", label="B", utility={"value": 3}),
                OutcomeNode(id="c", label="C", utility={"value": 4}),
            ),
            edges=(
                DecisionTreeEdge("root", "a", label="A"),
                DecisionTreeEdge("root", "b", label="B"),
                DecisionTreeEdge("root", "c", label="C"),
            ),
        )
        satisfied = [b.constraints_satisfied for b in evaluate_decision_tree(tree).branches]

        assert satisfied == [False, False, True]

    def test_non_decision_root_is_empty(self):
        tree = DecisionTree(
            root_id="root",
            nodes=(ChanceNode(id="root", label="Root"),),
            edges=(),
        )
        result = evaluate_decision_tree(tree)

        assert result.branches == ()
        assert result.dominant_branch_indexes == ()

    def test_missing_root_is_empty(self):
        result = evaluate_decision_tree(DecisionTree("nowhere", (), ()))

        assert result.branches == ()

    def test_unmapped_edge_raises(self):
        with pytest.raises(BranchMappingError):
            evaluate_decision_tree(two_outcome_tree(), lambda edge: None)

    def test_mapper_errors_propagate(self):
        def mapper(edge):
            raise KeyError(edge.label)

        with pytest.raises(KeyError):
            evaluate_decision_tree(two_outcome_tree(), mapper)

    def test_from_dict(self):
        tree = DecisionTree.from_dict({
            "rootId": "root",
            "nodes": [
                {"id": "root", "type": "decision", "label": "Root", "constraints": [{"key": "value", "min": 0}]},
                {"id": "c", "type": "chance", "label": "C"},
                {"id": "o", "type": "outcome", "label": "O", "utility": {"value": 2}, "nextActions": ["go"]},
            ],
            "edges": [
                {"from": "root", "to": "c", "label": "only"},
                {"from": "c", "to": "o"},
            ],
        })
        result = evaluate_decision_tree(tree)

        assert result.branches[0].expected_utility == {"value": 2.0}
        assert result.branches[0].outcomes[0].next_actions == ("go",)
        assert result.to_dict()["branches"][0]["decisionEdge"] == {"from": "root", "to": "c", "label": "only"}


class TestDecisionRequest:
    """Tests for request-driven tree construction and evaluation."""

    def test_build_tree_shape(self):
        tree = build_tree(make_request())
        root_edges = tree.outgoing(ROOT_ID)

        assert tree.root.kind.value == "decision"
        assert len(tree.nodes) == 1 + 3 * 3
        assert [e.label for e in root_edges] == ["A", "B", "C"]
        assert root_edges[0].utility_adjustments["resilience"] == pytest.approx((1 - 0.6) * 8)
        assert root_edges[0].utility_adjustments["optionality"] == pytest.approx((1 - 0.8) * 6)

        chance_edges = tree.outgoing("chance-A")
        assert chance_edges[0].probability == pytest.approx(0.62 - 0.6 * 0.2)
        assert chance_edges[1].probability == pytest.approx(0.38 + 0.6 * 0.2)

    def test_extra_branches_dropped(self):
        branches = tuple(BranchSpec(str(i), f"Branch {i}") for i in range(5))
        tree = build_tree(make_request(branches=branches))

        assert len(tree.outgoing(ROOT_ID)) == 3

    def test_mapper_seed_offset(self):
        request = make_request()
        mapper = BranchSimulationMapper(request)
        config = mapper(DecisionTreeEdge(ROOT_ID, "chance-A", label="A"))

        assert config.scenario_params.seed == 11 + len("chance-A")
        assert config.runs == 120

    def test_unknown_label_raises(self):
        mapper = BranchSimulationMapper(make_request())

        with pytest.raises(BranchMappingError):
            mapper(DecisionTreeEdge(ROOT_ID, "chance-Z", label="Z"))

    def test_three_branch_pipeline(self):
        reports = evaluate_branches(make_request())

        assert len(reports) == 3
        assert [r.id for r in reports] == ["A", "B", "C"]
        for report in reports:
            assert isinstance(report.p10, float)
            assert report.p10 <= report.p50 <= report.p90
            assert 0.0 <= report.collapse_risk <= 1.0
        assert reports[0].reasons == ("r1",)
        assert reports[2].next_actions == ("n3",)

    def test_expected_utility_of_branch(self):
        report = evaluate_branches(make_request())[2]
        up = 0.62 - 0.2 * 0.2
        down = 0.38 + 0.2 * 0.2

        assert report.expected_utility["expectedScore"] == pytest.approx(up * 8 + down * -10)
        assert report.expected_utility["narrativeScore"] == pytest.approx(up * 14 + down * -6)
        assert report.expected_utility["resilience"] == pytest.approx(0.8 * 8)
        assert report.constraints_satisfied

    def test_deterministic(self):
        assert evaluate_branches(make_request()) == evaluate_branches(make_request())

    def test_from_dict(self):
        request = DecisionRequest.from_dict({
            "runs": 50,
            "horizonMonths": 6,
            "dtDays": 5,
            "seed": 3,
            "baseState": {"capital": 100, "resilience": 30, "momentum": 20, "stress": 20},
            "branches": [
                {"id": "x", "label": "X", "strategy": "defense", "riskAppetite": 0.2,
                 "uncertainty": 0.3, "blackSwanEnabled": True, "reasons": ["why"], "nextActions": []},
            ],
        })

        assert request.branches[0].strategy is Strategy.DEFENSE
        assert request.branches[0].reasons == ("why",)
        assert request.runs == 50
