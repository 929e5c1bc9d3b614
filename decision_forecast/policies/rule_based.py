"""
Rule-based action policy.

Rules are evaluated in priority order and the first matching rule picks the
strategy for the step. Biases stay fixed for the whole run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from decision_forecast.engine.state import Action, StateVector, Strategy
from decision_forecast.policies.base import ActionPolicy

Condition = Callable[[StateVector, int], bool]


@dataclass(frozen=True)
class StrategyRule:
    """
    A single strategy-switching rule.

    Attributes:
        name: Rule identifier for debugging
        condition: ``(state, step_index) -> bool``
        strategy: Strategy applied when the condition matches
        priority: Higher priority rules are evaluated first
        description: Human-readable description of the rule
    """
    name: str
    condition: Condition
    strategy: Strategy
    priority: int = 0
    description: str = ""

    def matches(self, state: StateVector, step_index: int) -> bool:
        return bool(self.condition(state, step_index))


class RuleBasedPolicy(ActionPolicy):
    """
    Policy that switches strategy based on ordered rules.

    Rules are evaluated by priority (highest first), then by order added.

    Example:
        policy = RuleBasedPolicy(
            [
                StrategyRule(
                    name="stressed_defend",
                    condition=stress_above(60),
                    strategy=Strategy.DEFENSE,
                    priority=100,
                ),
                StrategyRule(
                    name="calm_attack",
                    condition=stress_below(20),
                    strategy=Strategy.ATTACK,
                ),
            ],
            fallback=Strategy.BALANCE,
            risk_bias=0.5,
            uncertainty_bias=0.4,
        )
    """

    def __init__(
        self,
        rules: List[StrategyRule],
        fallback: Strategy = Strategy.BALANCE,
        risk_bias: float = 0.5,
        uncertainty_bias: float = 0.5,
        name: str = "RuleBasedPolicy",
    ):
        super().__init__(name)
        self._rules = sorted(rules, key=lambda r: -r.priority)
        self._actions = {
            strategy: Action(strategy=strategy, risk_bias=risk_bias, uncertainty_bias=uncertainty_bias)
            for strategy in Strategy
        }
        self.fallback = fallback

    @property
    def rules(self) -> List[StrategyRule]:
        return self._rules.copy()

    def matching_rule(self, state: StateVector, step_index: int) -> Optional[StrategyRule]:
        for rule in self._rules:
            if rule.matches(state, step_index):
                return rule
        return None

    def decide(self, state: StateVector, step_index: int) -> Action:
        rule = self.matching_rule(state, step_index)
        strategy = rule.strategy if rule is not None else self.fallback
        return self._actions[strategy]

    def explain_decision(self, state: StateVector, step_index: int) -> Dict[str, Any]:
        """Which rules matched and which one was selected."""
        matching = [
            {
                "name": rule.name,
                "description": rule.description,
                "strategy": rule.strategy.value,
                "priority": rule.priority,
            }
            for rule in self._rules
            if rule.matches(state, step_index)
        ]
        return {
            "matching_rules": matching,
            "selected_rule": matching[0] if matching else None,
            "total_rules": len(self._rules),
        }


# Common condition helpers

def stress_above(level: float) -> Condition:
    return lambda state, step_index: state.stress > level


def stress_below(level: float) -> Condition:
    return lambda state, step_index: state.stress < level


def capital_below(level: float) -> Condition:
    return lambda state, step_index: state.capital < level


def after_step(step_index: int) -> Condition:
    return lambda state, index: index >= step_index
