"""Policies module - Action policy interface and implementations."""

from decision_forecast.policies.base import ActionPolicy, ConstantPolicy
from decision_forecast.policies.rule_based import RuleBasedPolicy, StrategyRule

__all__ = [
    "ActionPolicy",
    "ConstantPolicy",
    "RuleBasedPolicy",
    "StrategyRule",
]
