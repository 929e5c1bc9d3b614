"""
Action policy interface.

A policy maps the current state and step index to the Action applied at that
step. The runner accepts any ``(state, step_index) -> Action`` callable;
subclassing ActionPolicy gives a named, picklable policy that can also run
in a process pool.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from decision_forecast.engine.state import Action, StateVector, Strategy


class ActionPolicy(ABC):
    """
    Abstract base class for action policies.

    Policies must be deterministic functions of (state, step_index): any
    randomness would bypass the run's own stream and break reproducibility.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__

    @abstractmethod
    def decide(self, state: StateVector, step_index: int) -> Action:
        """
        Choose the action for one step.

        Args:
            state: State before the step
            step_index: 0-based step index within the run

        Returns:
            The action to apply
        """
        pass

    def __call__(self, state: StateVector, step_index: int) -> Action:
        return self.decide(state, step_index)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"


class ConstantPolicy(ActionPolicy):
    """Policy that applies the same action at every step."""

    def __init__(self, action: Action, name: str = "ConstantPolicy"):
        super().__init__(name)
        self.action = action

    @classmethod
    def from_stance(
        cls,
        strategy: Strategy,
        risk_bias: float,
        uncertainty_bias: float,
    ) -> "ConstantPolicy":
        return cls(
            Action(strategy=strategy, risk_bias=risk_bias, uncertainty_bias=uncertainty_bias),
            name=f"Constant[{strategy.value}]",
        )

    def decide(self, state: StateVector, step_index: int) -> Action:
        return self.action
