"""
State records for the step model.

All records here are immutable (frozen) snapshots. A simulated world moves
forward by producing new records, never by mutating existing ones, which is
what keeps runs reproducible for a fixed seed.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class Strategy(Enum):
    """Policy stance applied at a step."""
    ATTACK = "attack"
    BALANCE = "balance"
    DEFENSE = "defense"

    @classmethod
    def parse(cls, value: Any) -> "Strategy":
        """Accept a Strategy or its wire string."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown strategy: {value!r}")


@dataclass(frozen=True)
class StateVector:
    """
    One simulated world's condition at one time step.

    Attributes:
        capital: Accumulated resources, floored at 0 by the step model
        resilience: Ability to absorb shocks (0-100)
        momentum: Forward progress (0-100)
        stress: Accumulated pressure (0-100)
    """
    capital: float
    resilience: float
    momentum: float
    stress: float

    def evolve(self, **updates: float) -> "StateVector":
        """Create a new state with updated fields. The original is unchanged."""
        return dataclasses.replace(self, **updates)

    def to_dict(self) -> Dict[str, float]:
        return {
            "capital": self.capital,
            "resilience": self.resilience,
            "momentum": self.momentum,
            "stress": self.stress,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateVector":
        return cls(
            capital=float(data["capital"]),
            resilience=float(data["resilience"]),
            momentum=float(data["momentum"]),
            stress=float(data["stress"]),
        )


@dataclass(frozen=True)
class Action:
    """
    A policy decision applied at a step.

    Attributes:
        strategy: attack, balance or defense
        risk_bias: Drift modifier, roughly 0-1
        uncertainty_bias: Shock amplitude modifier, roughly 0-1
    """
    strategy: Strategy = Strategy.BALANCE
    risk_bias: float = 0.5
    uncertainty_bias: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "riskBias": self.risk_bias,
            "uncertaintyBias": self.uncertainty_bias,
        }


@dataclass(frozen=True)
class ScenarioParams:
    """
    Environment-level parameters shared by all steps of one run.

    Attributes:
        seed: Root seed; each run forks its own stream from it
        uncertainty: Scale of the Gaussian capital shock
        risk_appetite: Drift boost
        black_swan_enabled: Whether the black swan trial is performed
        black_swan_chance_monthly: Per-month probability of a black swan
        black_swan_impact: Magnitude of a black swan penalty
    """
    seed: int
    uncertainty: float
    risk_appetite: float
    black_swan_enabled: bool = False
    black_swan_chance_monthly: float = 0.0
    black_swan_impact: float = 0.0

    def evolve(self, **updates: Any) -> "ScenarioParams":
        return dataclasses.replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "uncertainty": self.uncertainty,
            "riskAppetite": self.risk_appetite,
            "blackSwanEnabled": self.black_swan_enabled,
            "blackSwanChanceMonthly": self.black_swan_chance_monthly,
            "blackSwanImpact": self.black_swan_impact,
        }


@dataclass(frozen=True)
class RiskFlags:
    """Risk events raised by a single step."""
    stress_break: bool = False
    drawdown_over_20: bool = False
    black_swan: bool = False


@dataclass(frozen=True)
class StepOutcome:
    """New state plus the risk flags of the step that produced it."""
    state: StateVector
    risk_flags: RiskFlags
