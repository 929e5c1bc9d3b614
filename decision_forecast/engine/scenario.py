"""
Flat scenario configuration.

ScenarioConfig is the request-level shape a host or the CLI hands over. It
names the user-facing knobs (strategy, uncertainty, risk appetite, black
swans) and expands them into the scenario parameters and policy the runner
needs.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional

from decision_forecast.engine.control import CancelLike, ProgressLike
from decision_forecast.engine.monte_carlo import (
    DEFAULT_PROGRESS_EVERY,
    DEFAULT_RUNS,
    MonteCarloConfig,
)
from decision_forecast.engine.state import ScenarioParams, StateVector, Strategy
from decision_forecast.policies.base import ConstantPolicy


def black_swan_chance(uncertainty: float, enabled: bool) -> float:
    return 0.02 + uncertainty * 0.04 if enabled else 0.0


def black_swan_impact(risk_appetite: float) -> float:
    return 1.4 - risk_appetite * 0.5


def build_scenario_params(
    seed: int,
    uncertainty: float,
    risk_appetite: float,
    black_swan_enabled: bool,
) -> ScenarioParams:
    """Expand the user-facing knobs into step-model parameters."""
    return ScenarioParams(
        seed=seed,
        uncertainty=uncertainty,
        risk_appetite=risk_appetite,
        black_swan_enabled=black_swan_enabled,
        black_swan_chance_monthly=black_swan_chance(uncertainty, black_swan_enabled),
        black_swan_impact=black_swan_impact(risk_appetite),
    )


def build_policy(strategy: Strategy, risk_appetite: float, uncertainty: float) -> ConstantPolicy:
    """Constant policy whose biases mirror the scenario knobs."""
    return ConstantPolicy.from_stance(strategy, risk_bias=risk_appetite, uncertainty_bias=uncertainty)


_WIRE_NAMES = {
    "runs": "runs",
    "horizon_months": "horizonMonths",
    "dt_days": "dtDays",
    "seed": "seed",
    "base_state": "baseState",
    "strategy": "strategy",
    "uncertainty": "uncertainty",
    "risk_appetite": "riskAppetite",
    "black_swan_enabled": "blackSwanEnabled",
    "success_threshold": "successThreshold",
}


def wire_name(field_name: str) -> str:
    return _WIRE_NAMES[field_name]


@dataclass(frozen=True)
class ScenarioConfig:
    """
    Request-level simulation config.

    Attributes:
        horizon_months: Simulated horizon in months
        dt_days: Step size in days
        seed: Root seed
        base_state: Starting state
        strategy: Stance applied at every step
        uncertainty: Fog level, roughly 0-1
        risk_appetite: Courage level, roughly 0-1
        black_swan_enabled: Whether black swans can fire
        runs: Worlds to simulate
        success_threshold: Ending score counted as success (None = base score)
    """
    horizon_months: float
    dt_days: float
    seed: int
    base_state: StateVector
    strategy: Strategy = Strategy.BALANCE
    uncertainty: float = 0.5
    risk_appetite: float = 0.5
    black_swan_enabled: bool = False
    runs: int = DEFAULT_RUNS
    success_threshold: Optional[float] = None

    def __post_init__(self):
        if self.dt_days == 0:
            raise ValueError("dt_days must be non-zero")
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))

    def evolve(self, **updates: Any) -> "ScenarioConfig":
        return dataclasses.replace(self, **updates)

    def scenario_params(self) -> ScenarioParams:
        return build_scenario_params(
            self.seed, self.uncertainty, self.risk_appetite, self.black_swan_enabled,
        )

    def policy(self) -> ConstantPolicy:
        return build_policy(self.strategy, self.risk_appetite, self.uncertainty)

    def to_monte_carlo_config(
        self,
        runs: Optional[int] = None,
        progress: Optional[ProgressLike] = None,
        cancel_token: Optional[CancelLike] = None,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
    ) -> MonteCarloConfig:
        return MonteCarloConfig(
            horizon_months=self.horizon_months,
            dt_days=self.dt_days,
            base_state=self.base_state,
            action_policy=self.policy(),
            scenario_params=self.scenario_params(),
            runs=self.runs if runs is None else runs,
            success_threshold=self.success_threshold,
            progress_every=progress_every,
            progress=progress,
            cancel_token=cancel_token,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "horizonMonths": self.horizon_months,
            "dtDays": self.dt_days,
            "seed": self.seed,
            "baseState": self.base_state.to_dict(),
            "strategy": self.strategy.value,
            "uncertainty": self.uncertainty,
            "riskAppetite": self.risk_appetite,
            "blackSwanEnabled": self.black_swan_enabled,
            "successThreshold": self.success_threshold,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScenarioConfig":
        threshold = data.get("successThreshold")
        return cls(
            horizon_months=float(data["horizonMonths"]),
            dt_days=float(data["dtDays"]),
            seed=int(data["seed"]),
            base_state=StateVector.from_dict(data["baseState"]),
            strategy=Strategy.parse(data.get("strategy", Strategy.BALANCE.value)),
            uncertainty=float(data.get("uncertainty", 0.5)),
            risk_appetite=float(data.get("riskAppetite", 0.5)),
            black_swan_enabled=bool(data.get("blackSwanEnabled", False)),
            runs=int(data.get("runs", DEFAULT_RUNS)),
            success_threshold=None if threshold is None else float(threshold),
        )
