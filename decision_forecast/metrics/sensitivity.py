"""
Lever sensitivity ranking.

Runs a reduced Monte Carlo batch for a baseline config and for a fixed menu
of single-change variants, then ranks the variants by their success/risk
tradeoff. This is a local search over the menu only, not an optimizer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from decision_forecast.engine.control import CancelLike, as_cancel_token
from decision_forecast.engine.model import score_state
from decision_forecast.engine.monte_carlo import LeverKey, SimulationResult, run_monte_carlo
from decision_forecast.engine.scenario import ScenarioConfig, wire_name
from decision_forecast.engine.state import Strategy

logger = logging.getLogger(__name__)

SENSITIVITY_RUNS = 1200
TOP_LEVER_COUNT = 3


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class LeverCandidate:
    """
    One entry of the lever menu.

    Attributes:
        lever: Lever identifier
        label_key: Display label key for the host
        cost: Fixed effort weight subtracted from the score
        change: ``config -> field updates`` producing the variant
    """
    lever: LeverKey
    label_key: str
    cost: float
    change: Callable[[ScenarioConfig], Dict[str, Any]]


def _moderate_strategy(config: ScenarioConfig) -> Dict[str, Any]:
    if config.strategy is Strategy.ATTACK:
        return {"strategy": Strategy.BALANCE}
    return {"strategy": Strategy.DEFENSE}


def _reduce_risk_appetite(config: ScenarioConfig) -> Dict[str, Any]:
    return {"risk_appetite": max(0.1, config.risk_appetite - 0.12)}


def _shorten_horizon(config: ScenarioConfig) -> Dict[str, Any]:
    return {"horizon_months": max(6, config.horizon_months - 6)}


def _enable_black_swan_shield(config: ScenarioConfig) -> Dict[str, Any]:
    return {"black_swan_enabled": True}


def _reduce_uncertainty(config: ScenarioConfig) -> Dict[str, Any]:
    return {"uncertainty": max(0.1, config.uncertainty - 0.1)}


def _lower_threshold(config: ScenarioConfig) -> Dict[str, Any]:
    threshold = config.success_threshold
    if threshold is None:
        threshold = score_state(config.base_state)
    return {"success_threshold": max(10.0, threshold - 8)}


LEVER_MENU: Tuple[LeverCandidate, ...] = (
    LeverCandidate(LeverKey.STRATEGY, "leverStrategy", 0.6, _moderate_strategy),
    LeverCandidate(LeverKey.RISK_APPETITE, "leverRiskAppetite", 0.4, _reduce_risk_appetite),
    LeverCandidate(LeverKey.HORIZON, "leverHorizon", 0.35, _shorten_horizon),
    LeverCandidate(LeverKey.BLACK_SWAN_SHIELD, "leverBlackSwanShield", 0.5, _enable_black_swan_shield),
    LeverCandidate(LeverKey.UNCERTAINTY, "leverUncertainty", 0.7, _reduce_uncertainty),
    LeverCandidate(LeverKey.SUCCESS_THRESHOLD, "leverLowerThreshold", 0.2, _lower_threshold),
)


def _wire_value(value: Any) -> Any:
    if isinstance(value, Strategy):
        return value.value
    return value


@dataclass(frozen=True)
class LeverSuggestion:
    """
    A scored lever variant.

    Attributes:
        lever: Lever identifier
        label_key: Display label key
        success_delta: Success ratio change, x10 and rounded
        drawdown_delta: Drawdown world-share change in percentage points
        cost: Fixed lever cost
        score: ``2 * success_delta - drawdown_delta - cost``
        updates: Changed config fields, keyed by attribute name
    """
    lever: LeverKey
    label_key: str
    success_delta: int
    drawdown_delta: int
    cost: float
    score: float
    updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def patch(self) -> Dict[str, Any]:
        """The changed fields under their wire names."""
        return {wire_name(key): _wire_value(value) for key, value in self.updates.items()}

    def apply(self, config: ScenarioConfig) -> ScenarioConfig:
        return config.evolve(**self.updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lever": self.lever.value,
            "labelKey": self.label_key,
            "successDelta": self.success_delta,
            "drawdownDelta": self.drawdown_delta,
            "cost": self.cost,
            "score": self.score,
            "patch": self.patch,
        }


def drawdown_share(result: SimulationResult) -> float:
    return result.risk_events.drawdowns_over_20.share(result.runs)


class LeverRanker:
    """
    Ranks the fixed lever menu against a baseline config.

    Every variant runs the same reduced batch size as the baseline, with the
    same seed, so deltas reflect the lever and not sampling noise between
    seeds.
    """

    def __init__(
        self,
        config: ScenarioConfig,
        runs: int = SENSITIVITY_RUNS,
        menu: Tuple[LeverCandidate, ...] = LEVER_MENU,
        cancel_token: Optional[CancelLike] = None,
    ):
        self.config = config
        self.runs = runs
        self.menu = menu
        self.cancel_token = as_cancel_token(cancel_token)

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled

    def _simulate(self, config: ScenarioConfig) -> SimulationResult:
        return run_monte_carlo(
            config.to_monte_carlo_config(runs=self.runs, cancel_token=self.cancel_token)
        )

    def score_candidate(
        self,
        candidate: LeverCandidate,
        baseline: SimulationResult,
    ) -> LeverSuggestion:
        updates = candidate.change(self.config)
        result = self._simulate(self.config.evolve(**updates))

        success_delta = round_half_up((result.success_ratio - baseline.success_ratio) * 10)
        drawdown_delta = round_half_up((drawdown_share(result) - drawdown_share(baseline)) * 100)
        score = success_delta * 2 - drawdown_delta - candidate.cost

        return LeverSuggestion(
            lever=candidate.lever,
            label_key=candidate.label_key,
            success_delta=success_delta,
            drawdown_delta=drawdown_delta,
            cost=candidate.cost,
            score=score,
            updates=updates,
        )

    def evaluate_all(self) -> List[LeverSuggestion]:
        """Score every menu entry, in menu order. Stops early when cancelled."""
        baseline = self._simulate(self.config)
        scored: List[LeverSuggestion] = []
        for candidate in self.menu:
            if self.cancelled:
                logger.info("Lever ranking cancelled after %d of %d levers", len(scored), len(self.menu))
                break
            scored.append(self.score_candidate(candidate, baseline))
        return scored

    def rank(self, top: int = TOP_LEVER_COUNT) -> List[LeverSuggestion]:
        ranked = sorted(self.evaluate_all(), key=lambda s: -s.score)[:top]
        logger.debug("Top levers: %s", [(s.lever.value, s.score) for s in ranked])
        return ranked


def rank_levers(
    config: ScenarioConfig,
    runs: int = SENSITIVITY_RUNS,
    top: int = TOP_LEVER_COUNT,
    cancel_token: Optional[CancelLike] = None,
) -> List[LeverSuggestion]:
    """Return the top lever suggestions for a baseline config."""
    return LeverRanker(config, runs=runs, cancel_token=cancel_token).rank(top)
