"""
State step model.

Advances one (state, action, scenario) tuple by one time increment. The
function is pure apart from the draws it consumes from the stream it is
handed; it holds no state between calls.
"""

from __future__ import annotations

from decision_forecast.engine.rng import RngStream
from decision_forecast.engine.state import (
    Action,
    RiskFlags,
    ScenarioParams,
    StateVector,
    StepOutcome,
    Strategy,
)

DAYS_PER_MONTH = 30

STRATEGY_DRIVE = {
    Strategy.ATTACK: 1.18,
    Strategy.BALANCE: 1.0,
    Strategy.DEFENSE: 0.84,
}

STRESS_BREAK_LEVEL = 80.0
DRAWDOWN_RATIO = 0.8


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def score_state(state: StateVector) -> float:
    """Scalar health of a state, used for percentiles and success checks."""
    return state.capital + state.resilience * 0.8 + state.momentum * 12 - state.stress * 9


def step(
    state: StateVector,
    action: Action,
    dt_days: float,
    params: ScenarioParams,
    rng: RngStream,
) -> StepOutcome:
    """
    Advance a state by ``dt_days``.

    Draw order per step is fixed (one normal, one uniform for the black swan
    trial, and one more uniform only when a black swan fires) so that a
    stream replays identically.

    Args:
        state: Current state
        action: Action chosen by the policy for this step
        dt_days: Step size in days
        params: Scenario parameters of the run
        rng: The run's own stream

    Returns:
        StepOutcome with the new state and this step's risk flags
    """
    dt_factor = dt_days / DAYS_PER_MONTH
    strategy = action.strategy
    strategy_drive = STRATEGY_DRIVE[strategy]

    uncertainty_shock = rng.next_normal() * params.uncertainty * (0.8 + action.uncertainty_bias * 0.3)
    drift = (0.75 + params.risk_appetite * 0.7 + action.risk_bias * 0.25) * strategy_drive

    black_swan = False
    shock_penalty = 0.0
    swan_chance = params.black_swan_chance_monthly * dt_factor if params.black_swan_enabled else 0.0
    if rng.next() < swan_chance:
        black_swan = True
        shock_penalty = params.black_swan_impact * (0.8 + rng.next() * 0.4)

    capital_delta = (drift + uncertainty_shock - state.stress * 0.2 - shock_penalty) * dt_factor
    next_capital = max(0.0, state.capital + capital_delta)

    defense_bonus = 0.9 if strategy is Strategy.DEFENSE else 0.35
    resilience_delta = (defense_bonus - params.uncertainty * 0.25 - shock_penalty * 0.18) * dt_factor
    next_resilience = _clamp(state.resilience + resilience_delta, 0.0, 100.0)

    attack_pressure = 0.4 if strategy is Strategy.ATTACK else -0.15
    stress_delta = (
        params.uncertainty * 0.9
        + attack_pressure
        + shock_penalty * 1.5
        - next_resilience * 0.01
    ) * dt_factor
    next_stress = _clamp(state.stress + stress_delta, 0.0, 100.0)

    attack_push = 0.22 if strategy is Strategy.ATTACK else 0.08
    momentum_delta = (capital_delta * 0.18 + attack_push - next_stress * 0.012) * dt_factor
    next_momentum = _clamp(state.momentum + momentum_delta, 0.0, 100.0)

    return StepOutcome(
        state=StateVector(
            capital=next_capital,
            resilience=next_resilience,
            momentum=next_momentum,
            stress=next_stress,
        ),
        risk_flags=RiskFlags(
            stress_break=next_stress > STRESS_BREAK_LEVEL,
            drawdown_over_20=next_capital < state.capital * DRAWDOWN_RATIO,
            black_swan=black_swan,
        ),
    )
