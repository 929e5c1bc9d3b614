"""Engine module - Seeded step model and Monte Carlo runner."""

from decision_forecast.engine.state import (
    Action,
    RiskFlags,
    ScenarioParams,
    StateVector,
    StepOutcome,
    Strategy,
)
from decision_forecast.engine.rng import RngStream, create_rng
from decision_forecast.engine.model import score_state, step
from decision_forecast.engine.control import CallbackProgressSink, CancellationToken, ProgressSink
from decision_forecast.engine.distribution import Distribution, Percentiles, quantile_sorted
from decision_forecast.engine.monte_carlo import (
    LeverKey,
    MonteCarloConfig,
    MonteCarloRunner,
    SimulationResult,
    run_monte_carlo,
    run_monte_carlo_async,
)
from decision_forecast.engine.scenario import ScenarioConfig

__all__ = [
    "Action",
    "RiskFlags",
    "ScenarioParams",
    "StateVector",
    "StepOutcome",
    "Strategy",
    "RngStream",
    "create_rng",
    "score_state",
    "step",
    "CallbackProgressSink",
    "CancellationToken",
    "ProgressSink",
    "Distribution",
    "Percentiles",
    "quantile_sorted",
    "LeverKey",
    "MonteCarloConfig",
    "MonteCarloRunner",
    "SimulationResult",
    "run_monte_carlo",
    "run_monte_carlo_async",
    "ScenarioConfig",
]
