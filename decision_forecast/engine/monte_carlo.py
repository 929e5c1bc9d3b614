"""
Monte Carlo runner.

Runs many independent worlds of the step model to the horizon and aggregates
their ending values into distributions, percentiles, a score trajectory and
risk event counts.

Each world is computed by ``simulate_world`` from nothing but the config and
its run index, so a world's contribution does not depend on which other
worlds ran before it. The runner merges contributions in run-index order,
which makes results bit-identical for a fixed seed and run count, and makes
raising the run count only append new worlds.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from decision_forecast.engine.control import (
    CancelLike,
    CancellationToken,
    ProgressLike,
    ProgressSink,
    as_cancel_token,
    as_progress_sink,
)
from decision_forecast.engine.distribution import Distribution, Percentiles
from decision_forecast.engine.model import DAYS_PER_MONTH, score_state, step
from decision_forecast.engine.rng import create_rng
from decision_forecast.engine.state import Action, ScenarioParams, StateVector

logger = logging.getLogger(__name__)

DEFAULT_RUNS = 10_000
DEFAULT_PROGRESS_EVERY = 250

ActionPolicyFn = Callable[[StateVector, int], Action]


class LeverKey(Enum):
    """Configuration levers a caller can pull."""
    STRATEGY = "strategy"
    RISK_APPETITE = "riskAppetite"
    UNCERTAINTY = "uncertainty"
    HORIZON = "horizon"
    BLACK_SWAN_SHIELD = "blackSwanShield"
    SUCCESS_THRESHOLD = "successThreshold"


DEFAULT_TOP_LEVERS = (LeverKey.STRATEGY, LeverKey.RISK_APPETITE, LeverKey.UNCERTAINTY)


@dataclass(frozen=True)
class RiskEventMetric:
    """
    Attributes:
        worlds_with_event: Distinct runs where the event fired at least once
        total_events: Occurrences across all steps of all runs
    """
    worlds_with_event: int = 0
    total_events: int = 0

    def share(self, runs: int) -> float:
        """Fraction of worlds that saw the event."""
        return self.worlds_with_event / max(1, runs)

    def to_dict(self) -> Dict[str, int]:
        return {"worldsWithEvent": self.worlds_with_event, "totalEvents": self.total_events}


@dataclass(frozen=True)
class RiskEvents:
    stress_breaks: RiskEventMetric = field(default_factory=RiskEventMetric)
    drawdowns_over_20: RiskEventMetric = field(default_factory=RiskEventMetric)
    black_swans: RiskEventMetric = field(default_factory=RiskEventMetric)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            "stressBreaks": self.stress_breaks.to_dict(),
            "drawdownsOver20": self.drawdowns_over_20.to_dict(),
            "blackSwans": self.black_swans.to_dict(),
        }


@dataclass(frozen=True)
class TrajectoryPoint:
    """Cross-sectional score percentiles at one step, across all runs."""
    day_offset: float
    p10: float
    p50: float
    p90: float

    def to_dict(self) -> Dict[str, float]:
        return {"dayOffset": self.day_offset, "p10": self.p10, "p50": self.p50, "p90": self.p90}


@dataclass(frozen=True)
class SimulationResult:
    """
    Aggregate of a Monte Carlo batch.

    Attributes:
        runs: Runs actually completed (less than requested after an abort)
        horizon_months: Simulated horizon
        dt_days: Step size in days
        ending_capital: Histogram of ending capital
        ending_resilience: Histogram of ending resilience
        ending_score: Histogram of ending scores
        score_percentiles: Percentiles of ending scores
        score_trajectory: Per-step score percentiles
        ending_scores_raw: Ending score of every run, in run order
        success_ratio: Fraction of runs whose ending score met the threshold
        risk_events: Stress break, drawdown and black swan counts
        top_levers: Three heuristically chosen levers to explore
    """
    runs: int
    horizon_months: float
    dt_days: float
    ending_capital: Distribution
    ending_resilience: Distribution
    ending_score: Distribution
    score_percentiles: Percentiles
    score_trajectory: Tuple[TrajectoryPoint, ...]
    ending_scores_raw: Tuple[float, ...]
    success_ratio: float
    risk_events: RiskEvents
    top_levers: Tuple[LeverKey, ...]

    @classmethod
    def empty(cls, horizon_months: float, dt_days: float) -> "SimulationResult":
        """Well-defined zero result for degenerate input."""
        return cls(
            runs=0,
            horizon_months=horizon_months,
            dt_days=dt_days,
            ending_capital=Distribution.empty(),
            ending_resilience=Distribution.empty(),
            ending_score=Distribution.empty(),
            score_percentiles=Percentiles(),
            score_trajectory=(),
            ending_scores_raw=(),
            success_ratio=0.0,
            risk_events=RiskEvents(),
            top_levers=DEFAULT_TOP_LEVERS,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "horizonMonths": self.horizon_months,
            "dtDays": self.dt_days,
            "endingCapital": self.ending_capital.to_dict(),
            "endingResilience": self.ending_resilience.to_dict(),
            "endingScore": self.ending_score.to_dict(),
            "scorePercentiles": self.score_percentiles.to_dict(),
            "scoreTrajectory": [point.to_dict() for point in self.score_trajectory],
            "endingScoresRaw": list(self.ending_scores_raw),
            "successRatio": self.success_ratio,
            "riskEvents": self.risk_events.to_dict(),
            "topLevers": [lever.value for lever in self.top_levers],
        }


@dataclass
class MonteCarloConfig:
    """
    Configuration for a Monte Carlo batch.

    Attributes:
        horizon_months: Simulated horizon in months (30-day months)
        dt_days: Step size in days
        base_state: State every run starts from
        action_policy: ``(state, step_index) -> Action``
        scenario_params: Environment parameters, including the root seed
        runs: Number of worlds to simulate
        success_threshold: Ending score a run must reach to count as a
            success (None = score of the base state)
        progress_every: Progress cadence in completed runs
        progress: ProgressSink or ``(completed_runs, partial_result)`` callable
        cancel_token: CancellationToken or zero-argument predicate, polled
            once before each run
    """
    horizon_months: float
    dt_days: float
    base_state: StateVector
    action_policy: ActionPolicyFn
    scenario_params: ScenarioParams
    runs: int = DEFAULT_RUNS
    success_threshold: Optional[float] = None
    progress_every: int = DEFAULT_PROGRESS_EVERY
    progress: Optional[ProgressLike] = None
    cancel_token: Optional[CancelLike] = None

    def __post_init__(self):
        if self.dt_days == 0:
            raise ValueError("dt_days must be non-zero")
        if self.progress_every < 1:
            raise ValueError(f"progress_every must be at least 1, got {self.progress_every}")
        self.progress = as_progress_sink(self.progress)
        self.cancel_token = as_cancel_token(self.cancel_token)

    @property
    def steps(self) -> int:
        return math.ceil(self.horizon_months * DAYS_PER_MONTH / self.dt_days)

    @property
    def resolved_success_threshold(self) -> float:
        if self.success_threshold is None:
            return score_state(self.base_state)
        return self.success_threshold

    @property
    def aborted(self) -> bool:
        token: Optional[CancellationToken] = self.cancel_token
        return token is not None and token.cancelled

    def evolve(self, **updates: Any) -> "MonteCarloConfig":
        """Copy with updated fields."""
        return dataclasses.replace(self, **updates)


@dataclass(frozen=True)
class WorldOutcome:
    """One world's contribution to the aggregate."""
    run_index: int
    step_scores: Tuple[float, ...]
    ending_state: StateVector
    ending_score: float
    succeeded: bool
    stress_break_events: int
    drawdown_events: int
    black_swan_events: int


def derive_top_levers(config: MonteCarloConfig) -> Tuple[LeverKey, ...]:
    """Fixed heuristic pick of three levers worth exploring."""
    levers: List[LeverKey] = [LeverKey.STRATEGY, LeverKey.RISK_APPETITE]
    if config.scenario_params.uncertainty > 0.5:
        levers.append(LeverKey.UNCERTAINTY)
    if config.horizon_months >= 18:
        levers.append(LeverKey.HORIZON)
    if config.scenario_params.black_swan_enabled:
        levers.append(LeverKey.BLACK_SWAN_SHIELD)
    while len(levers) < 3:
        levers.append(LeverKey.UNCERTAINTY)
    return tuple(levers[:3])


def simulate_world(
    config: MonteCarloConfig,
    run_index: int,
    steps: int,
    success_threshold: float,
) -> WorldOutcome:
    """
    Simulate one world to the horizon.

    The world draws only from its own stream, forked off the root seed with
    salt ``run_index + 1``.
    """
    rng = create_rng(config.scenario_params.seed).fork(run_index + 1)
    params = config.scenario_params
    state = config.base_state

    step_scores: List[float] = []
    stress_breaks = 0
    drawdowns = 0
    black_swans = 0

    for step_index in range(steps):
        action = config.action_policy(state, step_index)
        outcome = step(state, action, config.dt_days, params, rng)
        state = outcome.state
        step_scores.append(score_state(state))

        flags = outcome.risk_flags
        if flags.stress_break:
            stress_breaks += 1
        if flags.drawdown_over_20:
            drawdowns += 1
        if flags.black_swan:
            black_swans += 1

    ending_score = score_state(state)
    return WorldOutcome(
        run_index=run_index,
        step_scores=tuple(step_scores),
        ending_state=state,
        ending_score=ending_score,
        succeeded=ending_score >= success_threshold,
        stress_break_events=stress_breaks,
        drawdown_events=drawdowns,
        black_swan_events=black_swans,
    )


def build_trajectory(step_scores: Sequence[Sequence[float]], dt_days: float) -> Tuple[TrajectoryPoint, ...]:
    """
    Per-step p10/p50/p90 of the score across runs.

    Args:
        step_scores: One row of per-step scores per run
        dt_days: Step size, used for ``day_offset``
    """
    if not step_scores:
        return ()
    matrix = np.asarray(step_scores, dtype=float)
    p10, p50, p90 = np.percentile(matrix, [10, 50, 90], axis=0)
    return tuple(
        TrajectoryPoint(
            day_offset=(step_index + 1) * dt_days,
            p10=float(p10[step_index]),
            p50=float(p50[step_index]),
            p90=float(p90[step_index]),
        )
        for step_index in range(matrix.shape[1])
    )


class WorldAggregator:
    """
    Accumulates world outcomes in the order they are added.

    Owned by a single runner; it is never written to concurrently.
    """

    def __init__(self):
        self.ending_capital: List[float] = []
        self.ending_resilience: List[float] = []
        self.ending_scores: List[float] = []
        self.step_scores: List[Tuple[float, ...]] = []
        self.successful_runs = 0
        self.stress_break_worlds = 0
        self.stress_break_events = 0
        self.drawdown_worlds = 0
        self.drawdown_events = 0
        self.black_swan_worlds = 0
        self.black_swan_events = 0

    @property
    def completed(self) -> int:
        return len(self.ending_scores)

    def add(self, outcome: WorldOutcome) -> None:
        self.ending_capital.append(outcome.ending_state.capital)
        self.ending_resilience.append(outcome.ending_state.resilience)
        self.ending_scores.append(outcome.ending_score)
        self.step_scores.append(outcome.step_scores)
        if outcome.succeeded:
            self.successful_runs += 1

        self.stress_break_events += outcome.stress_break_events
        self.drawdown_events += outcome.drawdown_events
        self.black_swan_events += outcome.black_swan_events
        if outcome.stress_break_events:
            self.stress_break_worlds += 1
        if outcome.drawdown_events:
            self.drawdown_worlds += 1
        if outcome.black_swan_events:
            self.black_swan_worlds += 1

    def finalize(
        self,
        config: MonteCarloConfig,
        top_levers: Tuple[LeverKey, ...],
    ) -> SimulationResult:
        completed = self.completed
        return SimulationResult(
            runs=completed,
            horizon_months=config.horizon_months,
            dt_days=config.dt_days,
            ending_capital=Distribution.from_values(self.ending_capital),
            ending_resilience=Distribution.from_values(self.ending_resilience),
            ending_score=Distribution.from_values(self.ending_scores),
            score_percentiles=Percentiles.from_values(self.ending_scores),
            score_trajectory=build_trajectory(self.step_scores, config.dt_days),
            ending_scores_raw=tuple(self.ending_scores),
            success_ratio=0.0 if completed == 0 else self.successful_runs / completed,
            risk_events=RiskEvents(
                stress_breaks=RiskEventMetric(self.stress_break_worlds, self.stress_break_events),
                drawdowns_over_20=RiskEventMetric(self.drawdown_worlds, self.drawdown_events),
                black_swans=RiskEventMetric(self.black_swan_worlds, self.black_swan_events),
            ),
            top_levers=top_levers,
        )


class MonteCarloRunner:
    """
    Drives a batch of worlds for one config.

    ``iter_progress`` is the single driving loop; ``run`` consumes it
    synchronously and ``run_async`` hands control back to the event loop at
    every cadence point.

    Example:
        runner = MonteCarloRunner(config)
        result = runner.run()
        print(f"Success ratio: {result.success_ratio:.1%}")
    """

    def __init__(self, config: MonteCarloConfig):
        self.config = config
        self.steps = config.steps
        self.success_threshold = config.resolved_success_threshold
        self.top_levers = derive_top_levers(config)
        self.result: Optional[SimulationResult] = None
        self._aggregator = WorldAggregator()
        self._last_partial: Optional[SimulationResult] = None

    @property
    def is_degenerate(self) -> bool:
        return self.config.runs <= 0 or self.steps <= 0

    def _finalize(self) -> SimulationResult:
        completed = self._aggregator.completed
        if self._last_partial is not None and self._last_partial.runs == completed:
            return self._last_partial
        self._last_partial = self._aggregator.finalize(self.config, self.top_levers)
        return self._last_partial

    def _report(self, completed: int) -> None:
        sink: Optional[ProgressSink] = self.config.progress
        if sink is not None:
            sink.on_progress(completed, self._finalize())

    def iter_progress(self) -> Iterator[int]:
        """
        Run the batch, yielding the completed run count at each cadence point.

        The progress sink has already been called when a count is yielded.
        Once the iterator is exhausted, ``self.result`` holds the final (or,
        after an abort, partial) result.
        """
        config = self.config
        if self.is_degenerate:
            self.result = SimulationResult.empty(config.horizon_months, config.dt_days)
            return

        logger.debug(
            "Starting Monte Carlo batch: runs=%d steps=%d seed=%d",
            config.runs, self.steps, config.scenario_params.seed,
        )

        for run_index in range(config.runs):
            if config.aborted:
                logger.info("Monte Carlo batch aborted after %d of %d runs", run_index, config.runs)
                self.result = self._finalize()
                return

            self._aggregator.add(simulate_world(config, run_index, self.steps, self.success_threshold))
            completed = run_index + 1
            if completed % config.progress_every == 0 or completed == config.runs:
                self._report(completed)
                yield completed

        self.result = self._finalize()

    def add_outcomes(self, outcomes: Sequence[WorldOutcome]) -> None:
        """Merge externally computed worlds, which must arrive in run-index order."""
        for outcome in outcomes:
            expected = self._aggregator.completed
            if outcome.run_index != expected:
                raise ValueError(f"Expected world {expected}, got world {outcome.run_index}")
            self._aggregator.add(outcome)
            completed = expected + 1
            if completed % self.config.progress_every == 0 or completed == self.config.runs:
                self._report(completed)

    def finish(self) -> SimulationResult:
        """Finalize over whatever worlds have been merged so far."""
        self.result = self._finalize()
        return self.result

    def run(self) -> SimulationResult:
        for _ in self.iter_progress():
            pass
        return self.result

    async def run_async(self) -> SimulationResult:
        for _ in self.iter_progress():
            await asyncio.sleep(0)
        return self.result


def run_monte_carlo(config: MonteCarloConfig) -> SimulationResult:
    """Run a Monte Carlo batch synchronously."""
    return MonteCarloRunner(config).run()


async def run_monte_carlo_async(config: MonteCarloConfig) -> SimulationResult:
    """Run a Monte Carlo batch, yielding to the event loop after each progress report."""
    return await MonteCarloRunner(config).run_async()
