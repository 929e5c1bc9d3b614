"""
Tests for distributions, percentiles and collapse risk.
"""

import dataclasses

import numpy as np
import pytest
from decision_forecast.engine.distribution import (
    Distribution,
    Percentiles,
    build_distribution,
    quantile_sorted,
)
from decision_forecast.engine.monte_carlo import (
    RiskEventMetric,
    RiskEvents,
    SimulationResult,
    build_trajectory,
    run_monte_carlo,
)
from decision_forecast.engine.scenario import ScenarioConfig
from decision_forecast.engine.state import StateVector, Strategy
from decision_forecast.metrics.collapse import CollapseAnalyzer, compute_collapse_risk


def make_result(runs, stress=0, drawdowns=0, swans=0, resilience_mean=100.0):
    """Build a result with hand-picked risk counts."""
    return dataclasses.replace(
        SimulationResult.empty(12, 5),
        runs=runs,
        risk_events=RiskEvents(
            stress_breaks=RiskEventMetric(stress, stress),
            drawdowns_over_20=RiskEventMetric(drawdowns, drawdowns),
            black_swans=RiskEventMetric(swans, swans),
        ),
        ending_resilience=Distribution((0.0,), (0,), 0.0, 0.0, resilience_mean),
    )


class TestQuantile:
    """Tests for quantile_sorted."""

    def test_interpolation(self):
        values = [-10, 0, 10, 20, 40]

        assert quantile_sorted(values, 0.1) == -6
        assert quantile_sorted(values, 0.5) == 10
        assert quantile_sorted(values, 0.9) == 32

    def test_edges(self):
        assert quantile_sorted([], 0.5) == 0.0
        assert quantile_sorted([3.0], 0.9) == 3.0
        assert quantile_sorted([1, 2], 0.0) == 1
        assert quantile_sorted([1, 2], 1.0) == 2

    def test_percentiles_from_unsorted(self):
        p = Percentiles.from_values([40, -10, 20, 0, 10])

        assert p.p10 == pytest.approx(-6)
        assert p.p50 == pytest.approx(10)
        assert p.p90 == pytest.approx(32)
        assert p.p25 <= p.p50 <= p.p75

    def test_matches_numpy_linear_percentile(self):
        values = np.random.default_rng(3).normal(size=1001)

        p = Percentiles.from_values(values.tolist())
        assert p.p25 == pytest.approx(np.percentile(values, 25))
        assert p.p75 == pytest.approx(np.percentile(values, 75))
        for q in (0.1, 0.25, 0.5, 0.75, 0.9):
            assert quantile_sorted(np.sort(values), q) == pytest.approx(np.percentile(values, q * 100))

    def test_empty_percentiles_are_zero(self):
        assert Percentiles.from_values([]) == Percentiles()

    def test_trajectory_percentiles_per_step(self):
        rows = np.random.default_rng(8).normal(loc=200, scale=15, size=(40, 6))

        points = build_trajectory(rows.tolist(), dt_days=5)

        assert [point.day_offset for point in points] == [5, 10, 15, 20, 25, 30]
        assert [point.p50 for point in points] == pytest.approx(list(np.percentile(rows, 50, axis=0)))
        assert [point.p10 for point in points] == pytest.approx(list(np.percentile(rows, 10, axis=0)))
        assert build_trajectory([], dt_days=5) == ()


class TestDistribution:
    """Tests for Distribution histograms."""

    def test_histogram_counts(self):
        values = [float(v) for v in range(100)]
        dist = build_distribution(values)

        assert len(dist.bins) == 20
        assert len(dist.bin_edges) == 21
        assert dist.total == 100
        assert dist.bins[0] == 5
        assert dist.min == 0.0
        assert dist.max == 99.0
        assert dist.mean == pytest.approx(49.5)

    def test_max_lands_in_last_bin(self):
        dist = Distribution.from_values([0.0, 10.0])

        assert dist.bins[0] == 1
        assert dist.bins[-1] == 1
        assert dist.bin_edges[-1] == pytest.approx(10.0)

    def test_constant_values(self):
        dist = Distribution.from_values([5.0, 5.0, 5.0])

        assert dist.bins[0] == 3
        assert dist.total == 3
        assert dist.bin_edges[-1] - dist.bin_edges[0] == pytest.approx(1e-6)

    def test_empty(self):
        dist = Distribution.from_values([])

        assert dist == Distribution.empty()
        assert dist.to_dict() == {"binEdges": [0.0], "bins": [0], "min": 0.0, "max": 0.0, "mean": 0.0}


class TestCollapseAnalyzer:
    """Tests for CollapseAnalyzer."""

    def test_weighted_blend(self):
        result = make_result(runs=10, stress=5, drawdowns=2, swans=0, resilience_mean=50.0)
        metrics = CollapseAnalyzer(result).compute_metrics()

        assert metrics.stress_world_share == pytest.approx(0.5)
        assert metrics.drawdown_world_share == pytest.approx(0.2)
        assert metrics.resilience_shortfall == pytest.approx(0.5)
        assert metrics.collapse_risk == pytest.approx(0.35 * 0.5 + 0.35 * 0.2 + 0.1 * 0.5)

    def test_capped_at_one(self):
        result = make_result(runs=4, stress=4, drawdowns=4, swans=4, resilience_mean=0.0)

        assert compute_collapse_risk(result) == pytest.approx(1.0)

    def test_healthy_result_is_zero(self):
        result = make_result(runs=10, resilience_mean=120.0)

        assert compute_collapse_risk(result) == 0.0

    def test_empty_result(self):
        metrics = CollapseAnalyzer(SimulationResult.empty(12, 5)).compute_metrics()

        assert metrics.stress_world_share == 0.0
        assert metrics.collapse_risk == pytest.approx(0.1)

    def test_simulated_result_in_range(self):
        config = ScenarioConfig(
            horizon_months=12,
            dt_days=5,
            seed=3,
            base_state=StateVector(100, 30, 25, 20),
            strategy=Strategy.ATTACK,
            uncertainty=0.8,
            black_swan_enabled=True,
            runs=300,
        )
        risk = compute_collapse_risk(run_monte_carlo(config.to_monte_carlo_config()))

        assert 0.0 <= risk <= 1.0

    def test_describe_and_dict(self):
        metrics = CollapseAnalyzer(make_result(runs=10, stress=1)).compute_metrics()

        assert "Collapse Analysis (10 runs)" in metrics.describe()
        assert metrics.to_dict()["stressWorldShare"] == pytest.approx(0.1)
