"""
Collapse risk analysis.

Blends the world-shares of stress breaks, drawdowns and black swans with the
ending resilience shortfall into a single [0, 1] index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, TYPE_CHECKING

if TYPE_CHECKING:
    from decision_forecast.engine.monte_carlo import SimulationResult

STRESS_WEIGHT = 0.35
DRAWDOWN_WEIGHT = 0.35
BLACK_SWAN_WEIGHT = 0.2
RESILIENCE_WEIGHT = 0.1


@dataclass(frozen=True)
class CollapseMetrics:
    """
    Components of the collapse risk index.

    Attributes:
        stress_world_share: Fraction of worlds with a stress break
        drawdown_world_share: Fraction of worlds with a >20% drawdown
        black_swan_world_share: Fraction of worlds hit by a black swan
        resilience_shortfall: ``max(0, 1 - mean ending resilience / 100)``
        collapse_risk: Weighted blend, capped at 1
        total_runs: Runs the shares were computed against
    """
    stress_world_share: float
    drawdown_world_share: float
    black_swan_world_share: float
    resilience_shortfall: float
    collapse_risk: float
    total_runs: int = 0

    def describe(self) -> str:
        """Human-readable description."""
        lines = [
            f"Collapse Analysis ({self.total_runs} runs):",
            f"  Collapse risk: {self.collapse_risk:.1%}",
            f"  Stress break worlds: {self.stress_world_share:.1%}",
            f"  Drawdown worlds: {self.drawdown_world_share:.1%}",
            f"  Black swan worlds: {self.black_swan_world_share:.1%}",
            f"  Resilience shortfall: {self.resilience_shortfall:.1%}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, float]:
        return {
            "stressWorldShare": self.stress_world_share,
            "drawdownWorldShare": self.drawdown_world_share,
            "blackSwanWorldShare": self.black_swan_world_share,
            "resilienceShortfall": self.resilience_shortfall,
            "collapseRisk": self.collapse_risk,
            "totalRuns": self.total_runs,
        }


class CollapseAnalyzer:
    """Computes collapse metrics for one simulation result."""

    def __init__(self, result: "SimulationResult"):
        self.result = result

    def compute_metrics(self) -> CollapseMetrics:
        result = self.result
        events = result.risk_events
        stress_share = events.stress_breaks.share(result.runs)
        drawdown_share = events.drawdowns_over_20.share(result.runs)
        black_swan_share = events.black_swans.share(result.runs)
        shortfall = max(0.0, 1.0 - result.ending_resilience.mean / 100)

        collapse_risk = min(
            1.0,
            STRESS_WEIGHT * stress_share
            + DRAWDOWN_WEIGHT * drawdown_share
            + BLACK_SWAN_WEIGHT * black_swan_share
            + RESILIENCE_WEIGHT * shortfall,
        )

        return CollapseMetrics(
            stress_world_share=stress_share,
            drawdown_world_share=drawdown_share,
            black_swan_world_share=black_swan_share,
            resilience_shortfall=shortfall,
            collapse_risk=collapse_risk,
            total_runs=result.runs,
        )


def compute_collapse_risk(result: "SimulationResult") -> float:
    return CollapseAnalyzer(result).compute_metrics().collapse_risk
