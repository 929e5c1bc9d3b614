"""Swarm module - Parallel world execution."""

from decision_forecast.swarm.executor import SwarmConfig, SwarmExecutor, SwarmResult, run_swarm

__all__ = [
    "SwarmExecutor",
    "SwarmConfig",
    "SwarmResult",
    "run_swarm",
]
