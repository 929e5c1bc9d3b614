"""Host module - Asyncio message handlers for simulation and decision jobs."""

from decision_forecast.host.handlers import DecisionHost, SimulationHost

__all__ = [
    "SimulationHost",
    "DecisionHost",
]
