"""Output module - Reporting."""

from decision_forecast.output.reporter import (
    DecisionReport,
    LeverReport,
    Reporter,
    ReportFormat,
    SimulationSummary,
)

__all__ = [
    "Reporter",
    "ReportFormat",
    "SimulationSummary",
    "LeverReport",
    "DecisionReport",
]
