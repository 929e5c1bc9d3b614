"""
Host message contract.

Requests and responses are plain dicts with a ``type`` and an ``id``. A
``start`` (or ``sensitivity``) request ends with exactly one terminal
response: ``done``, ``sensitivity-done``, ``cancelled`` or ``error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Sequence

if TYPE_CHECKING:
    from decision_forecast.decision.builder import BranchReport
    from decision_forecast.engine.monte_carlo import SimulationResult
    from decision_forecast.metrics.sensitivity import LeverSuggestion

# Requests
START = "start"
CANCEL = "cancel"
SENSITIVITY = "sensitivity"

# Responses
PROGRESS = "progress"
DONE = "done"
CANCELLED = "cancelled"
ERROR = "error"
SENSITIVITY_DONE = "sensitivity-done"

TERMINAL_TYPES = frozenset([DONE, CANCELLED, ERROR, SENSITIVITY_DONE])

UNKNOWN_ERROR_MESSAGE = "Unknown worker error"

Message = Dict[str, Any]


def progress_fraction(completed_runs: int, runs: int) -> float:
    return 0.0 if runs <= 0 else completed_runs / runs


def progress_message(job_id: str, completed_runs: int, runs: int, partial: "SimulationResult") -> Message:
    return {
        "type": PROGRESS,
        "id": job_id,
        "progress": progress_fraction(completed_runs, runs),
        "partialResult": partial.to_dict(),
    }


def done_message(job_id: str, result: "SimulationResult") -> Message:
    return {"type": DONE, "id": job_id, "result": result.to_dict()}


def decision_done_message(job_id: str, branches: Sequence["BranchReport"]) -> Message:
    return {"type": DONE, "id": job_id, "branches": [branch.to_dict() for branch in branches]}


def sensitivity_done_message(job_id: str, levers: Sequence["LeverSuggestion"]) -> Message:
    return {"type": SENSITIVITY_DONE, "id": job_id, "levers": [lever.to_dict() for lever in levers]}


def cancelled_message(job_id: str) -> Message:
    return {"type": CANCELLED, "id": job_id}


def error_message(job_id: str, exc: BaseException) -> Message:
    return {"type": ERROR, "id": job_id, "message": str(exc) or UNKNOWN_ERROR_MESSAGE}


def is_terminal(message: Message) -> bool:
    return message.get("type") in TERMINAL_TYPES
