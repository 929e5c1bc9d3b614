"""
Cancellation and progress reporting for long simulations.

The runner polls a CancellationToken once per run and reports to a
ProgressSink at a fixed cadence. Both are plain synchronous objects; the
host decides what a cancel or a progress report means.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from decision_forecast.engine.monte_carlo import SimulationResult


class CancellationToken:
    """
    A checkable cancellation flag.

    The token is cancelled either explicitly via ``cancel()`` or when the
    optional predicate returns True.

    Example:
        token = CancellationToken()
        config = MonteCarloConfig(..., cancel_token=token)
        # from elsewhere
        token.cancel()
    """

    def __init__(self, predicate: Optional[Callable[[], bool]] = None):
        self._predicate = predicate
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self._predicate is not None and self._predicate():
            return True
        return False

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


class ProgressSink(ABC):
    """Receives cumulative partial results while a simulation runs."""

    @abstractmethod
    def on_progress(self, completed_runs: int, partial_result: "SimulationResult") -> None:
        """
        Called after every cadence point and after the final run.

        Args:
            completed_runs: Runs finished so far
            partial_result: Finalized result over the completed runs
        """
        pass


class CallbackProgressSink(ProgressSink):
    """Adapts a plain ``(completed_runs, partial_result)`` callable."""

    def __init__(self, callback: Callable[[int, "SimulationResult"], None]):
        self._callback = callback

    def on_progress(self, completed_runs: int, partial_result: "SimulationResult") -> None:
        self._callback(completed_runs, partial_result)


ProgressLike = Union[ProgressSink, Callable[[int, "SimulationResult"], None]]
CancelLike = Union[CancellationToken, Callable[[], bool]]


def as_progress_sink(progress: Optional[ProgressLike]) -> Optional[ProgressSink]:
    if progress is None or isinstance(progress, ProgressSink):
        return progress
    return CallbackProgressSink(progress)


def as_cancel_token(cancel: Optional[CancelLike]) -> Optional[CancellationToken]:
    if cancel is None or isinstance(cancel, CancellationToken):
        return cancel
    return CancellationToken(predicate=cancel)
