"""
Asyncio message handlers.

A host owns a ``post`` callable and answers request dicts by posting
response dicts through it. ``handle`` coroutines may run concurrently, so a
``cancel`` can arrive while a ``start`` is still in flight:

    host = SimulationHost(post=messages.append)
    job = asyncio.create_task(host.handle({"type": "start", "id": "a", "config": {...}}))
    await host.handle({"type": "cancel", "id": "a"})
    await job

Plain Monte Carlo runs stay on the event loop and yield at every progress
point. Sensitivity ranking and decision evaluation run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Set

from decision_forecast.decision.builder import DecisionRequest, evaluate_branches
from decision_forecast.engine.control import CancellationToken
from decision_forecast.engine.monte_carlo import DEFAULT_PROGRESS_EVERY, SimulationResult, run_monte_carlo_async
from decision_forecast.engine.scenario import ScenarioConfig
from decision_forecast.host import protocol
from decision_forecast.metrics.sensitivity import rank_levers

logger = logging.getLogger(__name__)

PostFn = Callable[[protocol.Message], None]


class JobHost(ABC):
    """
    Shared bookkeeping for request handlers.

    Attributes:
        post: Receives every response message
        cancelled_ids: Ids that received a cancel
        active_ids: Ids with a job in flight; at most one job per id
    """

    def __init__(self, post: PostFn):
        self.post = post
        self.cancelled_ids: Set[str] = set()
        self.active_ids: Set[str] = set()

    def cancel_token(self, job_id: str) -> CancellationToken:
        return CancellationToken(predicate=lambda: job_id in self.cancelled_ids)

    def is_cancelled(self, job_id: str) -> bool:
        return job_id in self.cancelled_ids

    def handle_cancel(self, job_id: str) -> None:
        """Cancel an active job, or acknowledge right away if nothing is running."""
        self.cancelled_ids.add(job_id)
        if job_id not in self.active_ids:
            self.post(protocol.cancelled_message(job_id))

    async def handle(self, request: Dict[str, Any]) -> None:
        job_id = request.get("id", "")
        request_type = request.get("type")
        if request_type == protocol.CANCEL:
            self.handle_cancel(job_id)
            return

        handler = self._handlers().get(request_type)
        if handler is None:
            self.post(protocol.error_message(job_id, ValueError(f"Unknown request type: {request_type!r}")))
            return
        if job_id in self.active_ids:
            self.post(protocol.error_message(job_id, ValueError(f"Job {job_id!r} is already running")))
            return

        self.cancelled_ids.discard(job_id)
        self.active_ids.add(job_id)
        try:
            await handler(job_id, request.get("config") or {})
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            self.post(protocol.error_message(job_id, exc))
        finally:
            self.active_ids.discard(job_id)

    @abstractmethod
    def _handlers(self) -> Dict[str, Callable[[str, Dict[str, Any]], Any]]:
        """Map request types to job coroutines."""
        pass


class SimulationHost(JobHost):
    """Answers ``start``, ``sensitivity`` and ``cancel`` for scenario configs."""

    def __init__(self, post: PostFn, progress_every: int = DEFAULT_PROGRESS_EVERY):
        super().__init__(post)
        self.progress_every = progress_every

    def _handlers(self):
        return {protocol.START: self._start, protocol.SENSITIVITY: self._sensitivity}

    async def _start(self, job_id: str, payload: Dict[str, Any]) -> None:
        config = ScenarioConfig.from_dict(payload)

        def on_progress(completed_runs: int, partial: SimulationResult) -> None:
            self.post(protocol.progress_message(job_id, completed_runs, config.runs, partial))

        result = await run_monte_carlo_async(
            config.to_monte_carlo_config(
                progress=on_progress,
                cancel_token=self.cancel_token(job_id),
                progress_every=self.progress_every,
            )
        )
        if self.is_cancelled(job_id):
            self.post(protocol.cancelled_message(job_id))
            return
        self.post(protocol.done_message(job_id, result))

    async def _sensitivity(self, job_id: str, payload: Dict[str, Any]) -> None:
        config = ScenarioConfig.from_dict(payload)
        levers = await asyncio.to_thread(rank_levers, config, cancel_token=self.cancel_token(job_id))
        if self.is_cancelled(job_id):
            self.post(protocol.cancelled_message(job_id))
            return
        self.post(protocol.sensitivity_done_message(job_id, levers))


class DecisionHost(JobHost):
    """Answers ``start`` and ``cancel`` for decision requests."""

    def _handlers(self):
        return {protocol.START: self._start}

    async def _start(self, job_id: str, payload: Dict[str, Any]) -> None:
        request = DecisionRequest.from_dict(payload)
        reports = await asyncio.to_thread(evaluate_branches, request, self.cancel_token(job_id))
        if self.is_cancelled(job_id):
            self.post(protocol.cancelled_message(job_id))
            return
        self.post(protocol.decision_done_message(job_id, reports))
