"""
Parallel world executor.

Computes the worlds of a Monte Carlo batch in a thread or process pool and
merges them, in run-index order, into the same aggregator the sequential
runner uses. The result is identical to ``run_monte_carlo`` for the same
config.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

from decision_forecast.engine.monte_carlo import (
    MonteCarloConfig,
    MonteCarloRunner,
    SimulationResult,
    WorldOutcome,
    simulate_world,
)

logger = logging.getLogger(__name__)


@dataclass
class SwarmConfig:
    """
    Configuration for swarm execution.

    Attributes:
        max_workers: Maximum parallel workers (None = executor default)
        executor_type: "thread" or "process"
        chunk_size: Worlds computed per submitted task
    """
    max_workers: Optional[int] = None
    executor_type: str = "thread"
    chunk_size: int = 250

    def __post_init__(self):
        if self.executor_type not in ["thread", "process"]:
            raise ValueError("executor_type must be 'thread' or 'process'")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


@dataclass
class SwarmResult:
    """
    Result of a swarmed batch.

    Attributes:
        result: Aggregated simulation result
        config: Swarm configuration used
        total_time_seconds: Wall time of the batch
        chunks: Chunks merged into the result
    """
    result: SimulationResult
    config: SwarmConfig
    total_time_seconds: float
    chunks: int = 0


def _simulate_chunk(
    config: MonteCarloConfig,
    run_indexes: Sequence[int],
    steps: int,
    success_threshold: float,
) -> List[WorldOutcome]:
    return [simulate_world(config, index, steps, success_threshold) for index in run_indexes]


def _chunked(total: int, size: int) -> List[range]:
    return [range(start, min(start + size, total)) for start in range(0, total, size)]


class SwarmExecutor:
    """
    Executes one Monte Carlo batch across a worker pool.

    Workers receive the config without its progress sink or cancel token;
    both stay with the caller. Abort is polled before merging each chunk,
    and progress fires at the usual cadence points as chunks are merged.

    Example:
        executor = SwarmExecutor(SwarmConfig(max_workers=4))
        swarm_result = executor.run(config)

        print(f"Success ratio: {swarm_result.result.success_ratio:.1%}")
    """

    def __init__(self, config: Optional[SwarmConfig] = None):
        self.config = config or SwarmConfig()

    def _executor_class(self):
        if self.config.executor_type == "process":
            return ProcessPoolExecutor
        return ThreadPoolExecutor

    def run(self, mc_config: MonteCarloConfig) -> SwarmResult:
        """
        Run the batch in parallel.

        Args:
            mc_config: Batch configuration

        Returns:
            SwarmResult wrapping the aggregated SimulationResult
        """
        start_time = time.time()
        runner = MonteCarloRunner(mc_config)
        if runner.is_degenerate:
            result = SimulationResult.empty(mc_config.horizon_months, mc_config.dt_days)
            return SwarmResult(result=result, config=self.config, total_time_seconds=0.0)

        worker_config = mc_config.evolve(progress=None, cancel_token=None)
        chunks = _chunked(mc_config.runs, self.config.chunk_size)
        merged = 0

        logger.debug(
            "Swarm batch: runs=%d chunks=%d executor=%s",
            mc_config.runs, len(chunks), self.config.executor_type,
        )

        with self._executor_class()(max_workers=self.config.max_workers) as executor:
            futures: List[Future] = [
                executor.submit(
                    _simulate_chunk, worker_config, chunk, runner.steps, runner.success_threshold,
                )
                for chunk in chunks
            ]
            for future in futures:
                if mc_config.aborted:
                    logger.info("Swarm batch aborted after %d of %d chunks", merged, len(chunks))
                    for pending in futures:
                        pending.cancel()
                    break
                runner.add_outcomes(future.result())
                merged += 1

        return SwarmResult(
            result=runner.finish(),
            config=self.config,
            total_time_seconds=time.time() - start_time,
            chunks=merged,
        )


def run_swarm(mc_config: MonteCarloConfig, config: Optional[SwarmConfig] = None) -> SimulationResult:
    """Run a batch in parallel and return the aggregated result."""
    return SwarmExecutor(config).run(mc_config).result
