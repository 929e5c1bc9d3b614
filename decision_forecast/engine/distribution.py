"""
Histogram and percentile aggregation of ending values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

import numpy as np

HISTOGRAM_BINS = 20
MIN_SPREAD = 1e-6
PERCENTILE_LEVELS = [10, 25, 50, 75, 90]


def quantile_sorted(sorted_values: Sequence[float], q: float) -> float:
    """
    Linear-interpolated order statistic of an ascending sequence.

    For [-10, 0, 10, 20, 40]: q=0.1 -> -6, q=0.5 -> 10, q=0.9 -> 32.
    An empty sequence yields 0.
    """
    if len(sorted_values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(sorted_values, dtype=float), q * 100))


@dataclass(frozen=True)
class Percentiles:
    """Score percentiles across worlds."""
    p10: float = 0.0
    p25: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p90: float = 0.0

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "Percentiles":
        if len(values) == 0:
            return cls()
        p10, p25, p50, p75, p90 = np.percentile(np.asarray(values, dtype=float), PERCENTILE_LEVELS)
        return cls(
            p10=float(p10),
            p25=float(p25),
            p50=float(p50),
            p75=float(p75),
            p90=float(p90),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "p10": self.p10,
            "p25": self.p25,
            "p50": self.p50,
            "p75": self.p75,
            "p90": self.p90,
        }


@dataclass(frozen=True)
class Distribution:
    """
    Histogram over a set of values.

    Attributes:
        bin_edges: ``bins + 1`` ascending edges
        bins: Count of values per bin
        min: Smallest value
        max: Largest value
        mean: Arithmetic mean
    """
    bin_edges: Tuple[float, ...]
    bins: Tuple[int, ...]
    min: float
    max: float
    mean: float

    @classmethod
    def empty(cls) -> "Distribution":
        return cls(bin_edges=(0.0,), bins=(0,), min=0.0, max=0.0, mean=0.0)

    @classmethod
    def from_values(cls, values: Sequence[float], bins_count: int = HISTOGRAM_BINS) -> "Distribution":
        """
        Build an equal-width histogram.

        The top edge is inclusive: the maximum lands in the last bin. A set
        whose values are all equal still gets ``bins_count`` bins of width
        ``1e-6 / bins_count``.
        """
        if len(values) == 0:
            return cls.empty()

        arr = np.asarray(values, dtype=float)
        low = float(arr.min())
        high = float(arr.max())
        spread = max(MIN_SPREAD, high - low)
        bin_size = spread / bins_count

        edges = tuple(low + index * bin_size for index in range(bins_count + 1))
        indexes = np.minimum(bins_count - 1, np.floor((arr - low) / bin_size).astype(np.int64))
        counts = np.bincount(indexes, minlength=bins_count)

        return cls(
            bin_edges=edges,
            bins=tuple(int(count) for count in counts),
            min=low,
            max=high,
            mean=float(arr.sum() / arr.size),
        )

    @property
    def total(self) -> int:
        return sum(self.bins)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "binEdges": list(self.bin_edges),
            "bins": list(self.bins),
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
        }


def build_distribution(values: Sequence[float], bins_count: int = HISTOGRAM_BINS) -> Distribution:
    return Distribution.from_values(values, bins_count)
