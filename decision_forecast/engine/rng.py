"""
Deterministic random streams.

Every simulated world owns exactly one RngStream, forked from the scenario
seed by its run index. Streams are backed by numpy's PCG64 bit generator and
seeded through a SeedSequence, so forks taken with different salts are
statistically independent of each other and of their parent.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

_SEED_MODULUS = 2 ** 32


class RngStream:
    """
    Seeded pseudo-random stream with one buffered Gaussian spare.

    A stream is owned by a single simulated run and is never shared. Forking
    produces a brand new stream instead of mutating this one.

    Attributes:
        seed: 32-bit seed the stream was created from (0 is normalised to 1)
        spawn_key: Salts applied by successive forks, outermost last
        draws: Number of uniform variates consumed so far
    """

    def __init__(self, seed: int, spawn_key: Tuple[int, ...] = ()):
        self.seed = int(seed) % _SEED_MODULUS or 1
        self.spawn_key = tuple(int(salt) % _SEED_MODULUS for salt in spawn_key)
        sequence = np.random.SeedSequence(entropy=self.seed, spawn_key=self.spawn_key)
        self._generator = np.random.Generator(np.random.PCG64(sequence))
        self._spare: Optional[float] = None
        self.draws = 0

    def next(self) -> float:
        """Draw a uniform variate in [0, 1)."""
        self.draws += 1
        return float(self._generator.random())

    def next_normal(self) -> float:
        """
        Draw a standard normal variate.

        Uses the Box-Muller transform: each pair of uniforms yields two
        normals, the second of which is cached and returned by the next call.
        """
        if self._spare is not None:
            value = self._spare
            self._spare = None
            return value

        u = 0.0
        v = 0.0
        while u == 0.0:
            u = self.next()
        while v == 0.0:
            v = self.next()

        magnitude = math.sqrt(-2.0 * math.log(u))
        angle = 2.0 * math.pi * v
        self._spare = magnitude * math.sin(angle)
        return magnitude * math.cos(angle)

    def fork(self, salt: int) -> "RngStream":
        """Derive an independent child stream from (seed, salt)."""
        return RngStream(self.seed, self.spawn_key + (salt,))

    def __repr__(self) -> str:
        return f"RngStream(seed={self.seed}, spawn_key={self.spawn_key}, draws={self.draws})"


def create_rng(seed: int) -> RngStream:
    """Create a root stream for a scenario seed."""
    return RngStream(seed)
