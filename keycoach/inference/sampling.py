"""
Random variate generation for Thompson sampling.

Every sampler takes the random source explicitly so tests can pass a
seeded ``random.Random`` and assert exact outputs.
"""

from __future__ import annotations

import math
import random
from typing import Protocol


class RandomSource(Protocol):
    """Anything with a ``random()`` returning a float in [0, 1)."""

    def random(self) -> float: ...


def default_rng(seed: int | None = None) -> random.Random:
    return random.Random(seed)


def sample_normal(rng: RandomSource, mean: float = 0.0, std_dev: float = 1.0) -> float:
    """Box-Muller transform."""
    u1 = rng.random()
    while u1 <= 0.0:
        u1 = rng.random()
    u2 = rng.random()
    z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    return mean + std_dev * z


def sample_gamma(rng: RandomSource, shape: float, scale: float = 1.0) -> float:
    """
    Gamma(shape, scale) by Marsaglia and Tsang.

    For shape < 1 the draw is boosted to shape + 1 and corrected by U^(1/shape).
    """
    if shape <= 0:
        raise ValueError(f"shape must be positive, got {shape}")
    if shape < 1:
        u = rng.random()
        return sample_gamma(rng, shape + 1, scale) * u ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)

    while True:
        x = sample_normal(rng)
        v = 1.0 + c * x
        while v <= 0:
            x = sample_normal(rng)
            v = 1.0 + c * x

        v = v * v * v
        u = rng.random()

        if u < 1.0 - 0.0331 * (x * x) * (x * x):
            return d * v * scale
        if u > 0.0 and math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
            return d * v * scale


def sample_beta(rng: RandomSource, alpha: float, beta: float) -> float:
    """Beta draw as the ratio of two independent Gamma draws."""
    x = sample_gamma(rng, alpha)
    y = sample_gamma(rng, beta)
    total = x + y
    if total <= 0.0:
        # Both draws underflowed; fall back to the mean
        return alpha / (alpha + beta)
    return x / total
