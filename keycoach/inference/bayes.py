"""
Bayesian accuracy and speed models.

Accuracy is Beta-Binomial: a Beta(alpha, beta) prior updated by
successes and failures. Speed is Gamma-Exponential: a Gamma(shape, rate)
prior on the keystroke rate (keys per second), where each latency of
``t`` seconds adds 1 to the shape and ``t`` to the rate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from statistics import NormalDist

from .sampling import RandomSource, sample_beta
from .special import beta_inv, beta_mean, beta_variance

DEFAULT_SPEED_MS = 200.0
DEFAULT_SPEED_CI = (150.0, 250.0)


@dataclass(frozen=True)
class BayesianPriors:
    alpha: float = 1.0
    beta: float = 1.0


@dataclass(frozen=True)
class PosteriorEstimate:
    """Posterior summary for one key's accuracy."""

    mean: float
    variance: float
    ci: tuple[float, float]
    confidence: float

    def to_dict(self) -> dict:
        return {
            "mean": self.mean,
            "variance": self.variance,
            "ci": list(self.ci),
            "confidence": self.confidence,
        }


def calculate_bayesian_posterior(
    priors: BayesianPriors,
    successes: float,
    failures: float,
    confidence_level: float = 0.95,
) -> PosteriorEstimate:
    """
    Posterior mean, variance and credible interval of Beta-Binomial accuracy.

    Args:
        priors: Prior pseudo-counts
        successes: Observed correct keystrokes
        failures: Observed incorrect keystrokes
        confidence_level: Mass of the central credible interval

    Returns:
        PosteriorEstimate whose interval always brackets the mean and
        whose confidence is the effective sample size over 100, capped at 1
    """
    alpha_post = priors.alpha + max(0.0, successes)
    beta_post = priors.beta + max(0.0, failures)

    mean = beta_mean(alpha_post, beta_post)
    variance = beta_variance(alpha_post, beta_post)

    tail = (1.0 - confidence_level) / 2.0
    lower = min(beta_inv(tail, alpha_post, beta_post), mean)
    upper = max(beta_inv(1.0 - tail, alpha_post, beta_post), mean)

    effective_sample_size = alpha_post + beta_post - priors.alpha - priors.beta
    confidence = min(1.0, effective_sample_size / 100.0)

    return PosteriorEstimate(
        mean=mean,
        variance=variance,
        ci=(max(0.0, lower), min(1.0, upper)),
        confidence=confidence,
    )


def thompson_sample(
    priors: BayesianPriors,
    successes: float,
    failures: float,
    rng: RandomSource,
) -> float:
    """One draw from the accuracy posterior (Thompson sampling)."""
    return sample_beta(
        rng,
        priors.alpha + max(0.0, successes),
        priors.beta + max(0.0, failures),
    )


# =============================================================================
# Speed Model
# =============================================================================


@dataclass(frozen=True)
class SpeedEstimate:
    """Typical latency in milliseconds with a credible interval."""

    estimate: float
    ci: tuple[float, float]


def update_speed_posterior(shape: float, rate: float, latency_ms: float) -> tuple[float, float]:
    """Conjugate update of the Gamma rate model with one latency observation."""
    if latency_ms <= 0 or not math.isfinite(latency_ms):
        return shape, rate
    return shape + 1.0, rate + latency_ms / 1000.0


def calculate_speed_estimate(
    shape: float,
    rate: float,
    observations: int,
    confidence_level: float = 0.95,
) -> SpeedEstimate:
    """
    Latency estimate from the Gamma posterior on keystroke rate.

    With no observations the neutral default of 200 ms (150-250) is returned.
    """
    if observations <= 0 or shape <= 0 or rate <= 0:
        return SpeedEstimate(DEFAULT_SPEED_MS, DEFAULT_SPEED_CI)

    keys_per_second = shape / rate
    estimate = 1000.0 / keys_per_second

    z = NormalDist().inv_cdf(0.5 + confidence_level / 2.0)
    spread = z * math.sqrt(shape) / rate
    fast = keys_per_second + spread
    slow = keys_per_second - spread

    lower = 1000.0 / fast
    upper = 1000.0 / slow if slow > 0 else math.inf
    return SpeedEstimate(estimate, (lower, upper))
