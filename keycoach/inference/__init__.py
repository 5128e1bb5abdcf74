"""
Statistical inference core.

- special: log-gamma, incomplete beta and its inverse
- sampling: Normal, Gamma and Beta variates from an injected random source
- bayes: Beta-Binomial accuracy posterior, Gamma speed model, Thompson sampling
"""

from .bayes import (
    BayesianPriors,
    PosteriorEstimate,
    SpeedEstimate,
    calculate_bayesian_posterior,
    calculate_speed_estimate,
    thompson_sample,
    update_speed_posterior,
)
from .sampling import RandomSource, default_rng, sample_beta, sample_gamma, sample_normal
from .special import beta_fn, beta_inc, beta_inv, beta_mean, beta_variance, lgamma

__all__ = [
    # Posterior
    "BayesianPriors",
    "PosteriorEstimate",
    "calculate_bayesian_posterior",
    "thompson_sample",
    # Speed
    "SpeedEstimate",
    "calculate_speed_estimate",
    "update_speed_posterior",
    # Sampling
    "RandomSource",
    "default_rng",
    "sample_beta",
    "sample_gamma",
    "sample_normal",
    # Special functions
    "beta_fn",
    "beta_inc",
    "beta_inv",
    "beta_mean",
    "beta_variance",
    "lgamma",
]
