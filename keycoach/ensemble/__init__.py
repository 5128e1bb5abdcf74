"""Weighted blend of the Bayesian, HMM and n-gram accuracy estimates."""

from .predictor import (
    EnsembleBreakdown,
    EnsemblePredictor,
    EnsembleWeights,
    calculate_ensemble_prediction,
)

__all__ = [
    "EnsembleBreakdown",
    "EnsemblePredictor",
    "EnsembleWeights",
    "calculate_ensemble_prediction",
]
