"""Live error-risk prediction and finger fatigue tracking."""

from .fatigue import FatigueConfig, FatigueDashboard, FingerFatigueTracker, FingerState
from .predictor import (
    FEATURE_NAMES,
    ContributingFactor,
    LiveRiskPredictor,
    PredictionContext,
    RiskPrediction,
    TrainingExample,
    extract_features,
)

__all__ = [
    # Risk
    "FEATURE_NAMES",
    "ContributingFactor",
    "LiveRiskPredictor",
    "PredictionContext",
    "RiskPrediction",
    "TrainingExample",
    "extract_features",
    # Fatigue
    "FatigueConfig",
    "FatigueDashboard",
    "FingerFatigueTracker",
    "FingerState",
]
