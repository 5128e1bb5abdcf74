"""
Ensemble Predictor.

Blends three independent accuracy estimates for a key into one:

    ensemble = w_b·B + w_h·H + w_t·T

Where:
    B = Bayesian posterior mean of the key's accuracy
    H = accuracy implied by the key's HMM state distribution
    T = 1 - error rate of the bigrams that contain the key
"""

from __future__ import annotations

from dataclasses import dataclass

from keycoach.hmm.tracker import HMMState, expected_state_accuracy

WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class EnsembleWeights:
    """Blend weights; must sum to 1."""

    bayesian: float = 0.5
    hmm: float = 0.3
    temporal: float = 0.2

    def __post_init__(self) -> None:
        values = (self.bayesian, self.hmm, self.temporal)
        if any(v < 0 for v in values):
            raise ValueError(f"Ensemble weights must be non-negative: {values}")
        total = sum(values)
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Ensemble weights must sum to 1.0, got {total:.6f}")

    @classmethod
    def from_dict(cls, weights: dict[str, float]) -> EnsembleWeights:
        return cls(
            bayesian=weights.get("bayesian", 0.5),
            hmm=weights.get("hmm", 0.3),
            temporal=weights.get("temporal", 0.2),
        )

    def to_dict(self) -> dict[str, float]:
        return {"bayesian": self.bayesian, "hmm": self.hmm, "temporal": self.temporal}


@dataclass(frozen=True)
class EnsembleBreakdown:
    """The three raw components and their blend."""

    bayesian: float
    hmm: float
    temporal: float
    ensemble: float

    def to_dict(self) -> dict[str, float]:
        return {
            "bayesian": round(self.bayesian, 4),
            "hmm": round(self.hmm, 4),
            "temporal": round(self.temporal, 4),
            "ensemble": round(self.ensemble, 4),
        }


def calculate_ensemble_prediction(
    bayesian: float,
    hmm: float,
    temporal: float,
    weights: EnsembleWeights | None = None,
) -> float:
    weights = weights or EnsembleWeights()
    return bayesian * weights.bayesian + hmm * weights.hmm + temporal * weights.temporal


class EnsemblePredictor:
    """Builds the ensemble breakdown for a key from its model outputs."""

    def __init__(self, weights: EnsembleWeights | None = None):
        self.weights = weights or EnsembleWeights()

    def predict(
        self,
        posterior_mean: float,
        state_probabilities: dict[HMMState, float],
        ngram_error_rate: float | None,
    ) -> EnsembleBreakdown:
        """
        Args:
            posterior_mean: Bayesian accuracy estimate
            state_probabilities: Current HMM state distribution
            ngram_error_rate: Error rate of bigrams containing the key, or
                None when no bigram has been recorded yet

        Returns:
            EnsembleBreakdown; without bigram data the temporal component
            falls back to the Bayesian mean
        """
        hmm = expected_state_accuracy(state_probabilities)
        if ngram_error_rate is None:
            temporal = posterior_mean
        else:
            temporal = 1.0 - min(1.0, max(0.0, ngram_error_rate))

        return EnsembleBreakdown(
            bayesian=posterior_mean,
            hmm=hmm,
            temporal=temporal,
            ensemble=calculate_ensemble_prediction(posterior_mean, hmm, temporal, self.weights),
        )
