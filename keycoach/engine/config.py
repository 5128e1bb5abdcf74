"""Engine configuration, decoupled from environment-driven Settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from keycoach.ensemble.predictor import EnsembleWeights
from keycoach.history.store import PruneStrategy

if TYPE_CHECKING:
    from config import Settings


@dataclass
class EngineConfig:
    """Tunable parameters of the weakness engine."""

    prior_alpha: float = 1.0
    prior_beta: float = 1.0
    speed_prior_shape: float = 2.0
    speed_prior_rate: float = 0.4  # shape/rate = 5 keys/s = 200 ms
    credible_level: float = 0.95

    history_max_size: int = 1000
    prune_strategy: PruneStrategy = PruneStrategy.OLDEST
    learning_curve_window: int = 20
    learning_curve_max_points: int = 50

    ngram_max_gap_ms: float = 5000.0
    ngram_min_attempts: int = 5

    weights: EnsembleWeights = field(default_factory=EnsembleWeights)

    mastery_threshold: float = 0.95
    weakness_threshold: float = 60.0
    base_interval_days: float = 1.0
    debounce_delay_ms: float = 50.0

    trend_window: int = 10
    nominal_session_minutes: float = 15.0
    min_analyze_attempts: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            prior_alpha=settings.prior_alpha,
            prior_beta=settings.prior_beta,
            speed_prior_shape=settings.speed_prior_shape,
            speed_prior_rate=settings.speed_prior_rate,
            credible_level=settings.credible_level,
            history_max_size=settings.history_max_size,
            learning_curve_window=settings.learning_curve_window,
            learning_curve_max_points=settings.learning_curve_max_points,
            ngram_max_gap_ms=settings.ngram_max_gap_ms,
            ngram_min_attempts=settings.ngram_min_attempts,
            weights=EnsembleWeights.from_dict(settings.get_ensemble_weights()),
            mastery_threshold=settings.mastery_threshold,
            weakness_threshold=settings.weakness_threshold,
            base_interval_days=settings.base_interval_days,
            debounce_delay_ms=settings.debounce_delay_ms,
        )
