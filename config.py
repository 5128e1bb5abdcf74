"""
Configuration settings for the keycoach weakness engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KEYCOACH_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level written to the stderr log sink",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".keycoach",
        description="Directory holding the engine snapshot",
    )
    snapshot_filename: str = Field(
        default="weakness_snapshot.json",
        description="File name of the persisted engine snapshot",
    )

    # ========================================
    # Bayesian Accuracy / Speed Model
    # ========================================
    prior_alpha: float = Field(
        default=1.0,
        gt=0,
        description="Beta prior pseudo-successes for a new key",
    )
    prior_beta: float = Field(
        default=1.0,
        gt=0,
        description="Beta prior pseudo-failures for a new key",
    )
    speed_prior_shape: float = Field(
        default=2.0,
        gt=0,
        description="Gamma prior shape on keystroke rate (keys/second)",
    )
    speed_prior_rate: float = Field(
        default=0.4,
        gt=0,
        description="Gamma prior rate on keystroke rate (seconds of pseudo-latency)",
    )
    credible_level: float = Field(
        default=0.95,
        gt=0,
        lt=1,
        description="Mass of the reported credible intervals",
    )

    # ========================================
    # History / N-grams
    # ========================================
    history_max_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum retained observations per key",
    )
    learning_curve_window: int = Field(
        default=20,
        ge=2,
        description="Rolling window used for learning-curve accuracy samples",
    )
    learning_curve_max_points: int = Field(
        default=50,
        ge=2,
        description="Number of learning-curve samples retained per key",
    )
    ngram_max_gap_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Longest transition still counted as an n-gram (longer = pause)",
    )
    ngram_min_attempts: int = Field(
        default=5,
        ge=1,
        description="Minimum attempts before an n-gram appears in reports",
    )

    # ========================================
    # Ensemble Weights (must sum to 1.0)
    # ========================================
    ensemble_weight_bayesian: float = Field(default=0.5, ge=0, le=1)
    ensemble_weight_hmm: float = Field(default=0.3, ge=0, le=1)
    ensemble_weight_temporal: float = Field(default=0.2, ge=0, le=1)

    # ========================================
    # Scheduling
    # ========================================
    mastery_threshold: float = Field(
        default=0.95,
        gt=0,
        lt=1,
        description="Accuracy at which a key counts as mastered",
    )
    weakness_threshold: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Weakness score above which a key is flagged weak",
    )
    base_interval_days: float = Field(
        default=1.0,
        gt=0,
        description="Base spaced-repetition interval in days",
    )
    debounce_delay_ms: float = Field(
        default=50.0,
        ge=0,
        description="Coalescing window for debounced analysis requests",
    )

    # ========================================
    # Randomness
    # ========================================
    random_seed: int | None = Field(
        default=None,
        description="Seed for Thompson/HMM sampling (None = nondeterministic)",
    )

    @model_validator(mode="after")
    def _check_ensemble_weights(self) -> "Settings":
        total = (
            self.ensemble_weight_bayesian
            + self.ensemble_weight_hmm
            + self.ensemble_weight_temporal
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Ensemble weights must sum to 1.0, got {total:.4f}")
        return self

    @property
    def snapshot_path(self) -> Path:
        """Full path of the persisted snapshot file."""
        return self.data_dir / self.snapshot_filename

    def get_ensemble_weights(self) -> dict[str, float]:
        """Get ensemble weights as a dictionary."""
        return {
            "bayesian": self.ensemble_weight_bayesian,
            "hmm": self.ensemble_weight_hmm,
            "temporal": self.ensemble_weight_temporal,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
