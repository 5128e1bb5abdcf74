"""
Persisted snapshot shape.

These models are the serialization boundary: in memory the engine uses
dicts and history objects, on disk every map is a list of
``[key, value]`` pairs. The ``version`` field lets a future layout
migrate older files instead of misreading them.

Beta/Gamma parameters must be positive and every histogram bucket
holds exactly two non-negative counts.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

from keycoach.risk.predictor import DEFAULT_BIAS, FEATURE_COUNT

SNAPSHOT_VERSION = 1

# [attempts, successes] for histograms, [seen, errors] for adjacent keys
CountPair = tuple[NonNegativeInt, NonNegativeInt]


class KeyStateSnapshot(BaseModel):
    """Flattened KeyState."""

    model_config = ConfigDict(extra="ignore")

    alpha_prior: float = Field(default=1.0, gt=0)
    beta_prior: float = Field(default=1.0, gt=0)
    alpha_post: float = Field(default=1.0, gt=0)
    beta_post: float = Field(default=1.0, gt=0)
    shape_param: float = Field(default=2.0, gt=0)
    rate_param: float = Field(default=0.4, gt=0)

    hmm_state: str = "learning"
    transition_probs: list[tuple[str, float]] = Field(default_factory=list)

    outcomes: list[tuple[float, bool]] = Field(default_factory=list)
    speeds: list[tuple[float, float]] = Field(default_factory=list)

    time_of_day: list[tuple[int, CountPair]] = Field(default_factory=list)
    session_position: list[tuple[int, CountPair]] = Field(default_factory=list)
    adjacent_keys: list[tuple[str, CountPair]] = Field(default_factory=list)

    finger_load: float = 0.0
    learning_curve: list[float] = Field(default_factory=list)
    plateau_detected: bool = False
    optimal_practice_interval: float = 1.0
    consecutive_correct: int = 0
    last_practiced: float | None = None

    intervention_effects: list[tuple[str, float]] = Field(default_factory=list)
    confounding_factors: list[str] = Field(default_factory=list)


class NgramStatSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ngram: str
    attempts: int = 0
    errors: int = 0
    total_time: float = 0.0
    last_typed: float = 0.0


class NgramSnapshot(BaseModel):
    bigrams: list[tuple[str, NgramStatSnapshot]] = Field(default_factory=list)
    trigrams: list[tuple[str, NgramStatSnapshot]] = Field(default_factory=list)


class FingerStateSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keystrokes: NonNegativeInt = 0
    errors: NonNegativeInt = 0
    last_keystroke_time: float = 0.0
    fatigue_score: float = 0.0


class FatigueSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_keystrokes: NonNegativeInt = 0
    fingers: list[tuple[str, FingerStateSnapshot]] = Field(default_factory=list)


class RiskModelSnapshot(BaseModel):
    """Logistic weights; an empty list means the model was never saved."""

    model_config = ConfigDict(extra="ignore")

    weights: list[float] = Field(default_factory=list)
    bias: float = DEFAULT_BIAS
    trained_examples: NonNegativeInt = 0

    @field_validator("weights")
    @classmethod
    def weights_match_features(cls, v: list[float]) -> list[float]:
        if v and len(v) != FEATURE_COUNT:
            raise ValueError(f"expected {FEATURE_COUNT} weights, got {len(v)}")
        return v


class EngineSnapshot(BaseModel):
    """Everything the engine needs to resume."""

    model_config = ConfigDict(extra="ignore")

    version: int = SNAPSHOT_VERSION
    saved_at: float | None = Field(default=None, description="Epoch ms of the save")
    key_states: list[tuple[str, KeyStateSnapshot]] = Field(default_factory=list)
    ngrams: NgramSnapshot = Field(default_factory=NgramSnapshot)
    fatigue: FatigueSnapshot = Field(default_factory=FatigueSnapshot)
    risk_model: RiskModelSnapshot = Field(default_factory=RiskModelSnapshot)
