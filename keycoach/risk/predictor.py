"""
Live Risk Predictor.

Estimates the probability that the *next* keystroke will be an error,
given the current session context. Runs inside the keystroke handler,
so prediction is a single dot product over eleven normalized features
plus a sigmoid.

The model is a logistic regression. It starts from hand-calibrated
weights (accuracy and recent errors dominate) and can be refined on the
typist's own history with ``train``.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from keycoach.inference.sampling import RandomSource, default_rng

FEATURE_NAMES: tuple[str, ...] = (
    "Current Character",
    "Previous Character",
    "Typing Speed",
    "Current Accuracy",
    "Time (Cyclic Sin)",
    "Time (Cyclic Cos)",
    "Session Duration",
    "Fatigue Level",
    "Recent Errors",
    "Key Difficulty",
    "N-gram Difficulty",
)
FEATURE_COUNT = len(FEATURE_NAMES)

DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.0,   # current char
    0.0,   # previous char
    1.2,   # speed
    -2.5,  # accuracy
    0.0,   # hour sin
    0.0,   # hour cos
    0.4,   # session duration
    1.0,   # fatigue
    2.0,   # recent errors
    2.5,   # key difficulty
    1.8,   # n-gram difficulty
)
DEFAULT_BIAS = -0.5

MIN_TRAINING_EXAMPLES = 10
IMPORTANCE_FLOOR = 0.15

RiskLevel = Literal["low", "medium", "high"]


@dataclass
class PredictionContext:
    """Session context for the upcoming keystroke."""

    current_char: str
    previous_chars: list[str] = field(default_factory=list)  # most recent first
    current_wpm: float = 0.0
    current_accuracy: float = 100.0  # 0-100
    time_of_day: float = 12.0  # 0-23 hour
    session_duration: float = 0.0  # minutes since session start
    recent_errors: int = 0  # errors in last 10 keystrokes
    key_difficulty: float = 0.0  # 0-100
    ngram_difficulty: float = 0.0  # 0-100


@dataclass(frozen=True)
class ContributingFactor:
    factor: str
    importance: float


@dataclass(frozen=True)
class RiskPrediction:
    """Error probability for the next keystroke."""

    probability: float
    confidence: float
    risk_level: RiskLevel
    contributing_factors: tuple[ContributingFactor, ...] = ()


@dataclass(frozen=True)
class TrainingExample:
    features: tuple[float, ...]
    label: int  # 0 = correct, 1 = error


def encode_char(char: str) -> float:
    """Map a character into [0, 1): letters spread over [0, 1), digits over [0.5, 1)."""
    if not char:
        return 0.5
    code = ord(char[0].lower())
    if 97 <= code <= 122:
        return (code - 97) / 26
    if 48 <= code <= 57:
        return 0.5 + (code - 48) / 20
    return 0.5


def session_fatigue(session_minutes: float, recent_errors: float) -> float:
    time_fatigue = min(1.0, session_minutes / 45)
    error_fatigue = min(1.0, recent_errors / 10)
    return min(1.0, time_fatigue * 0.6 + error_fatigue * 0.4)


def extract_features(context: PredictionContext) -> list[float]:
    """Eleven normalized features, in FEATURE_NAMES order."""
    previous = context.previous_chars[0] if context.previous_chars else ""
    hour_angle = 2 * math.pi * context.time_of_day / 24
    return [
        encode_char(context.current_char),
        encode_char(previous),
        min(1.0, max(0.0, context.current_wpm / 120)),
        min(1.0, max(0.0, context.current_accuracy / 100)),
        # Cyclic encoding keeps 23:59 next to 00:01
        math.sin(hour_angle),
        math.cos(hour_angle),
        min(1.0, max(0.0, context.session_duration / 60)),
        session_fatigue(context.session_duration, context.recent_errors),
        min(1.0, max(0.0, context.recent_errors / 10)),
        min(1.0, max(0.0, context.key_difficulty / 100)),
        min(1.0, max(0.0, context.ngram_difficulty / 100)),
    ]


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-max(-500.0, min(500.0, x))))


def _risk_level(probability: float) -> RiskLevel:
    if probability > 0.6:
        return "high"
    if probability > 0.3:
        return "medium"
    return "low"


class LiveRiskPredictor:
    """
    Logistic error-risk model.

    Args:
        weights: One weight per feature (defaults to calibrated weights)
        bias: Intercept
        learning_rate: SGD step size for ``train``
        rng: Random source used to shuffle training examples
    """

    def __init__(
        self,
        weights: Sequence[float] | None = None,
        bias: float = DEFAULT_BIAS,
        learning_rate: float = 0.01,
        rng: RandomSource | None = None,
    ):
        self.weights = list(weights) if weights is not None else list(DEFAULT_WEIGHTS)
        if len(self.weights) != FEATURE_COUNT:
            raise ValueError(f"Expected {FEATURE_COUNT} weights, got {len(self.weights)}")
        self.bias = bias
        self.learning_rate = learning_rate
        self.trained_examples = 0
        self._rng = rng or default_rng()

    def _logit(self, features: Sequence[float]) -> float:
        total = self.bias
        for w, x in zip(self.weights, features):
            total += w * x
        return total

    def predict_probability(self, context: PredictionContext) -> float:
        """Hot-path variant: probability only."""
        return _sigmoid(self._logit(extract_features(context)))

    def predict(self, context: PredictionContext) -> RiskPrediction:
        features = extract_features(context)
        probability = _sigmoid(self._logit(features))

        # Lower entropy = higher confidence
        if 0.0 < probability < 1.0:
            entropy = -probability * math.log2(probability) - (1 - probability) * math.log2(
                1 - probability
            )
        else:
            entropy = 0.0

        return RiskPrediction(
            probability=probability,
            confidence=1.0 - entropy,
            risk_level=_risk_level(probability),
            contributing_factors=self._importance(features),
        )

    def _importance(self, features: Sequence[float]) -> tuple[ContributingFactor, ...]:
        contributions = [abs(w * x) for w, x in zip(self.weights, features)]
        peak = max(max(contributions), 0.001)
        ranked = sorted(
            (
                ContributingFactor(name, c / peak)
                for name, c in zip(FEATURE_NAMES, contributions)
                if c / peak > IMPORTANCE_FLOOR
            ),
            key=lambda f: f.importance,
            reverse=True,
        )
        return tuple(ranked[:5])

    # =========================================================================
    # Training
    # =========================================================================

    def train(self, examples: Sequence[TrainingExample], epochs: int = 50) -> float | None:
        """
        Fit weights by SGD on binary cross-entropy.

        Returns:
            Mean loss of the final epoch, or None when there were fewer than
            10 usable examples and nothing was trained
        """
        usable = [e for e in examples if len(e.features) == FEATURE_COUNT]
        if len(usable) < MIN_TRAINING_EXAMPLES:
            logger.info(
                f"Not enough examples to train risk model "
                f"({len(usable)}/{MIN_TRAINING_EXAMPLES})"
            )
            return None

        mean_loss = 0.0
        for epoch in range(epochs):
            total_loss = 0.0
            for example in self._shuffle(usable):
                probability = _sigmoid(self._logit(example.features))
                total_loss += -example.label * math.log(probability + 1e-10) - (
                    1 - example.label
                ) * math.log(1 - probability + 1e-10)

                gradient = probability - example.label
                for i, x in enumerate(example.features):
                    self.weights[i] -= self.learning_rate * gradient * x
                self.bias -= self.learning_rate * gradient

            mean_loss = total_loss / len(usable)
            if epoch % 10 == 0:
                logger.debug(f"Risk model epoch {epoch}: loss={mean_loss:.4f}")

        self.trained_examples += len(usable)
        logger.info(f"Risk model trained on {len(usable)} examples (loss={mean_loss:.4f})")
        return mean_loss

    def _shuffle(self, items: Sequence[TrainingExample]) -> list[TrainingExample]:
        """Fisher-Yates shuffle driven by the injected random source."""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = int(self._rng.random() * (i + 1))
            result[i], result[j] = result[j], result[i]
        return result

    # =========================================================================
    # Snapshot
    # =========================================================================

    def to_snapshot(self) -> dict:
        return {
            "weights": list(self.weights),
            "bias": self.bias,
            "trained_examples": self.trained_examples,
        }

    def from_snapshot(self, data: dict) -> None:
        if not data or not data.get("weights"):
            return
        weights = data["weights"]
        if not isinstance(weights, list) or len(weights) != FEATURE_COUNT:
            logger.warning("Ignoring risk model snapshot with unexpected weights")
            return
        try:
            parsed = [float(w) for w in weights]
            bias = float(data.get("bias", DEFAULT_BIAS))
            trained = int(data.get("trained_examples", 0))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Ignoring risk model snapshot: {exc}")
            return
        self.weights, self.bias, self.trained_examples = parsed, bias, trained
