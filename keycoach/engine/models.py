"""
Engine data model.

KeyState is the mutable per-key source of truth. Everything else here is
either an input (KeystrokeEvent, KeyContext) or a derived, read-only view
(UltimateWeaknessResult, DashboardData).
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from keycoach.ensemble.predictor import EnsembleBreakdown
from keycoach.history.store import PruneStrategy, SpeedHistory, SuccessHistory
from keycoach.hmm.tracker import STATE_ORDER, HMMState, default_state_probabilities
from keycoach.ngram.analyzer import NgramReport
from keycoach.risk.fatigue import FatigueDashboard

from .snapshot import KeyStateSnapshot

SessionPosition = Literal["early", "middle", "late"]

# =============================================================================
# Inputs
# =============================================================================


class KeystrokeEvent(BaseModel):
    """One keystroke delivered by the capture loop (camelCase accepted)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(default="", description="Key actually pressed")
    expected: str = Field(..., min_length=1, description="Key that should have been pressed")
    timestamp: float = Field(..., description="Epoch milliseconds")
    is_correct: bool = Field(..., alias="isCorrect")
    hesitation_ms: float = Field(default=0.0, ge=0, alias="hesitationMs")
    finger: str | None = None
    previous_key: str | None = Field(default=None, alias="previousKey")


@dataclass
class KeyContext:
    """Context of a single observation passed to ``update_key``."""

    timestamp: float | None = None
    session_position: float = 0.0  # 0-1 position within the session
    recent_errors: int = 0  # errors in the last 10 keystrokes
    adjacent_key: str | None = None
    hour: int | None = None  # overrides the hour derived from timestamp

    @classmethod
    def coerce(cls, raw: KeyContext | Mapping[str, Any] | None) -> KeyContext:
        """Build a context from loose input; unusable fields fall back to defaults."""
        if isinstance(raw, KeyContext):
            return raw
        if not isinstance(raw, Mapping):
            return cls()

        def pick(*names: str) -> Any:
            for name in names:
                if raw.get(name) is not None:
                    return raw[name]
            return None

        return cls(
            timestamp=_finite_or(pick("timestamp"), None),
            session_position=min(1.0, max(0.0, _finite_or(
                pick("session_position", "sessionPosition"), 0.0))),
            recent_errors=max(0, int(_finite_or(pick("recent_errors", "recentErrors"), 0))),
            adjacent_key=_str_or_none(pick("adjacent_key", "adjacentKey", "previous_key")),
            hour=_hour_or_none(pick("hour")),
        )


def _finite_or(value: Any, default: Any) -> Any:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _hour_or_none(value: Any) -> int | None:
    hour = _finite_or(value, None)
    if hour is None or not 0 <= hour < 24:
        return None
    return int(hour)


# =============================================================================
# Key State
# =============================================================================


@dataclass
class KeyState:
    """Everything the engine knows about one key."""

    key: str

    # Beta-Binomial accuracy
    alpha_prior: float = 1.0
    beta_prior: float = 1.0
    alpha_post: float = 1.0
    beta_post: float = 1.0

    # Gamma speed model (keys/second)
    shape_param: float = 2.0
    rate_param: float = 0.4

    hmm_state: HMMState = HMMState.LEARNING
    transition_probs: dict[HMMState, float] = field(default_factory=default_state_probabilities)

    outcomes: SuccessHistory = field(default_factory=SuccessHistory)
    speeds: SpeedHistory = field(default_factory=SpeedHistory)

    # Contextual histograms: bucket -> [attempts, successes] / key -> [seen, errors]
    time_of_day: dict[int, list[int]] = field(default_factory=dict)
    session_position: dict[int, list[int]] = field(default_factory=dict)
    adjacent_keys: dict[str, list[int]] = field(default_factory=dict)

    finger_load: float = 0.0
    learning_curve: list[float] = field(default_factory=list)
    plateau_detected: bool = False
    optimal_practice_interval: float = 1.0
    consecutive_correct: int = 0
    last_practiced: float | None = None

    intervention_effects: dict[str, float] = field(default_factory=dict)
    confounding_factors: list[str] = field(default_factory=list)

    @classmethod
    def new(
        cls,
        key: str,
        prior_alpha: float = 1.0,
        prior_beta: float = 1.0,
        speed_shape: float = 2.0,
        speed_rate: float = 0.4,
        max_size: int = 1000,
        prune_strategy: PruneStrategy = PruneStrategy.OLDEST,
        clock: Callable[[], float] | None = None,
    ) -> KeyState:
        return cls(
            key=key,
            alpha_prior=prior_alpha,
            beta_prior=prior_beta,
            alpha_post=prior_alpha,
            beta_post=prior_beta,
            shape_param=speed_shape,
            rate_param=speed_rate,
            outcomes=SuccessHistory(max_size, prune_strategy, clock),
            speeds=SpeedHistory(max_size, prune_strategy, clock),
        )

    @property
    def attempts(self) -> list[float]:
        """Timestamps of every retained attempt."""
        return [e.timestamp for e in self.outcomes.get_all()]

    @property
    def successes(self) -> list[float]:
        """Timestamps of retained correct attempts."""
        return [e.timestamp for e in self.outcomes.get_all() if e.value]

    @property
    def total_attempts(self) -> int:
        """Posterior evidence count (not limited by history pruning)."""
        return int(round(self.alpha_post + self.beta_post - self.alpha_prior - self.beta_prior))

    @property
    def total_successes(self) -> int:
        return int(round(self.alpha_post - self.alpha_prior))

    @property
    def total_failures(self) -> int:
        return int(round(self.beta_post - self.beta_prior))

    # =========================================================================
    # Snapshot
    # =========================================================================

    def to_snapshot(self) -> KeyStateSnapshot:
        return KeyStateSnapshot(
            alpha_prior=self.alpha_prior,
            beta_prior=self.beta_prior,
            alpha_post=self.alpha_post,
            beta_post=self.beta_post,
            shape_param=self.shape_param,
            rate_param=self.rate_param,
            hmm_state=self.hmm_state.value,
            transition_probs=[(s.value, p) for s, p in self.transition_probs.items()],
            outcomes=[(e.timestamp, bool(e.value)) for e in self.outcomes.get_all()],
            speeds=[(e.timestamp, float(e.value)) for e in self.speeds.get_all()],
            time_of_day=[(h, list(c)) for h, c in self.time_of_day.items()],
            session_position=[(b, list(c)) for b, c in self.session_position.items()],
            adjacent_keys=[(k, list(c)) for k, c in self.adjacent_keys.items()],
            finger_load=self.finger_load,
            learning_curve=list(self.learning_curve),
            plateau_detected=self.plateau_detected,
            optimal_practice_interval=self.optimal_practice_interval,
            consecutive_correct=self.consecutive_correct,
            last_practiced=self.last_practiced,
            intervention_effects=list(self.intervention_effects.items()),
            confounding_factors=list(self.confounding_factors),
        )

    @classmethod
    def from_snapshot(
        cls,
        key: str,
        snapshot: KeyStateSnapshot,
        max_size: int = 1000,
        prune_strategy: PruneStrategy = PruneStrategy.OLDEST,
        clock: Callable[[], float] | None = None,
    ) -> KeyState:
        outcomes = SuccessHistory(max_size, prune_strategy, clock)
        outcomes.deserialize(snapshot.outcomes)
        speeds = SpeedHistory(max_size, prune_strategy, clock)
        speeds.deserialize(snapshot.speeds)

        probs = {HMMState.parse(s): p for s, p in snapshot.transition_probs}
        if set(probs) != set(STATE_ORDER):
            probs = default_state_probabilities(HMMState.parse(snapshot.hmm_state))

        return cls(
            key=key,
            alpha_prior=snapshot.alpha_prior,
            beta_prior=snapshot.beta_prior,
            alpha_post=max(snapshot.alpha_post, snapshot.alpha_prior),
            beta_post=max(snapshot.beta_post, snapshot.beta_prior),
            shape_param=snapshot.shape_param,
            rate_param=snapshot.rate_param,
            hmm_state=HMMState.parse(snapshot.hmm_state),
            transition_probs=probs,
            outcomes=outcomes,
            speeds=speeds,
            time_of_day={h: list(c) for h, c in snapshot.time_of_day},
            session_position={b: list(c) for b, c in snapshot.session_position},
            adjacent_keys={k: list(c) for k, c in snapshot.adjacent_keys},
            finger_load=snapshot.finger_load,
            learning_curve=list(snapshot.learning_curve),
            plateau_detected=snapshot.plateau_detected,
            optimal_practice_interval=snapshot.optimal_practice_interval,
            consecutive_correct=snapshot.consecutive_correct,
            last_practiced=snapshot.last_practiced,
            intervention_effects=dict(snapshot.intervention_effects),
            confounding_factors=list(snapshot.confounding_factors),
        )

    def copy(self) -> KeyState:
        """Deep copy that shares nothing with this state."""
        return KeyState.from_snapshot(
            self.key,
            self.to_snapshot(),
            self.outcomes.max_size,
            self.outcomes.prune_strategy,
            self.outcomes._clock,
        )


# =============================================================================
# Analysis Results
# =============================================================================


@dataclass(frozen=True)
class CorrelatedKey:
    """A preceding key after which this key fails unusually often."""

    key: str
    correlation: float  # error rate of this key right after ``key``
    occurrences: int


@dataclass(frozen=True)
class Intervention:
    name: str  # stable id used to record observed effects
    intervention: str
    expected_improvement: float  # percent
    confidence: float

    @property
    def expected_value(self) -> float:
        return self.expected_improvement * self.confidence


@dataclass(frozen=True)
class ContextualInsights:
    best_time: int
    optimal_position: SessionPosition
    correlated_keys: tuple[CorrelatedKey, ...]


@dataclass(frozen=True)
class UltimateWeaknessResult:
    """Read-only analysis of one key, derived on demand from its KeyState."""

    key: str
    attempts: int

    # Accuracy
    accuracy_estimate: float
    accuracy_ci: tuple[float, float]

    # Speed
    speed_estimate: float
    speed_ci: tuple[float, float]

    # State
    current_state: HMMState
    state_probabilities: dict[HMMState, float]

    # Weakness
    is_weak: bool
    weakness_score: float
    confidence: float

    # Scheduling
    practice_priority: float
    optimal_next_practice: datetime
    estimated_sessions_to_mastery: int | float

    # Context
    best_practice_time: int
    optimal_session_position: SessionPosition
    correlated_keys: tuple[CorrelatedKey, ...]
    recommended_interventions: tuple[Intervention, ...]

    # Ensemble
    ensemble: EnsembleBreakdown

    # Meta-learning
    learning_rate: float
    expected_plateau_date: datetime | None
    transfer_learning_potential: dict[str, float]
    sampled_accuracy: float

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view."""
        sessions = self.estimated_sessions_to_mastery
        return {
            "key": self.key,
            "attempts": self.attempts,
            "accuracy_estimate": round(self.accuracy_estimate, 4),
            "accuracy_ci": [round(v, 4) for v in self.accuracy_ci],
            "speed_estimate": round(self.speed_estimate, 1),
            "speed_ci": [round(v, 1) if math.isfinite(v) else None for v in self.speed_ci],
            "current_state": self.current_state.value,
            "state_probabilities": {
                s.value: round(p, 4) for s, p in self.state_probabilities.items()
            },
            "is_weak": self.is_weak,
            "weakness_score": round(self.weakness_score, 2),
            "confidence": round(self.confidence, 4),
            "practice_priority": round(self.practice_priority, 2),
            "optimal_next_practice": self.optimal_next_practice.isoformat(),
            "estimated_sessions_to_mastery": None if math.isinf(sessions) else sessions,
            "best_practice_time": self.best_practice_time,
            "optimal_session_position": self.optimal_session_position,
            "correlated_keys": [
                {"key": c.key, "correlation": round(c.correlation, 4)}
                for c in self.correlated_keys
            ],
            "recommended_interventions": [
                {
                    "name": i.name,
                    "intervention": i.intervention,
                    "expected_improvement": i.expected_improvement,
                    "confidence": i.confidence,
                }
                for i in self.recommended_interventions
            ],
            "ensemble": self.ensemble.to_dict(),
            "learning_rate": round(self.learning_rate, 5),
            "expected_plateau_date": (
                self.expected_plateau_date.isoformat() if self.expected_plateau_date else None
            ),
            "transfer_learning_potential": self.transfer_learning_potential,
            "sampled_accuracy": round(self.sampled_accuracy, 4),
        }


@dataclass
class DashboardData:
    """Aggregate read for UI summaries."""

    tracked_keys: int = 0
    total_attempts: int = 0
    overall_accuracy: float = 0.0
    state_distribution: dict[str, int] = field(default_factory=dict)
    weakest_keys: list[UltimateWeaknessResult] = field(default_factory=list)
    due_keys: list[str] = field(default_factory=list)
    ngram_report: NgramReport = field(default_factory=NgramReport)
    fatigue: FatigueDashboard = field(default_factory=FatigueDashboard)
    session_keystrokes: int = 0


# =============================================================================
# Session
# =============================================================================


@dataclass
class SessionStats:
    """Running counters for the current typing session."""

    started_at: float | None = None  # epoch ms of the first keystroke
    expected_length: int | None = None
    keystrokes: int = 0
    correct: int = 0
    last_timestamp: float | None = None
    recent_outcomes: deque[bool] = field(default_factory=lambda: deque(maxlen=10))
    recent_keys: deque[str] = field(default_factory=lambda: deque(maxlen=5))

    def register(self, key: str, is_correct: bool, timestamp: float) -> None:
        if self.started_at is None:
            self.started_at = timestamp
        self.keystrokes += 1
        if is_correct:
            self.correct += 1
        self.last_timestamp = timestamp
        self.recent_outcomes.append(is_correct)
        self.recent_keys.append(key)

    @property
    def recent_errors(self) -> int:
        return sum(1 for ok in self.recent_outcomes if not ok)

    @property
    def duration_minutes(self) -> float:
        if self.started_at is None or self.last_timestamp is None:
            return 0.0
        return max(0.0, (self.last_timestamp - self.started_at) / 60_000)

    @property
    def wpm(self) -> float:
        """Words (5 keystrokes) per minute since the session started."""
        minutes = self.duration_minutes
        if minutes <= 0:
            return 0.0
        return (self.keystrokes / 5) / minutes

    @property
    def accuracy(self) -> float:
        """Percent correct, 100 before the first keystroke."""
        if self.keystrokes == 0:
            return 100.0
        return self.correct / self.keystrokes * 100

    def position(self, nominal_minutes: float = 15.0) -> float:
        """0-1 progress through the session, by length if known, else by time."""
        if self.expected_length:
            return min(1.0, self.keystrokes / self.expected_length)
        if nominal_minutes <= 0:
            return 0.0
        return min(1.0, self.duration_minutes / nominal_minutes)
