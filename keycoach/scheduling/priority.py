"""
Practice Priority Scheduler.

Turns a key's accuracy estimate, latent state, trend and recency into:
- a 0-100 practice priority
- a next-review interval (modified SM-2)
- an estimate of the sessions left until mastery
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from keycoach.hmm.tracker import HMMState

# =============================================================================
# Priority
# =============================================================================


def calculate_practice_priority(
    accuracy: float,
    confidence: float,
    hmm_state: HMMState | str,
    recent_trend: float,
    days_since_last_practice: float,
) -> float:
    """
    Multi-factor practice priority, clamped to [0, 100].

    Args:
        accuracy: Accuracy estimate (0-1)
        confidence: Confidence in the estimate (0-1)
        hmm_state: Current latent state
        recent_trend: -1 to 1, negative = declining
        days_since_last_practice: Days since the key was last typed

    Returns:
        Priority; higher means practice sooner
    """
    # Lower accuracy = higher priority
    priority = (1.0 - accuracy) * 50.0

    if HMMState.parse(hmm_state) is HMMState.REGRESSING:
        priority += 20.0

    if recent_trend < 0:
        priority += abs(recent_trend) * 15.0

    # Exploration bonus for uncertain estimates
    if confidence < 0.5:
        priority += (0.5 - confidence) * 10.0

    if days_since_last_practice > 1:
        priority += min(days_since_last_practice * 2.0, 15.0)

    return min(100.0, max(0.0, priority))


def recent_trend(outcomes: Sequence[bool], window: int = 10) -> float:
    """
    Change in success rate between the last ``window`` outcomes and the
    ``window`` before them, in [-1, 1]. Zero until both windows are full.
    """
    if window <= 0 or len(outcomes) < 2 * window:
        return 0.0
    recent = outcomes[-window:]
    previous = outcomes[-2 * window:-window]
    delta = sum(recent) / window - sum(previous) / window
    return max(-1.0, min(1.0, delta))


# =============================================================================
# Spaced Repetition
# =============================================================================


@dataclass
class IntervalConfig:
    """Bounds for the modified SM-2 interval."""

    initial_ease: float = 2.5
    minimum_ease: float = 1.3
    maximum_ease: float = 2.5
    minimum_days: float = 1.0
    maximum_days: float = 30.0


def calculate_optimal_practice_interval(
    accuracy: float,
    consecutive_correct: int,
    base_interval_days: float = 1.0,
    config: IntervalConfig | None = None,
) -> float:
    """
    Modified SM-2 review interval in days.

    The ease factor starts at 2.5 and is lowered for weak accuracy
    (<0.6 by 0.8, <0.8 by 0.15) or raised for near-perfect accuracy
    (>0.95 by 0.1), then clamped to [1.3, 2.5].
    interval = base * ease^consecutive_correct, clamped to [1, 30].
    """
    config = config or IntervalConfig()
    ease = config.initial_ease

    if accuracy < 0.6:
        ease -= 0.8
    elif accuracy < 0.8:
        ease -= 0.15
    elif accuracy > 0.95:
        ease += 0.1
    ease = min(config.maximum_ease, max(config.minimum_ease, ease))

    # Cap the exponent so very long streaks cannot overflow
    exponent = min(max(0, consecutive_correct), 64)
    interval = base_interval_days * ease**exponent
    return min(config.maximum_days, max(config.minimum_days, interval))


def next_practice_date(last_practiced: datetime, interval_days: float) -> datetime:
    return last_practiced + timedelta(days=interval_days)


# =============================================================================
# Mastery Estimation
# =============================================================================


def estimate_sessions_to_mastery(
    current_accuracy: float,
    learning_rate: float,
    threshold: float = 0.95,
) -> int | float:
    """
    Sessions until the exponential learning curve
    ``accuracy(n) = 1 - (1 - a0) * exp(-r * n)`` reaches ``threshold``.

    Returns:
        0 if already at threshold, ``math.inf`` if the learning rate is not
        positive, otherwise ceil(ln[(1-a0)/(1-threshold)] / r), at least 1
    """
    if current_accuracy >= threshold:
        return 0
    if learning_rate <= 0:
        return math.inf

    gap = 1.0 - current_accuracy
    if gap <= 0:
        return 0

    sessions = math.log(gap / (1.0 - threshold)) / learning_rate
    return max(1, math.ceil(sessions))


def calculate_weakness_score(
    accuracy: float,
    baseline: float,
    variance: float,
    avg_speed_ms: float,
    hmm_state: HMMState | str,
    plateau_detected: bool,
) -> float:
    """
    Composite weakness score (0-100).

    Sums the accuracy gap below the typist's baseline (x400), posterior
    variance (x200), a slow-speed penalty above 200 ms (max 20), and 10
    points each for regression and a plateau.
    """
    score = max(0.0, baseline - accuracy) * 400.0
    score += variance * 200.0
    score += min(20.0, max(0.0, (avg_speed_ms - 200.0) / 10.0))
    if HMMState.parse(hmm_state) is HMMState.REGRESSING:
        score += 10.0
    if plateau_detected:
        score += 10.0
    return min(100.0, max(0.0, score))
