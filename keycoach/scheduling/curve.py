"""Learning-curve sampling, plateau detection and learning-rate estimation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

DEFAULT_LEARNING_RATE = 0.02  # 2% per session until enough samples exist
PLATEAU_DELTA = 0.02
PLATEAU_WINDOW = 10


def window_accuracy(outcomes: Sequence[bool], window: int) -> float | None:
    """Success rate over the last ``window`` outcomes, once that many exist."""
    if window <= 0 or len(outcomes) < window:
        return None
    recent = outcomes[-window:]
    return sum(1 for o in recent if o) / window


def detect_plateau(curve: Sequence[float], window: int = PLATEAU_WINDOW) -> bool:
    """True when the mean of the last window barely differs from the one before."""
    if len(curve) < 2 * window:
        return False
    recent = curve[-window:]
    previous = curve[-2 * window:-window]
    improvement = sum(recent) / window - sum(previous) / window
    return abs(improvement) < PLATEAU_DELTA


def learning_slope(curve: Sequence[float]) -> float:
    """Least-squares slope of the curve per sample, floored at 0."""
    n = len(curve)
    if n < 3:
        return DEFAULT_LEARNING_RATE

    sum_x = n * (n - 1) / 2
    sum_x2 = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(curve)
    sum_xy = sum(i * y for i, y in enumerate(curve))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    return max(0.0, slope)


def exponential_rate(slope: float, current_accuracy: float) -> float:
    """
    Rate ``r`` of ``1 - (1 - a0) * exp(-r * n)`` whose initial slope matches
    the observed linear slope.
    """
    gap = 1.0 - current_accuracy
    if gap <= 0:
        return 0.0
    return slope / gap


def predict_plateau_date(
    curve: Sequence[float],
    plateau_detected: bool,
    interval_days: float,
    now: datetime,
    target: float = 0.95,
) -> datetime | None:
    """
    When improvement is expected to flatten out.

    Returns ``now`` if already on a plateau, one week out for very slow
    learners, None when the key is within 5% of the target, otherwise the
    date at which 1%-per-session progress would close the remaining gap.
    """
    if plateau_detected:
        return now

    if learning_slope(curve) < 0.005:
        return now + timedelta(days=7)

    current = curve[-1] if curve else 0.5
    gap = target - current
    if gap < 0.05:
        return None

    sessions = gap / 0.01
    return now + timedelta(days=max(1.0, sessions * interval_days))
