"""Practice prioritization and spaced-repetition scheduling."""

from .curve import (
    detect_plateau,
    exponential_rate,
    learning_slope,
    predict_plateau_date,
    window_accuracy,
)
from .priority import (
    IntervalConfig,
    calculate_optimal_practice_interval,
    calculate_practice_priority,
    calculate_weakness_score,
    estimate_sessions_to_mastery,
    next_practice_date,
    recent_trend,
)

__all__ = [
    # Priority
    "calculate_practice_priority",
    "calculate_weakness_score",
    "recent_trend",
    # Spaced repetition
    "IntervalConfig",
    "calculate_optimal_practice_interval",
    "next_practice_date",
    # Mastery
    "estimate_sessions_to_mastery",
    # Learning curve
    "detect_plateau",
    "exponential_rate",
    "learning_slope",
    "predict_plateau_date",
    "window_accuracy",
]
