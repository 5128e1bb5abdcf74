"""Bounded time-series storage for per-key observations."""

from .store import (
    HistoryEntry,
    HistoryStore,
    PruneStrategy,
    SpeedHistory,
    SuccessHistory,
    now_ms,
)

__all__ = [
    "HistoryEntry",
    "HistoryStore",
    "PruneStrategy",
    "SpeedHistory",
    "SuccessHistory",
    "now_ms",
]
