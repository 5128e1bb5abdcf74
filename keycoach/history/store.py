"""
Bounded time-series history.

Each tracked entity (a key, an n-gram) owns a HistoryStore: an append-only
sequence of (timestamp, value) entries capped at ``max_size``. When the cap
is exceeded the excess is pruned in one batch so the cost of an append stays
amortized O(1).

Specializations:
- SuccessHistory: boolean outcomes with success-rate helpers
- SpeedHistory: latency samples with mean/stddev/percentile
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")


def now_ms() -> float:
    """Wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


# =============================================================================
# Entries and Pruning
# =============================================================================


@dataclass(frozen=True)
class HistoryEntry(Generic[T]):
    """One observation in a history."""

    timestamp: float
    value: T


class PruneStrategy(str, Enum):
    """How a full history makes room."""

    OLDEST = "oldest"  # Drop exactly the excess oldest entries
    DECAY = "decay"  # Keep only the newest half of max_size


class HistoryStore(Generic[T]):
    """
    Bounded, append-only history with windowed queries.

    Args:
        max_size: Maximum number of retained entries
        prune_strategy: What to drop when ``max_size`` is exceeded
        clock: Millisecond clock used for window queries and default timestamps
    """

    def __init__(
        self,
        max_size: int = 1000,
        prune_strategy: PruneStrategy = PruneStrategy.OLDEST,
        clock: Callable[[], float] | None = None,
    ):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.prune_strategy = prune_strategy
        self._clock = clock or now_ms
        self._entries: list[HistoryEntry[T]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def add(self, value: T, timestamp: float | None = None) -> None:
        """Append a value, pruning the oldest excess once over max_size."""
        ts = self._clock() if timestamp is None else float(timestamp)
        self._entries.append(HistoryEntry(ts, value))
        if len(self._entries) > self.max_size:
            self._prune()

    def _prune(self) -> None:
        if self.prune_strategy is PruneStrategy.DECAY:
            keep = max(1, self.max_size // 2)
        else:
            keep = self.max_size
        excess = len(self._entries) - keep
        if excess > 0:
            del self._entries[:excess]

    def get_all(self) -> tuple[HistoryEntry[T], ...]:
        return tuple(self._entries)

    def values(self) -> list[T]:
        return [e.value for e in self._entries]

    def get_last(self, n: int) -> list[HistoryEntry[T]]:
        """The ``n`` most recent entries, oldest first."""
        if n <= 0:
            return []
        return self._entries[-n:]

    def get_window(self, window_ms: float) -> list[HistoryEntry[T]]:
        """Entries with ``timestamp >= now - window_ms``."""
        cutoff = self._clock() - window_ms
        # Explicit timestamps may arrive out of order
        return [e for e in self._entries if e.timestamp >= cutoff]

    def ewma(self, alpha: float = 0.3) -> float | None:
        """Exponentially weighted moving average seeded by the first value."""
        if not self._entries:
            return None
        result = float(self._entries[0].value)  # type: ignore[arg-type]
        for entry in self._entries[1:]:
            result = alpha * float(entry.value) + (1 - alpha) * result  # type: ignore[arg-type]
        return result

    def aggregate(
        self, window_ms: float, fn: Callable[[Sequence[T]], R]
    ) -> R | None:
        """Apply ``fn`` to the values inside the window, or None if it is empty."""
        window = self.get_window(window_ms)
        if not window:
            return None
        return fn([e.value for e in window])

    def clear(self) -> None:
        self._entries.clear()

    # =========================================================================
    # Serialization
    # =========================================================================

    def serialize(self) -> list[list]:
        """Entries as ``[timestamp, value]`` pairs."""
        return [[e.timestamp, e.value] for e in self._entries]

    def deserialize(self, pairs: Iterable) -> None:
        """Replace contents from ``[timestamp, value]`` pairs, skipping malformed ones."""
        entries: list[HistoryEntry[T]] = []
        skipped = 0
        for pair in pairs or []:
            try:
                ts, value = pair
                entries.append(HistoryEntry(float(ts), value))
            except (TypeError, ValueError):
                skipped += 1
        if skipped:
            logger.debug(f"Skipped {skipped} malformed history entries")
        self._entries = entries
        if len(self._entries) > self.max_size:
            self._prune()


# =============================================================================
# Specializations
# =============================================================================


class SuccessHistory(HistoryStore[bool]):
    """History of correct/incorrect outcomes."""

    def success_rate(self) -> float:
        if not self._entries:
            return 0.0
        return sum(1 for e in self._entries if e.value) / len(self._entries)

    def recent_success_rate(self, n: int = 10) -> float:
        recent = self.get_last(n)
        if not recent:
            return 0.0
        return sum(1 for e in recent if e.value) / len(recent)


class SpeedHistory(HistoryStore[float]):
    """History of keystroke latencies in milliseconds."""

    def mean(self) -> float:
        if not self._entries:
            return 0.0
        return sum(e.value for e in self._entries) / len(self._entries)

    def std_dev(self) -> float:
        n = len(self._entries)
        if n == 0:
            return 0.0
        mu = self.mean()
        return math.sqrt(sum((e.value - mu) ** 2 for e in self._entries) / n)

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile (``p`` in 0-100) of the recorded speeds."""
        if not self._entries:
            return 0.0
        ordered = sorted(e.value for e in self._entries)
        index = int(math.floor(p / 100.0 * len(ordered)))
        return ordered[min(max(index, 0), len(ordered) - 1)]
