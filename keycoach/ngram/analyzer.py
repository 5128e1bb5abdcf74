"""
N-gram Difficulty Analyzer.

Tracks typing performance at the character-pair (bigram) and
character-triplet (trigram) level to identify problematic transitions.

A rolling buffer of the last four keystrokes feeds every update. A
transition that takes longer than ``max_gap_ms`` is a pause, not a
transition, and is discarded. Only lowercase letter sequences are stored.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import asdict, dataclass, field

from loguru import logger

_LETTERS = re.compile(r"[a-z]+")
BUFFER_SIZE = 4
REPORT_LIMIT = 10


@dataclass
class NgramStat:
    """Timing and error statistics for one n-gram."""

    ngram: str
    attempts: int = 0
    errors: int = 0
    total_time: float = 0.0
    avg_time: float = 0.0
    error_rate: float = 0.0
    last_typed: float = 0.0

    def record(self, time_diff: float, has_error: bool, timestamp: float) -> None:
        self.attempts += 1
        if has_error:
            self.errors += 1
        self.total_time += time_diff
        self.avg_time = self.total_time / self.attempts
        self.error_rate = self.errors / self.attempts
        self.last_typed = timestamp

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "NgramStat":
        stat = cls(
            ngram=str(data["ngram"]),
            attempts=int(data.get("attempts", 0)),
            errors=int(data.get("errors", 0)),
            total_time=float(data.get("total_time", 0.0)),
            last_typed=float(data.get("last_typed", 0.0)),
        )
        # Derived fields are recomputed, never trusted from storage
        if stat.attempts > 0:
            stat.avg_time = stat.total_time / stat.attempts
            stat.error_rate = stat.errors / stat.attempts
        return stat


@dataclass
class NgramReport:
    """Summary of the slowest and most error-prone n-grams."""

    slowest_bigrams: list[NgramStat] = field(default_factory=list)
    error_prone_bigrams: list[NgramStat] = field(default_factory=list)
    slowest_trigrams: list[NgramStat] = field(default_factory=list)
    error_prone_trigrams: list[NgramStat] = field(default_factory=list)
    average_bigram_time: float = 0.0
    average_trigram_time: float = 0.0


@dataclass(frozen=True)
class _BufferedKey:
    char: str
    timestamp: float
    correct: bool


class NgramAnalyzer:
    """
    Per-bigram/trigram difficulty statistics.

    Args:
        max_gap_ms: Transitions slower than this are treated as pauses
    """

    def __init__(self, max_gap_ms: float = 5000.0):
        self.max_gap_ms = max_gap_ms
        self._bigrams: dict[str, NgramStat] = {}
        self._trigrams: dict[str, NgramStat] = {}
        self._recent: deque[_BufferedKey] = deque(maxlen=BUFFER_SIZE)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_keystroke(self, char: str, timestamp: float, is_correct: bool) -> None:
        """Push a keystroke into the rolling buffer and update n-gram stats."""
        if not char:
            return
        self._recent.append(_BufferedKey(char.lower(), float(timestamp), bool(is_correct)))
        buffered = list(self._recent)

        if len(buffered) >= 2:
            self._update(self._bigrams, buffered[-2:])
        if len(buffered) >= 3:
            self._update(self._trigrams, buffered[-3:])

    def _update(self, table: dict[str, NgramStat], span: list[_BufferedKey]) -> None:
        ngram = "".join(k.char for k in span)
        time_diff = span[-1].timestamp - span[0].timestamp

        if time_diff < 0 or time_diff > self.max_gap_ms:
            return
        if len(ngram) != len(span) or not _LETTERS.fullmatch(ngram):
            return

        has_error = any(not k.correct for k in span)
        stat = table.get(ngram)
        if stat is None:
            stat = table[ngram] = NgramStat(ngram=ngram)
        stat.record(time_diff, has_error, span[-1].timestamp)

    def reset_sequence(self) -> None:
        """Forget the rolling buffer (e.g. at lesson start)."""
        self._recent.clear()

    def clear(self) -> None:
        """Drop all statistics and the rolling buffer."""
        self._bigrams = {}
        self._trigrams = {}
        self._recent.clear()
        logger.debug("N-gram statistics cleared")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_bigram_stats(self, bigram: str) -> NgramStat | None:
        stat = self._bigrams.get(bigram.lower())
        return NgramStat(**asdict(stat)) if stat else None

    def get_trigram_stats(self, trigram: str) -> NgramStat | None:
        stat = self._trigrams.get(trigram.lower())
        return NgramStat(**asdict(stat)) if stat else None

    def get_report(self, min_attempts: int = 5) -> NgramReport:
        """Top slowest and most error-prone n-grams with enough attempts."""
        bigrams = [s for s in self._bigrams.values() if s.attempts >= min_attempts]
        trigrams = [s for s in self._trigrams.values() if s.attempts >= min_attempts]

        return NgramReport(
            slowest_bigrams=_copies(_slowest(bigrams)),
            error_prone_bigrams=_copies(_error_prone(bigrams)),
            slowest_trigrams=_copies(_slowest(trigrams)),
            error_prone_trigrams=_copies(_error_prone(trigrams)),
            average_bigram_time=_mean_time(bigrams),
            average_trigram_time=_mean_time(trigrams),
        )

    def get_problematic_bigrams(self, min_attempts: int = 3) -> list[NgramStat]:
        """Bigrams with more than 10% errors, worst first."""
        found = [
            s for s in self._bigrams.values()
            if s.attempts >= min_attempts and s.error_rate > 0.1
        ]
        return _copies(sorted(found, key=lambda s: s.error_rate, reverse=True))

    def get_slow_bigrams(self, min_attempts: int = 3) -> list[NgramStat]:
        """Bigrams at least 50% slower than the average bigram."""
        threshold = self.get_report(min_attempts).average_bigram_time * 1.5
        found = [
            s for s in self._bigrams.values()
            if s.attempts >= min_attempts and s.avg_time > threshold
        ]
        return _copies(sorted(found, key=lambda s: s.avg_time, reverse=True))

    def bigrams_containing(self, char: str) -> list[NgramStat]:
        char = char.lower()
        return _copies([s for s in self._bigrams.values() if char in s.ngram])

    def error_rate_for_key(self, char: str) -> float | None:
        """Attempt-weighted error rate across bigrams containing ``char``."""
        char = char.lower()
        attempts = errors = 0
        for stat in self._bigrams.values():
            if char in stat.ngram:
                attempts += stat.attempts
                errors += stat.errors
        if attempts == 0:
            return None
        return errors / attempts

    def get_stats(self) -> dict[str, int]:
        bigram_attempts = sum(s.attempts for s in self._bigrams.values())
        trigram_attempts = sum(s.attempts for s in self._trigrams.values())
        return {
            "bigram_count": len(self._bigrams),
            "trigram_count": len(self._trigrams),
            "total_attempts": bigram_attempts + trigram_attempts,
        }

    # =========================================================================
    # Snapshot
    # =========================================================================

    def to_snapshot(self) -> dict[str, list]:
        return {
            "bigrams": [[k, s.to_dict()] for k, s in self._bigrams.items()],
            "trigrams": [[k, s.to_dict()] for k, s in self._trigrams.items()],
        }

    def from_snapshot(self, data: dict) -> None:
        self._bigrams = _load_table(data.get("bigrams", []))
        self._trigrams = _load_table(data.get("trigrams", []))
        self._recent.clear()


def _slowest(stats: list[NgramStat]) -> list[NgramStat]:
    return sorted(stats, key=lambda s: s.avg_time, reverse=True)[:REPORT_LIMIT]


def _error_prone(stats: list[NgramStat]) -> list[NgramStat]:
    flagged = [s for s in stats if s.error_rate > 0]
    return sorted(flagged, key=lambda s: s.error_rate, reverse=True)[:REPORT_LIMIT]


def _mean_time(stats: list[NgramStat]) -> float:
    if not stats:
        return 0.0
    return sum(s.avg_time for s in stats) / len(stats)


def _copies(stats: list[NgramStat]) -> list[NgramStat]:
    return [NgramStat(**asdict(s)) for s in stats]


def _load_table(pairs: list) -> dict[str, NgramStat]:
    table: dict[str, NgramStat] = {}
    for pair in pairs:
        try:
            key, raw = pair
            stat = NgramStat.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping malformed n-gram entry: {pair!r}")
            continue
        if isinstance(key, str) and _LETTERS.fullmatch(key):
            table[key] = stat
    return table
