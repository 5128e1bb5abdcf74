"""
Keyboard geometry and n-gram pattern classification.

Classifies problematic bigrams by the physical movement they need
(same finger twice, a jump across two or more rows, one hand only) and
builds a short weakness report from per-key errors plus n-gram stats.
QWERTY layout only.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from .analyzer import NgramAnalyzer

# Left hand: pinky=0, ring=1, middle=2, index=3,4
# Right hand: index=5,6, middle=7, ring=8, pinky=9
FINGER_MAP: dict[str, int] = {
    **dict.fromkeys("qaz1", 0),
    **dict.fromkeys("wsx2", 1),
    **dict.fromkeys("edc3", 2),
    **dict.fromkeys("rfv4", 3),
    **dict.fromkeys("tgb5", 4),
    **dict.fromkeys("yhn6", 5),
    **dict.fromkeys("ujm7", 6),
    **dict.fromkeys("ik,8", 7),
    **dict.fromkeys("ol.9", 8),
    **dict.fromkeys("p;/0[]'", 9),
}

# 0=number, 1=top, 2=home, 3=bottom
ROW_MAP: dict[str, int] = {
    **dict.fromkeys("1234567890", 0),
    **dict.fromkeys("qwertyuiop", 1),
    **dict.fromkeys("asdfghjkl;", 2),
    **dict.fromkeys("zxcvbnm,./", 3),
}

# 0=left, 1=right
HAND_MAP: dict[str, int] = {
    **dict.fromkeys("qwertasdfgzxcvb12345", 0),
    **dict.fromkeys("yuiophjkl;nm,./67890", 1),
}

FINGER_NAMES = (
    "left pinky",
    "left ring",
    "left middle",
    "left index (inner)",
    "left index",
    "right index",
    "right index (inner)",
    "right middle",
    "right ring",
    "right pinky",
)

FingerType = Literal["pinky", "ring", "middle", "index", "thumb"]

_FINGER_TYPES: tuple[FingerType, ...] = (
    "pinky", "ring", "middle", "index", "index",
    "index", "index", "middle", "ring", "pinky",
)


def finger_for_key(key: str) -> int | None:
    return FINGER_MAP.get(key.lower())


def finger_type_for_key(key: str) -> FingerType | None:
    """Physical finger type for a key; the space bar is typed by a thumb."""
    if key == " ":
        return "thumb"
    finger = finger_for_key(key)
    return _FINGER_TYPES[finger] if finger is not None else None


def finger_name(finger: int) -> str:
    if 0 <= finger < len(FINGER_NAMES):
        return FINGER_NAMES[finger]
    return "unknown"


def same_finger_keys(key: str) -> list[str]:
    """Other letter keys typed by the same finger of the same hand."""
    key = key.lower()
    finger = finger_type_for_key(key)
    hand = HAND_MAP.get(key)
    if finger is None or hand is None or finger == "thumb":
        return []
    return [
        other
        for other in "abcdefghijklmnopqrstuvwxyz;"
        if other != key
        and HAND_MAP.get(other) == hand
        and finger_type_for_key(other) == finger
    ]


def is_same_finger_bigram(a: str, b: str) -> bool:
    fa, fb = FINGER_MAP.get(a.lower()), FINGER_MAP.get(b.lower())
    return fa is not None and fa == fb


def is_row_jump_bigram(a: str, b: str) -> bool:
    """Two or more rows apart."""
    ra, rb = ROW_MAP.get(a.lower()), ROW_MAP.get(b.lower())
    if ra is None or rb is None:
        return False
    return abs(ra - rb) >= 2


def is_same_hand_bigram(a: str, b: str) -> bool:
    ha, hb = HAND_MAP.get(a.lower()), HAND_MAP.get(b.lower())
    return ha is not None and ha == hb


# =============================================================================
# Weakness Report
# =============================================================================


@dataclass
class BigramPatterns:
    same_finger: list[str] = field(default_factory=list)
    row_jump: list[str] = field(default_factory=list)
    same_hand: list[str] = field(default_factory=list)


@dataclass
class WeaknessReport:
    """Heuristic summary of weak keys and movement patterns."""

    weak_keys: list[str] = field(default_factory=list)
    weak_bigrams: list[str] = field(default_factory=list)
    suggested_focus: list[str] = field(default_factory=list)
    patterns: BigramPatterns = field(default_factory=BigramPatterns)
    insights: list[str] = field(default_factory=list)
    severity: Literal["low", "medium", "high"] = "low"


def analyze_weaknesses(
    per_key_errors: Mapping[str, tuple[int, int]],
    analyzer: NgramAnalyzer,
    min_attempts: int = 5,
) -> WeaknessReport:
    """
    Build a weakness report.

    Args:
        per_key_errors: key -> (attempts, errors)
        analyzer: Source of n-gram statistics
        min_attempts: Minimum attempts for a key or n-gram to count

    Returns:
        WeaknessReport with weak keys (>10% errors), weak bigrams (>15%),
        pattern lists, insights and an overall severity
    """
    report = WeaknessReport()

    weak: list[tuple[str, int, float]] = []
    for key, (attempts, errors) in per_key_errors.items():
        if attempts >= min_attempts and attempts > 0:
            rate = errors / attempts
            if rate > 0.1:
                weak.append((key, errors, rate))
    weak.sort(key=lambda item: item[2], reverse=True)
    report.weak_keys = [key for key, _, _ in weak[:5]]

    ngrams = analyzer.get_report(min_attempts)
    report.weak_bigrams = [
        s.ngram for s in ngrams.error_prone_bigrams if s.error_rate > 0.15
    ][:10]

    for stat in ngrams.error_prone_bigrams:
        a, b = stat.ngram[0], stat.ngram[1]
        if is_same_finger_bigram(a, b):
            report.patterns.same_finger.append(stat.ngram)
        if is_row_jump_bigram(a, b):
            report.patterns.row_jump.append(stat.ngram)
        if is_same_hand_bigram(a, b):
            report.patterns.same_hand.append(stat.ngram)

    for stat in ngrams.slowest_bigrams:
        a, b = stat.ngram[0], stat.ngram[1]
        if is_same_finger_bigram(a, b) and stat.ngram not in report.patterns.same_finger:
            report.patterns.same_finger.append(stat.ngram)

    if len(report.patterns.same_finger) > 3:
        report.insights.append(
            "Same-finger transitions are slowing you down. Focus on: "
            + ", ".join(report.patterns.same_finger[:3])
        )
    if len(report.patterns.row_jump) > 2:
        report.insights.append(
            "Row jumps need practice. Work on reaching between rows for: "
            + ", ".join(report.patterns.row_jump[:3])
        )

    finger_errors: dict[int, int] = {}
    for key, errors, _ in weak:
        finger = finger_for_key(key)
        if finger is not None:
            finger_errors[finger] = finger_errors.get(finger, 0) + errors
    if finger_errors:
        finger, errors = max(finger_errors.items(), key=lambda item: item[1])
        if errors > 5:
            report.insights.append(f"Your {finger_name(finger)} needs extra practice.")

    focus: dict[str, None] = dict.fromkeys(report.weak_keys)
    for bigram in report.weak_bigrams:
        focus.update(dict.fromkeys(bigram))
    report.suggested_focus = list(focus)[:8]

    score = (
        len(report.weak_keys) * 2
        + len(report.weak_bigrams)
        + len(report.patterns.same_finger)
    )
    if score > 15:
        report.severity = "high"
    elif score > 7:
        report.severity = "medium"

    return report
