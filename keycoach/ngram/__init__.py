"""Bigram/trigram difficulty statistics and keyboard pattern analysis."""

from .analyzer import NgramAnalyzer, NgramReport, NgramStat
from .patterns import (
    WeaknessReport,
    analyze_weaknesses,
    finger_for_key,
    finger_type_for_key,
    is_row_jump_bigram,
    is_same_finger_bigram,
    is_same_hand_bigram,
    same_finger_keys,
)

__all__ = [
    "NgramAnalyzer",
    "NgramReport",
    "NgramStat",
    "WeaknessReport",
    "analyze_weaknesses",
    "finger_for_key",
    "finger_type_for_key",
    "is_row_jump_bigram",
    "is_same_finger_bigram",
    "is_same_hand_bigram",
    "same_finger_keys",
]
