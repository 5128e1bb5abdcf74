"""
Finger Fatigue Tracking.

Tracks per-finger load during a session and recommends breaks:
- Keystroke volume per finger
- Error rate per finger
- Rapid successive keystrokes
- Finger strength (pinkies tire fastest, thumbs slowest)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal

from loguru import logger

from keycoach.ngram.patterns import HAND_MAP, finger_type_for_key

Hand = Literal["left", "right"]
Finger = Literal["pinky", "ring", "middle", "index", "thumb"]

FINGERS: tuple[Finger, ...] = ("pinky", "ring", "middle", "index", "thumb")
HANDS: tuple[Hand, ...] = ("left", "right")

# Some fingers tire faster
FATIGUE_WEIGHT: dict[str, float] = {
    "pinky": 1.5,
    "ring": 1.2,
    "middle": 0.8,
    "index": 1.0,
    "thumb": 0.6,
}

# Keys outside the letter/number map
_EXTRA_KEYS: dict[str, tuple[Hand, Finger]] = {
    "`": ("left", "pinky"),
    "tab": ("left", "pinky"),
    "capslock": ("left", "pinky"),
    "shift": ("left", "pinky"),
    " ": ("left", "thumb"),
    "-": ("right", "pinky"),
    "=": ("right", "pinky"),
    "\\": ("right", "pinky"),
    "enter": ("right", "pinky"),
    "backspace": ("right", "pinky"),
}


def finger_of(key: str) -> tuple[Hand, Finger] | None:
    """Hand and finger that type ``key`` on QWERTY."""
    lowered = key.lower()
    if lowered in _EXTRA_KEYS:
        return _EXTRA_KEYS[lowered]
    finger = finger_type_for_key(lowered)
    hand = HAND_MAP.get(lowered)
    if finger is None or hand is None:
        return None
    return ("left" if hand == 0 else "right", finger)


@dataclass
class FingerState:
    hand: Hand
    finger: Finger
    keystrokes: int = 0
    errors: int = 0
    last_keystroke_time: float = 0.0
    fatigue_score: float = 0.0  # 0-100


@dataclass
class FatigueConfig:
    """Thresholds for fatigue recommendations."""

    rapid_gap_ms: float = 200.0
    break_threshold: float = 70.0
    moderate_threshold: float = 50.0
    mild_threshold: float = 30.0
    tired_finger_threshold: float = 60.0


@dataclass
class FatigueDashboard:
    """Summary of finger fatigue for display."""

    fingers: dict[str, FingerState] = field(default_factory=dict)
    overall_fatigue: float = 0.0
    recommendation: str = ""
    should_take_break: bool = False
    tired_fingers: list[str] = field(default_factory=list)


class FingerFatigueTracker:
    """Per-finger load model for one session."""

    def __init__(self, config: FatigueConfig | None = None):
        self.config = config or FatigueConfig()
        self.total_keystrokes = 0
        self._fingers: dict[str, FingerState] = {}
        self.reset()

    def reset(self) -> None:
        self.total_keystrokes = 0
        self._fingers = {
            f"{hand}-{finger}": FingerState(hand=hand, finger=finger)
            for hand in HANDS
            for finger in FINGERS
        }

    def record_keystroke(self, key: str, timestamp: float, is_error: bool = False) -> None:
        """Add one keystroke to the finger that typed ``key``."""
        located = finger_of(key)
        if located is None:
            return
        hand, finger = located
        state = self._fingers[f"{hand}-{finger}"]

        self.total_keystrokes += 1
        state.keystrokes += 1
        if is_error:
            state.errors += 1

        gap = timestamp - state.last_keystroke_time
        state.last_keystroke_time = timestamp

        base_load = state.keystrokes / 100  # 100 keystrokes = 1 base unit
        error_penalty = state.errors / max(1, state.keystrokes) * 20
        rapid_penalty = 5 if 0 <= gap < self.config.rapid_gap_ms else 0
        state.fatigue_score = min(
            100.0,
            (base_load + error_penalty + rapid_penalty) * FATIGUE_WEIGHT[finger] * 10,
        )

    def get_finger_fatigue(self, hand: Hand, finger: Finger) -> float:
        state = self._fingers.get(f"{hand}-{finger}")
        return state.fatigue_score if state else 0.0

    @property
    def overall_fatigue(self) -> float:
        """Strength-weighted mean fatigue across all fingers."""
        total = weight_sum = 0.0
        for state in self._fingers.values():
            weight = FATIGUE_WEIGHT[state.finger]
            total += state.fatigue_score * weight
            weight_sum += weight
        return total / weight_sum if weight_sum else 0.0

    def get_dashboard_data(self) -> FatigueDashboard:
        overall = self.overall_fatigue
        should_break = False

        if overall >= self.config.break_threshold:
            recommendation = "High fatigue detected! Take a 5-minute break to prevent strain."
            should_break = True
        elif overall >= self.config.moderate_threshold:
            recommendation = "Moderate fatigue. Consider a 2-minute stretch break."
        elif overall >= self.config.mild_threshold:
            recommendation = "Slight fatigue building. Stay hydrated and relax your shoulders."
        else:
            recommendation = "Looking good! Fingers are fresh and ready."

        tired = [
            f"{s.hand} {s.finger}"
            for s in self._fingers.values()
            if s.fatigue_score >= self.config.tired_finger_threshold
        ]
        if tired:
            recommendation += f" Watch your {', '.join(tired)}."
            logger.debug(f"Tired fingers: {tired}")

        return FatigueDashboard(
            fingers={k: FingerState(**asdict(v)) for k, v in self._fingers.items()},
            overall_fatigue=overall,
            recommendation=recommendation,
            should_take_break=should_break,
            tired_fingers=tired,
        )

    # =========================================================================
    # Snapshot
    # =========================================================================

    def to_snapshot(self) -> dict:
        return {
            "total_keystrokes": self.total_keystrokes,
            "fingers": [[k, asdict(v)] for k, v in self._fingers.items()],
        }

    def from_snapshot(self, data: dict) -> None:
        self.reset()
        try:
            self.total_keystrokes = max(0, int(data.get("total_keystrokes", 0)))
            fingers = list(data.get("fingers", []))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Ignoring malformed fatigue snapshot: {exc}")
            return
        for pair in fingers:
            try:
                name, raw = pair
                current = self._fingers[name]
                self._fingers[name] = FingerState(
                    hand=current.hand,
                    finger=current.finger,
                    keystrokes=int(raw.get("keystrokes", 0)),
                    errors=int(raw.get("errors", 0)),
                    last_keystroke_time=float(raw.get("last_keystroke_time", 0.0)),
                    fatigue_score=float(raw.get("fatigue_score", 0.0)),
                )
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.debug(f"Skipping malformed finger entry: {pair!r}")


def fatigue_color(fatigue: float) -> str:
    """Rich color for a fatigue score."""
    if fatigue < 30:
        return "green"
    if fatigue < 60:
        return "yellow"
    return "red"
