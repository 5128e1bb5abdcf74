"""
Unit tests for per-finger fatigue tracking.

Run: pytest tests/unit/test_fatigue.py -v
"""

import pytest

from keycoach.risk import FingerFatigueTracker
from keycoach.risk.fatigue import fatigue_color, finger_of


class TestFingerMapping:
    def test_letters(self):
        assert finger_of("a") == ("left", "pinky")
        assert finger_of("J") == ("right", "index")
        assert finger_of("k") == ("right", "middle")

    def test_special_keys(self):
        assert finger_of(" ") == ("left", "thumb")
        assert finger_of("Enter") == ("right", "pinky")
        assert finger_of("F13") is None


class TestFatigueScore:
    """Load, error and rapid-typing penalties weighted by finger strength."""

    def test_single_slow_keystroke(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("f", 10_000)
        # (1/100) * 1.0 * 10
        assert tracker.get_finger_fatigue("left", "index") == pytest.approx(0.1)

    def test_rapid_keystrokes_penalized(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("f", 10_000)
        tracker.record_keystroke("f", 10_100)
        # (2/100 + 5) * 1.0 * 10
        assert tracker.get_finger_fatigue("left", "index") == pytest.approx(50.2)

    def test_pinky_tires_faster_than_index(self):
        tracker = FingerFatigueTracker()
        for i in range(20):
            tracker.record_keystroke("a", 10_000 + i * 1000)
            tracker.record_keystroke("f", 10_000 + i * 1000)
        assert tracker.get_finger_fatigue("left", "pinky") > tracker.get_finger_fatigue("left", "index")

    def test_errors_add_penalty(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("j", 10_000, is_error=True)
        # (1/100 + 20) * 1.0 * 10 capped at 100
        assert tracker.get_finger_fatigue("right", "index") == 100.0

    def test_unknown_key_ignored(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("F13", 10_000)
        assert tracker.total_keystrokes == 0


class TestDashboard:
    def test_fresh(self):
        dashboard = FingerFatigueTracker().get_dashboard_data()
        assert dashboard.overall_fatigue == 0.0
        assert dashboard.should_take_break is False
        assert dashboard.tired_fingers == []
        assert len(dashboard.fingers) == 10

    def test_tired_finger_reported(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("a", 10_000, is_error=True)
        dashboard = tracker.get_dashboard_data()
        assert "left pinky" in dashboard.tired_fingers
        assert "left pinky" in dashboard.recommendation

    def test_break_recommended_when_exhausted(self):
        tracker = FingerFatigueTracker()
        for key in "qwertyuiop":
            tracker.record_keystroke(key, 10_000, is_error=True)
        tracker.record_keystroke(" ", 10_000, is_error=True)
        dashboard = tracker.get_dashboard_data()
        assert dashboard.overall_fatigue >= 70
        assert dashboard.should_take_break is True

    def test_dashboard_is_a_copy(self):
        tracker = FingerFatigueTracker()
        tracker.get_dashboard_data().fingers["left-index"].keystrokes = 99
        assert tracker.get_dashboard_data().fingers["left-index"].keystrokes == 0


class TestSnapshot:
    def test_roundtrip(self):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("a", 10_000, is_error=True)
        restored = FingerFatigueTracker()
        restored.from_snapshot(tracker.to_snapshot())
        assert restored.total_keystrokes == 1
        assert restored.get_finger_fatigue("left", "pinky") == tracker.get_finger_fatigue("left", "pinky")

    def test_malformed_entries_skipped(self):
        tracker = FingerFatigueTracker()
        tracker.from_snapshot({"fingers": [["nose-tip", {}], ["left-ring", {"keystrokes": "x"}], 5]})
        assert tracker.get_finger_fatigue("left", "ring") == 0.0

    @pytest.mark.parametrize("data", [{"total_keystrokes": "abc"}, {"fingers": 5}])
    def test_malformed_snapshot_leaves_fresh_tracker(self, data):
        tracker = FingerFatigueTracker()
        tracker.record_keystroke("a", 0, is_error=False)
        tracker.from_snapshot(data)
        assert tracker.total_keystrokes == 0


def test_fatigue_color():
    assert fatigue_color(10) == "green"
    assert fatigue_color(45) == "yellow"
    assert fatigue_color(80) == "red"
