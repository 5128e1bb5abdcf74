"""
Unit tests for keyboard geometry and the weakness report.

Run: pytest tests/unit/test_patterns.py -v
"""

from keycoach.ngram import (
    NgramAnalyzer,
    analyze_weaknesses,
    finger_type_for_key,
    is_row_jump_bigram,
    is_same_finger_bigram,
    is_same_hand_bigram,
    same_finger_keys,
)


class TestGeometry:
    """QWERTY finger, row and hand classification."""

    def test_finger_types(self):
        assert finger_type_for_key("a") == "pinky"
        assert finger_type_for_key("k") == "middle"
        assert finger_type_for_key("G") == "index"
        assert finger_type_for_key(" ") == "thumb"
        assert finger_type_for_key("\t") is None

    def test_same_finger_bigram(self):
        assert is_same_finger_bigram("d", "e")
        assert is_same_finger_bigram("f", "g") is False  # inner index is its own column
        assert is_same_finger_bigram("a", "x") is False

    def test_row_jump_bigram(self):
        assert is_row_jump_bigram("q", "z")
        assert is_row_jump_bigram("a", "z") is False
        assert is_row_jump_bigram("a", "!") is False

    def test_same_hand_bigram(self):
        assert is_same_hand_bigram("a", "f")
        assert is_same_hand_bigram("a", "j") is False

    def test_same_finger_keys(self):
        assert sorted(same_finger_keys("f")) == ["b", "g", "r", "t", "v"]
        assert sorted(same_finger_keys("p")) == [";"]
        assert same_finger_keys(" ") == []


class TestWeaknessReport:
    """analyze_weaknesses heuristics."""

    def test_weak_keys_sorted_by_error_rate(self):
        report = analyze_weaknesses(
            {"a": (20, 3), "s": (20, 10), "d": (20, 2), "f": (3, 3)},
            NgramAnalyzer(),
        )
        # d is at exactly 10%, f has too few attempts
        assert report.weak_keys == ["s", "a"]
        assert report.severity == "low"

    def test_weak_bigrams_and_patterns(self):
        analyzer = NgramAnalyzer()
        for _ in range(5):
            analyzer.reset_sequence()
            analyzer.record_keystroke("d", 0, True)
            analyzer.record_keystroke("e", 100, False)

        report = analyze_weaknesses({}, analyzer)
        assert report.weak_bigrams == ["de"]
        assert report.patterns.same_finger == ["de"]
        assert report.patterns.same_hand == ["de"]
        assert report.suggested_focus == ["d", "e"]

    def test_finger_insight(self):
        report = analyze_weaknesses({"a": (30, 6), "q": (30, 6)}, NgramAnalyzer())
        assert "Your left pinky needs extra practice." in report.insights
