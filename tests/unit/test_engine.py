"""
Unit tests for the WeaknessEngine facade.

Tests:
- update_key bookkeeping and input tolerance
- analyze as a pure read
- Contextual insights, interventions and practice selection
- Live risk, dashboard, reset and snapshots

Run: pytest tests/unit/test_engine.py -v
"""

import json

import pytest

from keycoach.engine import SNAPSHOT_VERSION, KeyContext
from keycoach.hmm import STATE_ORDER, HMMState

DAY_MS = 86_400_000


def feed(engine, key, outcomes, clock, speed_ms=180.0, **context):
    """Apply a sequence of outcomes to one key, one second apart."""
    for ok in outcomes:
        clock.advance(1000)
        engine.update_key(key, ok, speed_ms, {"timestamp": clock.now, **context})


class TestUpdateKey:
    """Per-observation state updates."""

    def test_posterior_counts(self, engine, clock):
        feed(engine, "e", [True] * 8 + [False] * 2, clock)
        state = engine.get_key_state("e")
        assert state.alpha_post == 9
        assert state.beta_post == 3
        assert state.total_attempts == 10
        assert state.consecutive_correct == 0

    def test_consecutive_correct_resets_on_error(self, engine, clock):
        feed(engine, "e", [True, True, False, True, True, True], clock)
        assert engine.get_key_state("e").consecutive_correct == 3

    def test_speed_model_updated(self, engine, clock):
        feed(engine, "e", [True] * 4, clock, speed_ms=250.0)
        state = engine.get_key_state("e")
        assert state.shape_param == pytest.approx(6.0)
        assert state.rate_param == pytest.approx(0.4 + 4 * 0.25)
        assert len(state.speeds) == 4

    def test_histograms(self, engine, clock):
        feed(engine, "e", [True, False], clock, hour=9, session_position=0.5, adjacent_key="r")
        state = engine.get_key_state("e")
        assert state.time_of_day == {9: [2, 1]}
        assert state.session_position == {2: [2, 1]}
        assert state.adjacent_keys == {"r": [2, 1]}

    def test_state_probabilities_normalized(self, engine, clock):
        feed(engine, "e", [True, False] * 10, clock)
        probs = engine.get_key_state("e").transition_probs
        assert set(probs) == set(STATE_ORDER)
        assert sum(probs.values()) == pytest.approx(1.0, abs=1e-9)

    def test_history_bounded_but_evidence_kept(self, engine_factory, clock):
        engine = engine_factory(history_max_size=10)
        feed(engine, "e", [True] * 30, clock)
        state = engine.get_key_state("e")
        assert len(state.outcomes) == 10
        assert state.total_attempts == 30

    def test_learning_curve_sampled_per_update(self, engine_factory, clock):
        engine = engine_factory(learning_curve_max_points=5)
        feed(engine, "e", [True] * 19, clock)
        assert engine.get_key_state("e").learning_curve == []
        feed(engine, "e", [True] * 10, clock)
        assert engine.get_key_state("e").learning_curve == [1.0] * 5

    def test_interval_grows_with_streak(self, engine, clock):
        feed(engine, "e", [True] * 3, clock)
        short = engine.get_key_state("e").optimal_practice_interval
        feed(engine, "e", [True] * 3, clock)
        assert engine.get_key_state("e").optimal_practice_interval >= short

    def test_confounders_on_error(self, engine, clock):
        feed(engine, "e", [False], clock, session_position=0.9, recent_errors=4)
        assert engine.get_key_state("e").confounding_factors == ["late_session", "error_burst"]

    def test_hesitation_confounder(self, engine, clock):
        feed(engine, "e", [True] * 5, clock, speed_ms=100.0)
        feed(engine, "e", [False], clock, speed_ms=400.0)
        assert "hesitation" in engine.get_key_state("e").confounding_factors

    @pytest.mark.parametrize("context", [
        None,
        {"timestamp": "soon", "session_position": "late", "hour": 99, "recent_errors": None},
        {"adjacent_key": 5},
        KeyContext(),
        "not a context",
    ])
    def test_malformed_context_tolerated(self, engine, context):
        engine.update_key("e", True, 120.0, context)
        assert engine.get_key_state("e").total_attempts == 1

    @pytest.mark.parametrize("speed", [None, -5, 0, float("nan"), float("inf"), "fast"])
    def test_unusable_speed_not_recorded(self, engine, speed):
        engine.update_key("e", False, speed)
        state = engine.get_key_state("e")
        assert state.total_attempts == 1
        assert len(state.speeds) == 0

    @pytest.mark.parametrize("key", [None, "", 5])
    def test_invalid_key_ignored(self, engine, key):
        engine.update_key(key, True)
        assert engine.tracked_keys() == []

    @pytest.mark.parametrize("flag,expected_failures", [
        ("false", 1), ("False", 1), ("0", 1), (0, 1), ("true", 0), (1, 0),
    ])
    def test_outcome_strings_are_parsed(self, engine, flag, expected_failures):
        engine.update_key("e", flag)
        state = engine.get_key_state("e")
        assert state.beta_post - state.beta_prior == expected_failures
        assert state.total_attempts == 1

    @pytest.mark.parametrize("flag", ["maybe", None, float("nan")])
    def test_unreadable_outcome_ignored(self, engine, flag):
        engine.update_key("e", flag)
        assert engine.tracked_keys() == []


class TestRecordKeystroke:
    """Event ingestion."""

    def test_camel_case_event(self, engine, make_event):
        engine.record_keystroke(make_event("t", 1000.0, hesitationMs=150, previousKey="a"))
        state = engine.get_key_state("t")
        assert state.total_attempts == 1
        assert state.speeds.values() == [150]
        assert state.adjacent_keys == {"a": [1, 0]}

    def test_malformed_event_dropped(self, engine):
        engine.record_keystroke({"key": "t", "timestamp": 1.0})
        engine.record_keystroke({"expected": "", "timestamp": 1.0, "isCorrect": True})
        assert engine.tracked_keys() == []
        assert engine.session.keystrokes == 0

    def test_gap_used_as_speed(self, engine, make_event):
        engine.record_keystroke(make_event("t", 1000.0))
        engine.record_keystroke(make_event("h", 1180.0))
        assert engine.get_key_state("h").speeds.values() == [180.0]
        assert engine.get_key_state("h").adjacent_keys == {"t": [1, 0]}

    def test_feeds_ngrams_and_fatigue(self, engine, make_event):
        ts = 0.0
        for i in range(5):
            engine.start_session()
            engine.record_keystroke(make_event("t", ts))
            engine.record_keystroke(make_event("h", ts + 1200, is_correct=i != 0))
            ts += 60_000

        report = engine.get_ngram_report(min_attempts=5)
        assert [s.ngram for s in report.error_prone_bigrams] == ["th"]
        assert report.error_prone_bigrams[0].error_rate == pytest.approx(0.2)
        # fatigue restarts with each session
        fingers = engine.get_dashboard_data().fatigue.fingers
        assert fingers["left-index"].keystrokes == 1
        assert fingers["right-index"].keystrokes == 1

    def test_session_counters(self, engine, make_event):
        engine.start_session(expected_length=4)
        for i, ok in enumerate([True, False, True, True]):
            engine.record_keystroke(make_event("abcd"[i], 60_000.0 * i, is_correct=ok))
        assert engine.session.accuracy == pytest.approx(75.0)
        assert engine.session.position() == 1.0
        summary = engine.end_session()
        assert summary["keystrokes"] == 4
        assert engine.session.keystrokes == 0


class TestAnalyze:
    """Full analysis."""

    def test_unknown_key_neutral_and_untracked(self, engine):
        result = engine.analyze("z")
        assert result.attempts == 0
        assert result.speed_estimate == 200.0
        assert result.speed_ci == (150.0, 250.0)
        assert result.current_state is HMMState.LEARNING
        assert engine.tracked_keys() == []

    def test_analyze_is_pure(self, engine, clock):
        feed(engine, "e", [True, False, True], clock)
        before = engine.serialize()
        engine.analyze("e")
        engine.analyze("q")
        assert engine.serialize() == before

    def test_accuracy_interval(self, engine, clock):
        feed(engine, "e", [True] * 8 + [False] * 2, clock)
        result = engine.analyze("e")
        lo, hi = result.accuracy_ci
        assert lo < 0.75 < hi
        assert result.ensemble.bayesian == pytest.approx(0.75)
        assert 0.0 <= result.sampled_accuracy <= 1.0

    def test_weak_key_gets_isolation(self, engine, clock):
        feed(engine, "a", [True] * 200, clock)
        feed(engine, "x", [True] * 5 + [False] * 15, clock)

        result = engine.analyze("x")
        assert result.is_weak
        assert result.weakness_score > 60
        names = [i.name for i in result.recommended_interventions]
        assert "isolate" in names
        values = [i.expected_value for i in result.recommended_interventions]
        assert values == sorted(values, reverse=True)

    def test_recorded_outcome_blends_into_intervention(self, engine, clock):
        feed(engine, "a", [True] * 200, clock)
        feed(engine, "x", [True] * 5 + [False] * 15, clock)
        engine.record_intervention_outcome("x", "isolate", 0.1)

        isolate = next(i for i in engine.analyze("x").recommended_interventions if i.name == "isolate")
        assert isolate.expected_improvement == pytest.approx(17.5)
        assert isolate.confidence == pytest.approx(0.95)

    def test_intervention_effect_smoothed(self, engine, clock):
        feed(engine, "x", [False], clock)
        engine.record_intervention_outcome("x", "isolate", 0.1)
        engine.record_intervention_outcome("x", "isolate", 0.2)
        assert engine.get_key_state("x").intervention_effects["isolate"] == pytest.approx(0.13)

    def test_best_time_and_position(self, engine, clock):
        feed(engine, "e", [False] * 5, clock, hour=8, session_position=0.0)
        feed(engine, "e", [True] * 5, clock, hour=19, session_position=0.5)
        result = engine.analyze("e")
        assert result.best_practice_time == 19
        assert result.optimal_session_position == "middle"

    def test_correlated_keys(self, engine, clock):
        feed(engine, "e", [False, False, True], clock, adjacent_key="r")
        feed(engine, "e", [True] * 3, clock, adjacent_key="w")
        feed(engine, "e", [False, True], clock, adjacent_key="d")

        correlated = engine.analyze("e").correlated_keys
        assert [c.key for c in correlated] == ["r"]
        assert correlated[0].correlation == pytest.approx(2 / 3)

    def test_transfer_potential(self, engine):
        potential = engine.analyze("f").transfer_learning_potential
        assert set(potential) == {"r", "t", "g", "v", "b"}
        assert set(potential.values()) == {0.6}

    def test_to_dict_is_json_serializable(self, engine, clock):
        feed(engine, "e", [True, False] * 5, clock)
        json.dumps(engine.analyze("e").to_dict())

    def test_analyze_all_sorted_by_priority(self, engine, clock):
        feed(engine, "a", [True] * 10, clock)
        feed(engine, "b", [False] * 10, clock)
        feed(engine, "c", [True] * 2, clock)

        results = engine.analyze_all()
        assert [r.key for r in results] == ["b", "a"]
        assert len(engine.analyze_all(min_attempts=1)) == 3

    def test_select_practice_keys_prefers_weak(self, engine, clock):
        feed(engine, "a", [True] * 200, clock)
        feed(engine, "x", [True] * 5 + [False] * 15, clock)
        assert engine.select_practice_keys(1) == ["x"]
        assert sorted(engine.select_practice_keys(5)) == ["a", "x"]


class TestRisk:
    """predict_risk"""

    def test_bigram_history_raises_risk(self, engine, make_event):
        ts = 0.0
        for _ in range(5):
            engine.start_session()
            engine.record_keystroke(make_event("t", ts))
            engine.record_keystroke(make_event("h", ts + 200, is_correct=False))
            ts += 60_000

        risky = engine.predict_risk("h", previous_key="t", wpm=40, accuracy=90, hour=10)
        plain = engine.predict_risk("h", previous_key="q", wpm=40, accuracy=90, hour=10)
        assert risky.probability > plain.probability

    def test_weak_key_riskier(self, engine, clock):
        feed(engine, "a", [True] * 50, clock)
        feed(engine, "x", [False] * 50, clock)
        weak = engine.predict_risk("x", wpm=40, accuracy=90, hour=10)
        strong = engine.predict_risk("a", wpm=40, accuracy=90, hour=10)
        assert weak.probability > strong.probability

    def test_unknown_key_uses_prior(self, engine):
        prediction = engine.predict_risk("q", hour=10)
        assert 0.0 <= prediction.probability <= 1.0
        assert engine.tracked_keys() == []


class TestDashboard:
    def test_dashboard(self, engine, clock):
        feed(engine, "a", [True] * 9 + [False], clock)
        feed(engine, "b", [False] * 5, clock)
        clock.advance(40 * DAY_MS)

        data = engine.get_dashboard_data()
        assert data.tracked_keys == 2
        assert data.total_attempts == 15
        assert data.overall_accuracy == pytest.approx(9 / 15)
        assert sum(data.state_distribution.values()) == 2
        assert data.weakest_keys[0].key == "b"
        assert data.due_keys == ["a", "b"]

    def test_empty(self, engine):
        data = engine.get_dashboard_data()
        assert data.tracked_keys == 0
        assert data.overall_accuracy == 0.0

    def test_weakness_report(self, engine, clock):
        feed(engine, "s", [False] * 6, clock)
        assert engine.weakness_report().weak_keys == ["s"]


class TestLifecycle:
    """reset, snapshots and serialization."""

    def test_reset(self, engine, clock, make_event):
        feed(engine, "a", [True] * 3, clock)
        engine.record_keystroke(make_event("t", clock.now))
        engine.reset()
        assert engine.tracked_keys() == []
        assert engine.get_ngram_stats()["bigram_count"] == 0
        assert engine.session.keystrokes == 0

    def test_key_state_copy_is_detached(self, engine, clock):
        feed(engine, "a", [True] * 3, clock)
        copy = engine.get_key_state("a")
        copy.alpha_post = 1000
        copy.outcomes.add(False, 0)
        state = engine.get_key_state("a")
        assert state.alpha_post == 4
        assert len(state.outcomes) == 3
        assert engine.get_key_state("missing") is None

    def test_serialize_roundtrip(self, engine_factory, clock, make_event):
        engine = engine_factory()
        feed(engine, "a", [True, False, True, True], clock, hour=7, adjacent_key="s")
        engine.record_keystroke(make_event("t", clock.now))
        engine.record_keystroke(make_event("h", clock.now + 150, is_correct=False))
        engine.record_intervention_outcome("a", "isolate", 0.05)

        restored = engine_factory()
        assert restored.deserialize(engine.serialize()) is True

        assert restored.tracked_keys() == engine.tracked_keys()
        for key in engine.tracked_keys():
            assert restored.get_key_state(key).to_snapshot() == engine.get_key_state(key).to_snapshot()
        assert restored.get_ngram_report(1).error_prone_bigrams[0].ngram == "th"
        assert restored.serialize() == engine.serialize()

    def test_snapshot_uses_pair_lists(self, engine, clock):
        feed(engine, "a", [True], clock, hour=7)
        data = json.loads(engine.serialize())
        assert data["version"] == SNAPSHOT_VERSION
        key, state = data["key_states"][0]
        assert key == "a"
        assert state["time_of_day"] == [[7, [1, 1]]]

    @pytest.mark.parametrize("blob", ["not json", "{\"key_states\": 5}", None, b"[]"])
    def test_malformed_blob_yields_empty_engine(self, engine, clock, blob):
        feed(engine, "a", [True], clock)
        assert engine.deserialize(blob) is False
        assert engine.tracked_keys() == []

    def test_unknown_version_yields_empty_engine(self, engine, clock):
        feed(engine, "a", [True], clock)
        data = json.loads(engine.serialize())
        data["version"] = SNAPSHOT_VERSION + 1
        assert engine.deserialize(json.dumps(data)) is False
        assert engine.tracked_keys() == []

    @pytest.mark.parametrize("section,value", [
        ("fatigue", {"total_keystrokes": "abc"}),
        ("fatigue", {"fingers": 5}),
        ("fatigue", {"fingers": [["left-index", {"keystrokes": -3}]]}),
        ("risk_model", {"weights": ["x"] * 11}),
        ("risk_model", {"weights": [0.1] * 3}),
        ("risk_model", {"weights": [0.1] * 11, "bias": "high"}),
    ])
    def test_corrupt_side_tables_yield_empty_engine(self, engine, clock, section, value):
        feed(engine, "a", [True], clock)
        data = json.loads(engine.serialize())
        data[section] = value
        assert engine.deserialize(json.dumps(data)) is False
        assert engine.tracked_keys() == []
        assert engine.get_dashboard_data() is not None

    @pytest.mark.parametrize("field,value", [
        ("alpha_prior", 0),
        ("beta_prior", -1.0),
        ("rate_param", 0),
        ("time_of_day", [[7, [1]]]),
        ("session_position", [[0, [1, 2, 3]]]),
        ("adjacent_keys", [["s", [-1, 0]]]),
    ])
    def test_impossible_key_state_rejected(self, engine, clock, field, value):
        feed(engine, "a", [True, False], clock)
        data = json.loads(engine.serialize())
        data["key_states"][0][1][field] = value
        assert engine.deserialize(json.dumps(data)) is False
        assert engine.tracked_keys() == []
        assert engine.analyze("a").key == "a"

    def test_snapshot_without_side_tables_loads(self, engine, clock):
        feed(engine, "a", [True], clock)
        data = json.loads(engine.serialize())
        del data["fatigue"], data["risk_model"]
        assert engine.deserialize(json.dumps(data)) is True
        assert engine.tracked_keys() == ["a"]
