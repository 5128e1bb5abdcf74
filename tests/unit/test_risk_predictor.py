"""
Unit tests for the live error-risk predictor.

Run: pytest tests/unit/test_risk_predictor.py -v
"""

import math
import random

import pytest

from keycoach.risk import (
    FEATURE_NAMES,
    LiveRiskPredictor,
    PredictionContext,
    TrainingExample,
    extract_features,
)
from keycoach.risk.predictor import DEFAULT_WEIGHTS, encode_char, session_fatigue


def calm_context(**overrides):
    values = dict(
        current_char="a",
        previous_chars=["s"],
        current_wpm=30,
        current_accuracy=98,
        time_of_day=10,
        session_duration=2,
        recent_errors=0,
        key_difficulty=5,
        ngram_difficulty=0,
    )
    values.update(overrides)
    return PredictionContext(**values)


class TestFeatures:
    """extract_features normalization."""

    def test_feature_count(self):
        assert len(extract_features(calm_context())) == len(FEATURE_NAMES) == 11

    def test_features_normalized(self):
        features = extract_features(calm_context(current_wpm=500, current_accuracy=150, recent_errors=40))
        assert features[2] == 1.0
        assert features[3] == 1.0
        assert features[8] == 1.0

    def test_cyclic_hour(self):
        midnight = extract_features(calm_context(time_of_day=0))
        late = extract_features(calm_context(time_of_day=23.99))
        assert midnight[4] == pytest.approx(late[4], abs=0.01)
        assert midnight[5] == pytest.approx(late[5], abs=0.01)

    def test_encode_char(self):
        assert encode_char("a") == 0.0
        assert encode_char("N") == pytest.approx(13 / 26)
        assert encode_char("5") == pytest.approx(0.75)
        assert encode_char("") == 0.5
        assert encode_char("#") == 0.5

    def test_session_fatigue(self):
        assert session_fatigue(0, 0) == 0.0
        assert session_fatigue(45, 10) == pytest.approx(1.0)
        assert session_fatigue(90, 0) == pytest.approx(0.6)

    def test_missing_previous_char(self):
        assert extract_features(calm_context(previous_chars=[]))[1] == 0.5


class TestPrediction:
    """LiveRiskPredictor.predict"""

    def test_calm_typing_is_low_risk(self):
        prediction = LiveRiskPredictor().predict(calm_context())
        assert 0 <= prediction.probability < 0.3
        assert prediction.risk_level == "low"

    def test_struggling_is_high_risk(self):
        prediction = LiveRiskPredictor().predict(calm_context(
            current_wpm=90,
            current_accuracy=70,
            session_duration=50,
            recent_errors=6,
            key_difficulty=80,
            ngram_difficulty=70,
        ))
        assert prediction.probability > 0.6
        assert prediction.risk_level == "high"

    def test_confidence_is_one_minus_entropy(self):
        prediction = LiveRiskPredictor().predict(calm_context())
        p = prediction.probability
        entropy = -p * math.log2(p) - (1 - p) * math.log2(1 - p)
        assert prediction.confidence == pytest.approx(1 - entropy)

    def test_contributing_factors(self):
        prediction = LiveRiskPredictor().predict(calm_context(recent_errors=5, key_difficulty=60))
        factors = prediction.contributing_factors
        assert 0 < len(factors) <= 5
        assert all(f.importance > 0.15 for f in factors)
        assert factors[0].importance == pytest.approx(1.0)
        assert [f.importance for f in factors] == sorted((f.importance for f in factors), reverse=True)

    def test_probability_only_matches_predict(self):
        model = LiveRiskPredictor()
        context = calm_context(recent_errors=3)
        assert model.predict_probability(context) == pytest.approx(model.predict(context).probability)

    def test_wrong_weight_count(self):
        with pytest.raises(ValueError):
            LiveRiskPredictor(weights=[1.0, 2.0])


class TestTraining:
    """SGD refinement."""

    def test_needs_ten_examples(self):
        model = LiveRiskPredictor()
        examples = [TrainingExample(tuple([0.5] * 11), 1)] * 9
        assert model.train(examples) is None
        assert model.weights == list(DEFAULT_WEIGHTS)

    def test_training_moves_towards_labels(self):
        rng = random.Random(5)
        model = LiveRiskPredictor(rng=rng)
        risky = tuple([0.0] * 8 + [1.0, 0.0, 0.0])
        calm = tuple([0.0] * 11)
        examples = [TrainingExample(risky, 1) for _ in range(10)] + [
            TrainingExample(calm, 0) for _ in range(10)
        ]
        before = model.weights[8]
        loss = model.train(examples, epochs=20)
        assert loss is not None and loss > 0
        assert model.weights[8] > before
        assert model.trained_examples == 20

    def test_snapshot_roundtrip_preserves_model(self):
        model = LiveRiskPredictor(weights=[0.1] * 11, bias=0.3)
        restored = LiveRiskPredictor()
        restored.from_snapshot(model.to_snapshot())
        assert restored.weights == [0.1] * 11
        assert restored.bias == 0.3

    def test_bad_snapshot_ignored(self):
        model = LiveRiskPredictor()
        model.from_snapshot({"weights": [1.0]})
        model.from_snapshot({})
        assert model.weights == list(DEFAULT_WEIGHTS)

    @pytest.mark.parametrize("data", [
        {"weights": ["x"] * 11},
        {"weights": [0.1] * 11, "bias": "nope"},
        {"weights": [0.1] * 11, "trained_examples": None},
    ])
    def test_unparseable_snapshot_keeps_defaults(self, data):
        model = LiveRiskPredictor()
        model.from_snapshot(data)
        assert model.weights == list(DEFAULT_WEIGHTS)
        assert model.trained_examples == 0
