"""
Unit tests for environment-driven settings.

Run: pytest tests/unit/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from config import Settings
from keycoach.engine import EngineConfig, WeaknessEngine


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.get_ensemble_weights() == {"bayesian": 0.5, "hmm": 0.3, "temporal": 0.2}
        assert settings.snapshot_path == settings.data_dir / "weakness_snapshot.json"
        assert settings.random_seed is None

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KEYCOACH_HISTORY_MAX_SIZE", "250")
        monkeypatch.setenv("KEYCOACH_DATA_DIR", str(tmp_path))
        settings = Settings(_env_file=None)
        assert settings.history_max_size == 250
        assert settings.snapshot_path.parent == tmp_path

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ensemble_weight_bayesian=0.9)

    def test_invalid_credible_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, credible_level=1.5)


class TestEngineConfig:
    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            history_max_size=50,
            ensemble_weight_bayesian=0.6,
            ensemble_weight_hmm=0.2,
            ensemble_weight_temporal=0.2,
        )
        config = EngineConfig.from_settings(settings)
        assert config.history_max_size == 50
        assert config.weights.bayesian == 0.6
        assert isinstance(WeaknessEngine(config), WeaknessEngine)
