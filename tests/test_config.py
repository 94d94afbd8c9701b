"""
Tests for engine settings and logging setup.
"""

import logging
import os

import pytest
from pydantic import ValidationError
from bqe.config import ENV_PREFIX, EngineSettings, configure_logging, load_settings
from bqe.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)


def write_settings(tmp_path, text, name="bqe.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestEngineSettings:
    """Test defaults and validation."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.max_rule_depth == 100
        assert settings.required_progress_weight == 0.7
        assert settings.seconds_per_question == 30
        assert settings.max_checkpoints == 50
        assert settings.log_level == "INFO"

    def test_invalid_weight(self):
        with pytest.raises(ConfigError):
            EngineSettings(required_progress_weight=1.5)

    def test_invalid_limit(self):
        with pytest.raises(ConfigError):
            EngineSettings(max_checkpoints=0)

    def test_unknown_field(self):
        with pytest.raises(ConfigError):
            EngineSettings(max_depth_typo=3)

    def test_log_level_normalized(self):
        assert EngineSettings(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ConfigError):
            EngineSettings(log_level="LOUD")

    def test_immutable(self):
        settings = EngineSettings()
        with pytest.raises(ValidationError):
            settings.max_rule_depth = 5

    def test_environment_variable(self, monkeypatch):
        monkeypatch.setenv("BQE_MAX_NAVIGATION_STEPS", "25")
        assert EngineSettings().max_navigation_steps == 25


class TestLoadSettings:
    """Test layered loading."""

    def test_defaults_without_sources(self):
        assert load_settings() == EngineSettings()

    def test_yaml_file(self, tmp_path):
        path = write_settings(tmp_path, "max_rule_depth: 40\nstrict_evaluation: true\n")
        settings = load_settings(path)
        assert settings.max_rule_depth == 40
        assert settings.strict_evaluation is True

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = write_settings(tmp_path, "max_rule_depth: 40\n")
        monkeypatch.setenv("BQE_MAX_RULE_DEPTH", "60")
        monkeypatch.setenv("BQE_STRICT_EVALUATION", "yes")
        monkeypatch.setenv("BQE_REQUIRED_PROGRESS_WEIGHT", "0.5")
        settings = load_settings(path)
        assert settings.max_rule_depth == 60
        assert settings.strict_evaluation is True
        assert settings.required_progress_weight == 0.5

    def test_empty_file(self, tmp_path):
        assert load_settings(write_settings(tmp_path, "")) == EngineSettings()

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(write_settings(tmp_path, "max_depth_typo: 3\n"))

    def test_bad_environment_values(self, monkeypatch):
        monkeypatch.setenv("BQE_MAX_RULE_DEPTH", "deep")
        with pytest.raises(ConfigError):
            load_settings()
        monkeypatch.delenv("BQE_MAX_RULE_DEPTH")
        monkeypatch.setenv("BQE_STRICT_EVALUATION", "maybe")
        with pytest.raises(ConfigError):
            load_settings()

    def test_bad_file_value(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(write_settings(tmp_path, "complexity_warning_ratio: 0\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "nope.yaml")

    def test_non_mapping_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(write_settings(tmp_path, "- 1\n- 2\n"))


class TestConfigureLogging:
    """Test logging setup."""

    def test_unknown_level(self):
        with pytest.raises(ConfigError):
            configure_logging("LOUD")

    def test_level_from_settings(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        configure_logging(settings=EngineSettings(log_level="debug"))
        assert calls["level"] == logging.DEBUG
