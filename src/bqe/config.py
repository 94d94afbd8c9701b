"""
Engine settings.

EngineSettings is a pydantic-settings model: defaults live on the fields,
and BQE_* environment variables override any value given in code or read
from a YAML file by load_settings():

    max_rule_depth: 100         # BQE_MAX_RULE_DEPTH
    strict_evaluation: false    # BQE_STRICT_EVALUATION
    log_level: INFO             # BQE_LOG_LEVEL

Invalid values raise ConfigError, so callers never see pydantic's
ValidationError.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "BQE_"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="forbid", frozen=True)

    max_rule_depth: int = Field(default=100, ge=1)
    validation_max_depth: int = Field(default=20, ge=1)
    max_complexity: int = Field(default=100, ge=1)
    complexity_warning_ratio: float = Field(default=0.8, gt=0.0, le=1.0)
    strict_evaluation: bool = False
    required_progress_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    seconds_per_question: int = Field(default=30, ge=0)
    max_checkpoints: int = Field(default=50, ge=1)
    max_navigation_steps: int = Field(default=1000, ge=1)
    log_level: str = "INFO"

    def __init__(self, **values: Any):
        try:
            super().__init__(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # environment first, then values passed in (file or code), then defaults
        return env_settings, init_settings


def load_settings(path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Raises:
        ConfigError: unreadable file, unknown keys or invalid values
    """
    values = _read_yaml(Path(path)) if path is not None else {}
    settings = EngineSettings(**values)
    logger.debug("Loaded settings: %s", settings)
    return settings


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict) or not all(isinstance(k, str) for k in data):
        raise ConfigError(f"Settings file {path} must contain a mapping of setting names")
    return data


def configure_logging(level: Union[str, int, None] = None,
                      settings: Optional[EngineSettings] = None) -> None:
    """Install a root handler for applications embedding the engine."""
    if level is None:
        level = settings.log_level if settings is not None else "INFO"
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ConfigError(f"Unknown log level {level!r}")
        level = resolved
    logging.basicConfig(level=level, format=LOG_FORMAT)
