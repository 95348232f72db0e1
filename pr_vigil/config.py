"""Configuration for the PR reconciliation loop."""

import json
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .parser import parse_repo


class ConfigurationError(Exception):
    """Raised when the configuration file cannot be loaded."""


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationConfig(_ConfigModel):
    """Which events produce notifications."""

    enabled: bool = True
    on_ci_failure: bool = True
    on_blocking_review: bool = True
    on_ready_to_merge: bool = True
    on_new_comment: bool = False


class VigilConfig(_ConfigModel):
    """Configuration for PR polling and classification."""

    poll_interval_seconds: float = Field(default=30.0, ge=5.0, le=3600.0)
    dormant_threshold_hours: float = Field(default=48.0, gt=0)
    repos: list[str] = Field(default_factory=list)  # empty means all repos
    max_detail_concurrency: int = Field(default=4, ge=1, le=32)
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300.0)
    log_level: str = "INFO"
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("repos")
    @classmethod
    def _validate_repos(cls, repos: list[str]) -> list[str]:
        for repo in repos:
            parse_repo(repo)
        return repos


def config_path() -> Path:
    """Location of the global config file (``$XDG_CONFIG_HOME/vigil/config.json``)."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "vigil" / "config.json"


def load_config(path: str | Path | None = None) -> VigilConfig:
    """
    Load configuration, falling back to defaults when no file exists.

    Args:
        path: Explicit config file; defaults to :func:`config_path`

    Raises:
        ConfigurationError: If the file is not valid JSON or has invalid values
    """
    path = Path(path) if path is not None else config_path()
    if not path.exists():
        return VigilConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain an object")

    try:
        return VigilConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e
