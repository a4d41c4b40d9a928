"""
Configuration for configurer itself and for applications embedding it.

This module provides:
- ``ConfigurerSettings``: the tool's own settings, read from
  ``CONFIGURER_*`` environment variables
- ``load_configuration``: a YAML-backed application config file that is
  seeded with defaults on first use
"""

import os
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, TypeVar, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import FailedToError, RequiredError
from ..processing.coercion import parse_duration

T = TypeVar("T", bound=BaseModel)

FILE_PERM = 0o600
DIR_PERM = 0o755


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log renderers."""

    TEXT = "text"
    JSON = "json"


class ExecMode(str, Enum):
    """How multiple commands are run after a load."""

    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


class ConfigurerSettings(BaseSettings):
    """Settings of the configurer CLI."""

    model_config = SettingsConfigDict(env_prefix="CONFIGURER_", case_sensitive=False)

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.TEXT, description="Log format")
    exec_mode: ExecMode = Field(
        default=ExecMode.CONCURRENT, description="How multiple commands are run"
    )
    sequential_delay: timedelta = Field(
        default=timedelta(seconds=1),
        description="Delay between commands in sequential mode",
    )
    shutdown_timeout: timedelta = Field(
        default=timedelta(seconds=30),
        description="Grace period before a command is killed on shutdown",
    )

    @field_validator("sequential_delay", "shutdown_timeout", mode="before")
    @classmethod
    def parse_go_duration(cls, v):
        """Accept duration literals such as ``30s`` or ``1m30s``."""
        if isinstance(v, str):
            return parse_duration(v)
        return v


def load_configuration(
    file_path: Optional[Union[str, Path]],
    app_name: Optional[str],
    default: Optional[T],
) -> T:
    """
    Load an application configuration file, seeding it with defaults.

    When ``file_path`` is empty the file lives at
    ``~/.config/<app_name>/config.yaml``. A missing or empty file is created
    from ``default`` and ``default`` is returned.

    Args:
        file_path: Explicit path to the YAML file, or None
        app_name: Application name, required when no path is given
        default: Default configuration, also the model type to parse into

    Returns:
        The loaded configuration
    """
    if default is None:
        raise RequiredError("default configuration")

    if not file_path and not app_name:
        raise RequiredError("app_name")

    if not file_path:
        path = Path.home() / ".config" / str(app_name) / "config.yaml"
        try:
            path.parent.mkdir(mode=DIR_PERM, parents=True, exist_ok=True)
        except OSError as e:
            raise FailedToError("create config directory", e) from e
    else:
        path = Path(file_path)

    try:
        data = path.read_text()
    except FileNotFoundError:
        data = ""
    except OSError as e:
        raise FailedToError("read config file", e) from e

    if not data:
        _write_default(path, default)
        return default

    try:
        parsed = yaml.safe_load(data) or {}
        return type(default).model_validate(parsed)
    except (yaml.YAMLError, PydanticValidationError) as e:
        raise FailedToError("parse config file", e) from e


def _write_default(path: Path, default: BaseModel) -> None:
    try:
        content = yaml.safe_dump(default.model_dump(mode="json"), sort_keys=False)
    except yaml.YAMLError as e:
        raise FailedToError("marshal default config", e) from e

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_PERM)
        with os.fdopen(fd, "w") as f:
            f.write(content)
    except OSError as e:
        raise FailedToError("write default config", e) from e


__all__ = [
    "ConfigurerSettings",
    "ExecMode",
    "LogFormat",
    "LogLevel",
    "load_configuration",
]
