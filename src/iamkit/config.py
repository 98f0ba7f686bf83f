"""
Configuration for iamkit.

Settings come from environment variables prefixed with IAM_ and,
optionally, from a .json, .yaml/.yml or .env file. Explicit keyword
overrides win over the file, which wins over the environment.

Example:
    $ export IAM_LOG_LEVEL=debug
    settings = load_settings("iam.config.yaml")
    configure_logging(settings.log_level)
    engine = AccessEngine.from_settings(storage, settings)
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from iamkit.errors import ConfigError
from iamkit.schema import CombiningAlgorithm


class LogLevel(str, Enum):
    """Supported log levels; NONE silences the package logger."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    NONE = "none"


_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class IAMSettings(BaseSettings):
    """
    Engine and logging settings.

    Attributes:
        log_level: Package log level (IAM_LOG_LEVEL)
        algorithm: Statement combining algorithm (IAM_ALGORITHM)
        merge_subject_attributes: Overlay request context on subject
            attributes before evaluating (IAM_MERGE_SUBJECT_ATTRIBUTES)
    """

    model_config = SettingsConfigDict(
        env_prefix="IAM_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Package log level")
    algorithm: CombiningAlgorithm = Field(
        default=CombiningAlgorithm.FIRST_MATCH,
        description="How matching statements combine into a decision",
    )
    merge_subject_attributes: bool = Field(
        default=False,
        description="Merge subject attributes into the evaluation context",
    )


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Accept IAM_-prefixed and camelCase keys as used in config files."""
    aliases = {
        "loglevel": "log_level",
        "iam_log_level": "log_level",
        "iam_algorithm": "algorithm",
        "mergesubjectattributes": "merge_subject_attributes",
        "iam_merge_subject_attributes": "merge_subject_attributes",
    }
    normalized = {}
    for key, value in data.items():
        lowered = str(key).lower()
        normalized[aliases.get(lowered, lowered)] = value
    return normalized


def _read_config_file(path: Path) -> dict[str, Any]:
    suffix = path.suffix.lower()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(source=str(path), message=f"Cannot read config file {path}: {e}") from e

    try:
        if suffix == ".json":
            data = json.loads(raw)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(raw)
        else:
            raise ConfigError(
                source=str(path),
                message=f"Unsupported config file type: {suffix or path.name}",
                suggestion="Use a .json, .yaml, .yml or .env file",
            )
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(source=str(path), message=f"Cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(source=str(path), message=f"Config file {path} must contain a mapping")
    return _normalize_keys(data)


def load_settings(file: str | Path | None = None, **overrides: Any) -> IAMSettings:
    """
    Load settings from the environment, an optional file and overrides.

    Args:
        file: Optional .json, .yaml/.yml or .env file
        **overrides: Explicit values that win over everything else

    Returns:
        Validated IAMSettings

    Raises:
        ConfigError: If the file is unreadable, of an unknown type or invalid
    """
    values: dict[str, Any] = {}
    env_file: Path | None = None

    if file is not None:
        path = Path(file)
        if not path.exists():
            raise ConfigError(source=str(path), message=f"Config file not found: {path}")
        if path.suffix.lower() == ".env" or path.name == ".env":
            env_file = path
        else:
            values.update(_read_config_file(path))

    values.update(overrides)

    try:
        if env_file is not None:
            return IAMSettings(_env_file=env_file, **values)
        return IAMSettings(**values)
    except ValidationError as e:
        raise ConfigError(
            source=str(file) if file is not None else "environment",
            message=f"Invalid settings: {e}",
        ) from e


def configure_logging(level: LogLevel | str = LogLevel.INFO) -> logging.Logger:
    """
    Configure the "iamkit" package logger.

    A stream handler is attached once; NONE raises the level above
    CRITICAL so nothing under "iamkit" is emitted.

    Returns:
        The package logger
    """
    level = LogLevel(level)
    logger = logging.getLogger("iamkit")

    if level is LogLevel.NONE:
        logger.setLevel(logging.CRITICAL + 1)
        return logger

    logger.setLevel(_LEVELS[level])
    if not any(getattr(h, "_iamkit_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[IAM][%(levelname)s] %(name)s: %(message)s"))
        handler._iamkit_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
