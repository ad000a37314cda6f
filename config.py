"""
Centralized configuration management for the OAuth janitor.
Consolidates environment variable access, config file loading and the
store configuration value object handed to store creation.
"""

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from constants import (
    DEFAULT_ACCESS_TOKEN_LIFESPAN,
    DEFAULT_CONSENT_REQUEST_MAX_AGE,
    DEFAULT_REFRESH_TOKEN_LIFESPAN,
    ENV_DSN,
    ENV_LOG_LEVEL,
    ENV_TIMEOUT,
    KEY_ACCESS_TOKEN_LIFESPAN,
    KEY_CONSENT_REQUEST_MAX_AGE,
    KEY_DSN,
    KEY_REFRESH_TOKEN_LIFESPAN,
)
from duration_utils import parse_duration
from error_utils import (
    ConfigurationError,
    InitializationError,
    safe_float_conversion,
)

logger = logging.getLogger(__name__)


def get_env_str(key: str, default: str = "") -> str:
    """Get environment variable as string."""
    return os.getenv(key, default)


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get environment variable as float."""
    return safe_float_conversion(os.getenv(key), default=default, min_val=0.0)


def get_dsn() -> str:
    """Get the store DSN from the environment."""
    return get_env_str(ENV_DSN).strip()


def get_log_level() -> str:
    """Get janitor log level."""
    return get_env_str(ENV_LOG_LEVEL, "INFO").upper()


def get_timeout() -> float:
    """Get the overall run timeout in seconds (0 disables it)."""
    return get_env_float(ENV_TIMEOUT, 0.0)


@dataclass(frozen=True)
class StoreConfig:
    """Everything a store needs to decide what counts as inactive."""

    dsn: str = ""
    access_token_lifespan: timedelta = DEFAULT_ACCESS_TOKEN_LIFESPAN
    refresh_token_lifespan: timedelta = DEFAULT_REFRESH_TOKEN_LIFESPAN
    consent_request_max_age: timedelta = DEFAULT_CONSENT_REQUEST_MAX_AGE

    _FIELDS = {
        KEY_ACCESS_TOKEN_LIFESPAN: "access_token_lifespan",
        KEY_REFRESH_TOKEN_LIFESPAN: "refresh_token_lifespan",
        KEY_CONSENT_REQUEST_MAX_AGE: "consent_request_max_age",
    }

    def with_overrides(self, overrides: Dict[str, Optional[timedelta]]) -> "StoreConfig":
        """
        Return a copy with lifespan overrides applied.

        Only strictly positive durations replace the configured value; zero
        or missing durations leave it untouched.

        Args:
            overrides: Mapping of config key (e.g. "ttl.access_token") to duration

        Returns:
            StoreConfig: New configuration object
        """
        changes = {}
        for key, duration in overrides.items():
            if key not in self._FIELDS:
                raise ConfigurationError(f"Unknown lifespan key: {key}")
            if duration is not None and duration > timedelta(0):
                changes[self._FIELDS[key]] = duration
        if not changes:
            return self
        return replace(self, **changes)

    def with_dsn(self, dsn: str) -> "StoreConfig":
        return replace(self, dsn=dsn)

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "StoreConfig":
        """Build a StoreConfig from flattened config file values."""
        config = cls(dsn=str(values.get(KEY_DSN) or "").strip())
        lifespans = {}
        for key in cls._FIELDS:
            if key in values:
                try:
                    lifespans[key] = parse_duration(values[key])
                except ValueError as e:
                    raise ConfigurationError(f"Invalid value for {key}: {e}") from e
        return config.with_overrides(lifespans)


def _flatten(values: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat = {}
    for key, value in values.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{name}."))
        else:
            flat[name] = value
    return flat


def load_config_files(paths: Sequence[str]) -> Dict[str, Any]:
    """
    Load and merge YAML (or JSON) config files.

    Later files override keys set by earlier ones. Nested sections are
    flattened into dotted keys, so ``ttl: {access_token: 1h}`` becomes
    ``ttl.access_token``.

    Args:
        paths: Config file paths in precedence order

    Returns:
        dict: Flattened configuration values

    Raises:
        ConfigurationError: If a file is missing or is not a mapping
    """
    merged: Dict[str, Any] = {}
    for path in paths:
        file_path = Path(path)
        try:
            with open(file_path, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except OSError as e:
            raise ConfigurationError(f"Could not read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse config file {path}: {e}") from e

        if data is None:
            continue
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        logger.debug("Loaded config file %s", file_path)
        merged.update(_flatten(data))
    return merged


def resolve_store_config(
    dsn: Optional[str] = None,
    read_from_env: bool = False,
    config_paths: Sequence[str] = (),
    overrides: Optional[Dict[str, Optional[timedelta]]] = None,
) -> StoreConfig:
    """
    Resolve the store configuration for one janitor run.

    The positional DSN is used unless an indirection flag is set. With
    indirection the DSN comes from the DSN environment variable (when
    read_from_env) and otherwise from the config files; the environment
    wins over files. Lifespan overrides from the command line are applied
    last.

    Raises:
        ConfigurationError: If a config file cannot be loaded
        InitializationError: If no DSN could be resolved
    """
    values = load_config_files(config_paths) if config_paths else {}
    config = StoreConfig.from_mapping(values)

    if read_from_env or config_paths:
        if read_from_env and get_dsn():
            config = config.with_dsn(get_dsn())
    else:
        config = config.with_dsn((dsn or "").strip())

    config = config.with_overrides(overrides or {})

    if not config.dsn:
        raise InitializationError(
            "When using flag -e, environment variable DSN must be set.\n"
            "When using flag -c, the dsn property should be set."
        )
    return config


def validate_config(config: StoreConfig) -> List[str]:
    """Validate configuration and return list of issues."""
    issues = []

    for key, attribute in StoreConfig._FIELDS.items():
        if getattr(config, attribute) <= timedelta(0):
            issues.append(f"{key} must be a positive duration")

    return issues
