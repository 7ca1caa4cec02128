# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Configuration for etag-runner.

Values come from (lowest to highest priority):
1. Built-in defaults
2. YAML config file (--config, $ETAG_RUNNER_CONFIG, ~/.etag-runner/config.yaml)
3. ETAG_RUNNER_* environment variables
4. Command-line options (applied by the CLI via with_overrides)
"""

import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

DEFAULT_BASE_URL = "https://raw.githubusercontent.com/earv1/computercraft/refs/heads/main"
DEFAULT_CONFIG_PATH = "~/.etag-runner/config.yaml"
ENV_PREFIX = "ETAG_RUNNER_"
# Pause between iterations stays sub-second; check_interval throttles the network
MAX_IDLE_SLEEP = 1.0


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


@dataclass(frozen=True)
class RunnerConfig:
    """Settings for one update-and-run loop."""

    base_url: str = DEFAULT_BASE_URL
    check_interval: int = 60  # seconds between remote ETag checks
    idle_sleep: float = 0.5  # pause between iterations
    request_timeout: float = 15
    max_retries: int = 2
    work_dir: str = "."
    interpreter: Optional[str] = None
    execution_timeout: Optional[float] = None  # None blocks until the target exits
    events_path: Optional[str] = None
    log_file: Optional[str] = None

    def validate(self) -> None:
        """Validate field values.

        Raises:
            ConfigError: If validation fails.
        """
        if not self.base_url or not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"base_url must be an http(s) URL, got: {self.base_url!r}")
        if self.check_interval < 0:
            raise ConfigError(f"check_interval cannot be negative, got: {self.check_interval}")
        if self.idle_sleep < 0:
            raise ConfigError(f"idle_sleep cannot be negative, got: {self.idle_sleep}")
        if self.idle_sleep >= MAX_IDLE_SLEEP:
            raise ConfigError(
                f"idle_sleep must be under {MAX_IDLE_SLEEP}s, got: {self.idle_sleep}"
            )
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got: {self.request_timeout}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries cannot be negative, got: {self.max_retries}")
        if self.execution_timeout is not None and self.execution_timeout <= 0:
            raise ConfigError(
                f"execution_timeout must be positive, got: {self.execution_timeout}"
            )

    def with_overrides(self, **overrides: Any) -> "RunnerConfig":
        """Return a copy with non-None overrides applied and validated."""
        updates = {k: v for k, v in overrides.items() if v is not None}
        config = replace(self, **_coerce(updates))
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _parse_int(value: Any) -> int:
    """Parse an integer, refusing to truncate fractional numbers."""
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"not a whole number: {value}")
    return int(value)


# field name -> (parser, optional)
FIELD_PARSERS: Dict[str, Tuple[Callable[[Any], Any], bool]] = {
    "base_url": (str, False),
    "check_interval": (_parse_int, False),
    "idle_sleep": (float, False),
    "request_timeout": (float, False),
    "max_retries": (_parse_int, False),
    "work_dir": (str, False),
    "interpreter": (str, True),
    "execution_timeout": (float, True),
    "events_path": (str, True),
    "log_file": (str, True),
}


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert raw values (YAML or env strings) to field types."""
    result = {}
    for key, value in values.items():
        if key not in FIELD_PARSERS:
            raise ConfigError(f"unknown config key: {key}")
        parser, optional = FIELD_PARSERS[key]
        if value is None or value == "":
            if optional:
                result[key] = None
                continue
            raise ConfigError(f"{key} cannot be empty")
        if isinstance(value, bool):
            raise ConfigError(f"invalid value for {key}: {value!r}")
        try:
            result[key] = parser(value)
        except (TypeError, ValueError):
            raise ConfigError(f"invalid value for {key}: {value!r}")
    return result


def _env_values() -> Dict[str, Any]:
    """Collect ETAG_RUNNER_<FIELD> environment overrides."""
    values = {}
    for name in FIELD_PARSERS:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value is not None:
            values[name] = env_value
    return values


def resolve_config_path(config_path: Optional[str] = None) -> Optional[Path]:
    """Find the config file to load.

    An explicit path (argument or $ETAG_RUNNER_CONFIG) must exist; the
    default location is optional.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
    """
    explicit = config_path or os.environ.get(f"{ENV_PREFIX}CONFIG")
    if explicit:
        path = Path(explicit).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path

    default = Path(DEFAULT_CONFIG_PATH).expanduser()
    return default if default.exists() else None


def load_config(config_path: Optional[str] = None) -> RunnerConfig:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to a YAML config file.

    Returns:
        Validated RunnerConfig.

    Raises:
        FileNotFoundError: If an explicit config file is missing.
        ConfigError: If the file is malformed or a value is invalid.
    """
    values: Dict[str, Any] = {}

    path = resolve_config_path(config_path)
    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"config file must contain a mapping: {path}")
        values.update(data)

    values.update(_env_values())

    config = RunnerConfig(**_coerce(values))
    config.validate()
    return config
