"""Configuration loading for the renewals client and CLI.

Reads ``renewals.toml``, resolves ``${VAR_NAME}`` environment references,
applies ``RENEWALS_*`` environment overrides and returns a validated
:class:`RenewalsConfig`.

Example::

    [renewals]
    api_url = "https://renewals.example.com/api"
    timeout_seconds = 15
    wire_shape = "current"
    session_path = "~/.config/renewals/session.json"

    [renewals.logging]
    level = "INFO"
    format = "text"
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from renewals.schema import WIRE_SHAPES
from renewals.status import EXPIRING_SOON_DAYS

DEFAULT_API_URL = "http://127.0.0.1:8000/api"
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_CONFIG_FILENAME = "renewals.toml"

ENV_API_URL = "RENEWALS_API_URL"
ENV_LOG_LEVEL = "RENEWALS_LOG_LEVEL"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_LOG_FORMATS = ("text", "json")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from the [renewals.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_file: str | None = None


@dataclass
class RenewalsConfig:
    """Top-level configuration."""

    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    wire_shape: str = "current"
    session_path: str | None = None
    expiring_soon_days: int = EXPIRING_SOON_DAYS
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if isinstance(value, str):
        return _resolve_string(value)
    return value


def _resolve_string(s: str) -> str:
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)
    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )
    return result


def _parse_logging(section: dict) -> LoggingConfig:
    raw = section.get("logging", {})
    if not isinstance(raw, dict):
        raise ConfigError("renewals.logging must be a table")
    fmt = str(raw.get("format", "text")).lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(f"renewals.logging.format must be one of {_LOG_FORMATS}, got {fmt!r}")
    log_file = raw.get("log_file")
    return LoggingConfig(
        level=str(raw.get("level", "INFO")).upper(),
        format=fmt,
        log_file=str(log_file) if log_file else None,
    )


def _parse_section(section: dict) -> RenewalsConfig:
    api_url = str(section.get("api_url", DEFAULT_API_URL)).strip().rstrip("/")
    if not api_url:
        raise ConfigError("renewals.api_url must be a non-empty string")

    try:
        timeout = float(section.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"renewals.timeout_seconds must be a number: {exc}") from exc
    if timeout <= 0:
        raise ConfigError("renewals.timeout_seconds must be positive")

    wire_shape = str(section.get("wire_shape", "current"))
    if wire_shape not in WIRE_SHAPES:
        raise ConfigError(f"renewals.wire_shape must be one of {WIRE_SHAPES}, got {wire_shape!r}")

    window = section.get("expiring_soon_days", EXPIRING_SOON_DAYS)
    if not isinstance(window, int) or isinstance(window, bool) or window < 0:
        raise ConfigError("renewals.expiring_soon_days must be a non-negative integer")

    session_path = section.get("session_path")
    return RenewalsConfig(
        api_url=api_url,
        timeout_seconds=timeout,
        wire_shape=wire_shape,
        session_path=str(Path(session_path).expanduser()) if session_path else None,
        expiring_soon_days=window,
        logging=_parse_logging(section),
    )


def _apply_env_overrides(config: RenewalsConfig) -> RenewalsConfig:
    api_url = os.environ.get(ENV_API_URL)
    if api_url:
        config.api_url = api_url.strip().rstrip("/")
    log_level = os.environ.get(ENV_LOG_LEVEL)
    if log_level:
        config.logging.level = log_level.upper()
    return config


def load_config(path: Path | None = None) -> RenewalsConfig:
    """Load configuration from *path*, or defaults when *path* is None.

    Parameters
    ----------
    path:
        A TOML file, or a directory containing ``renewals.toml``.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    if path is None:
        return _apply_env_overrides(RenewalsConfig())

    toml_path = path / DEFAULT_CONFIG_FILENAME if path.is_dir() else path
    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    data = resolve_env_vars(data)

    section = data.get("renewals", {})
    if not isinstance(section, dict):
        raise ConfigError("[renewals] must be a table")

    return _apply_env_overrides(_parse_section(section))
