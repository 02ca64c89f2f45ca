"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Conversion from dict to typed Config dataclass
- A process-wide cached config plus per-root loads
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Any

import yaml

from pyrightclient.config.merge import merge_configs
from pyrightclient.config.paths import get_config_paths
from pyrightclient.config.schema import (
    Config,
    LanguageConfig,
    LoggingConfig,
    ServerConfig,
    SessionConfig,
)

_log = logging.getLogger("pyrightclient.config")

_cached_config: Config | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("PYRIGHTCLIENT_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    server_command = os.environ.get("PYRIGHTCLIENT_SERVER")
    if server_command:
        overrides.setdefault("server", {})["command"] = shlex.split(server_command)

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _seconds(data: dict[str, Any], name: str, defaults: SessionConfig) -> float:
    default: float = getattr(defaults, name)
    value = data.get(name, default)
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        seconds = 0.0
    if seconds <= 0:
        _log.warning("Invalid session.%s %r; using %s", name, value, default)
        return default
    return seconds


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    server_data = _section(data, "server")
    defaults = ServerConfig()
    command = server_data.get("command", defaults.command)
    if isinstance(command, str):
        command = shlex.split(command)
    elif not isinstance(command, list):
        _log.warning("Invalid server.command %r; using %s", command, defaults.command)
        command = defaults.command
    server = ServerConfig(
        command=[str(part) for part in command],
        env={str(k): str(v) for k, v in _section(server_data, "env").items()},
        debug=bool(server_data.get("debug", False)),
        debug_args=[str(a) for a in server_data.get("debug_args", defaults.debug_args)],
    )

    language_data = _section(data, "language")
    language = LanguageConfig(
        language_id=language_data.get("language_id", "python"),
        scheme=language_data.get("scheme", "file"),
        configuration_section=language_data.get("configuration_section", "python"),
    )

    session_data = _section(data, "session")
    session_defaults = SessionConfig()
    session = SessionConfig(
        startup_timeout=_seconds(session_data, "startup_timeout", session_defaults),
        stop_grace_period=_seconds(session_data, "stop_grace_period", session_defaults),
        shutdown_timeout=_seconds(session_data, "shutdown_timeout", session_defaults),
    )

    logging_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=logging_data.get("level"),
        verbose=logging_data.get("verbose"),
        file=logging_data.get("file"),
    )

    return Config(
        server=server,
        language=language,
        session=session,
        logging=logging_config,
        settings=_section(data, "settings"),
    )


def load_config(root: str | Path | None = None) -> Config:
    """Load configuration from all sources.

    Load order (later overrides earlier):
    1. System config
    2. User config
    3. Project config (if root provided)
    4. Environment variables

    Args:
        root: Optional workspace root whose ``.pyrightclient/config.yaml``
            is layered on top.
    """
    configs = [load_yaml_file(path) for path in get_config_paths(root)]
    configs.append(env_overrides())
    return dict_to_config(merge_configs(*configs))


def get_config() -> Config:
    """Get the cached process-wide config, loading it on first use."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config. Used by tests."""
    global _cached_config
    _cached_config = None
