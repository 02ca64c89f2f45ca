"""Platform-aware configuration path resolution.

Handles config file locations for:
- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/ (system), $XDG_CONFIG_HOME or ~/.config/ (user)
- Project: <workspace root>/.pyrightclient/
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "pyrightclient"
PROJECT_DIR = ".pyrightclient"


def get_system_config_path() -> Path | None:
    """Get system-level config path. The file may not exist."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get user-level config path. The file may not exist."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME
    return Path.home() / ".config" / APP_NAME / CONFIG_FILENAME


def get_project_config_path(root: str | Path) -> Path:
    """Get the config path inside a workspace root (may not exist)."""
    return Path(root) / PROJECT_DIR / CONFIG_FILENAME


def get_config_paths(root: str | Path | None = None) -> list[Path]:
    """All config paths in load order (lowest priority first)."""
    paths: list[Path] = []
    for path in (get_system_config_path(), get_user_config_path()):
        if path is not None:
            paths.append(path)
    if root is not None:
        paths.append(get_project_config_path(root))
    return paths
