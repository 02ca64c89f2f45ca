"""Configuration management for the language client.

Hierarchical YAML configuration:
- System-level config (/etc/pyrightclient/ or %PROGRAMDATA%)
- User-level config (~/.config/pyrightclient/ or %APPDATA%)
- Project-level config (<workspace root>/.pyrightclient/)
- Environment variable overrides (highest priority)
"""

from pyrightclient.config.loader import get_config, load_config, reset_config
from pyrightclient.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from pyrightclient.config.schema import (
    Config,
    LanguageConfig,
    LoggingConfig,
    ServerConfig,
    SessionConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "LanguageConfig",
    "LoggingConfig",
    "ServerConfig",
    "SessionConfig",
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
