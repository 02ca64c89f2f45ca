"""Configuration schema dataclasses for the language client.

Defines the structure of configuration at all levels (system, user, project).
Every field has a default so partial files merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ServerConfig:
    """How to launch the language server process.

    Example config.yaml:
        server:
          command: ["node", "/opt/pyright/server.js", "--stdio"]
          debug: true
          debug_args: ["--nolazy", "--inspect=6600"]
    """

    command: list[str] = field(default_factory=lambda: ["pyright-langserver", "--stdio"])
    env: dict[str, str] = field(default_factory=dict)  # Extra environment variables
    debug: bool = False  # Insert debug_args after the executable
    debug_args: list[str] = field(default_factory=lambda: ["--nolazy", "--inspect=6600"])

    def argv(self) -> list[str]:
        """Full argument vector for the server process."""
        if not self.command:
            return []
        if self.debug:
            return [self.command[0], *self.debug_args, *self.command[1:]]
        return list(self.command)


@dataclass
class LanguageConfig:
    """Which documents qualify for analysis."""

    language_id: str = "python"
    scheme: str = "file"
    configuration_section: str = "python"  # Settings section synchronized to the server


@dataclass
class SessionConfig:
    """Session lifecycle timeouts, in seconds."""

    startup_timeout: float = 30.0  # Spawn + initialize handshake
    stop_grace_period: float = 5.0  # Per step of the graceful shutdown
    shutdown_timeout: float = 10.0  # Global bound for stopping every session


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    language: LanguageConfig = field(default_factory=LanguageConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    settings: dict[str, Any] = field(default_factory=dict)  # Synchronized section content
