"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from pyrightclient.config import reset_config

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Keep user/system config files and env overrides out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setattr(
        "pyrightclient.config.paths.get_system_config_path", lambda: None
    )
    monkeypatch.delenv("PYRIGHTCLIENT_LOG", raising=False)
    monkeypatch.delenv("PYRIGHTCLIENT_SERVER", raising=False)
    reset_config()
    yield
    reset_config()
