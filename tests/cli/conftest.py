"""Fixtures for CLI tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from permission_hook.config import HOME_ENV, STATE_DIR_ENV


@pytest.fixture()
def hook_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config and state directories at *tmp_path*."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv(HOME_ENV, str(home))
    monkeypatch.setenv(STATE_DIR_ENV, str(tmp_path / "state"))
    return home
