"""Tests for ``permission-hook cleanup`` CLI command."""

from __future__ import annotations

import os
import time
from typing import TYPE_CHECKING

from click.testing import CliRunner

from permission_hook.cli import main
from permission_hook.coordination import LeaseManager, SessionStore
from permission_hook.transcript import Status

if TYPE_CHECKING:
    from pathlib import Path


class TestCleanupCommand:
    def test_sweeps_stale_leases(self, tmp_path: Path, hook_home: Path) -> None:
        leases = LeaseManager(tmp_path / "state")
        leases.acquire("old", "Stop")
        leases.acquire("new", "Stop")
        stale = time.time() - 120
        os.utime(leases.lease_path("old", "Stop"), (stale, stale))

        runner = CliRunner()
        result = runner.invoke(main, ["cleanup"])

        assert result.exit_code == 0
        assert "Removed 1 lease file(s) and 0 state file(s)" in result.output
        assert leases.lease_path("new", "Stop").exists()

    def test_session(self, tmp_path: Path, hook_home: Path) -> None:
        state = tmp_path / "state"
        leases = LeaseManager(state)
        leases.acquire("abc", "Stop")
        leases.acquire_content_lock("abc")
        leases.acquire("other", "Stop")
        SessionStore(state).update_last_notification("abc", Status.QUESTION, "hi")

        runner = CliRunner()
        result = runner.invoke(main, ["cleanup", "--session", "abc"])

        assert result.exit_code == 0
        assert "Removed 2 lease file(s) and 1 state file(s)" in result.output
        assert leases.probe("other", "Stop")

    def test_empty_directory(self, hook_home: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["cleanup", "--max-age", "0"])

        assert result.exit_code == 0
        assert "Removed 0 lease file(s)" in result.output

    def test_negative_max_age(self, hook_home: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["cleanup", "--max-age", "-1"])

        assert result.exit_code == 2
