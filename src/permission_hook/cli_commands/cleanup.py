"""``permission-hook cleanup`` — sweep leases and session state files."""

from __future__ import annotations

import sys

import click

from permission_hook.cli_commands._output import console
from permission_hook.config import state_dir
from permission_hook.coordination import LeaseManager, SessionStore
from permission_hook.errors import CoordinationError


@click.command()
@click.option("--session", "session_id", default=None, help="Remove every file of one session.")
@click.option(
    "--max-age",
    type=click.FloatRange(min=0),
    default=60.0,
    show_default=True,
    help="Remove files older than this many seconds.",
)
def cleanup(session_id: str | None, max_age: float) -> None:
    """Remove stale coordination files from the state directory."""
    directory = state_dir()
    leases = LeaseManager(directory)
    sessions = SessionStore(directory)

    try:
        if session_id:
            removed_leases = leases.cleanup_for_session(session_id)
            removed_states = sessions.cleanup_for_session(session_id)
        else:
            removed_leases = leases.cleanup(max_age)
            removed_states = sessions.cleanup(max_age)
    except CoordinationError as exc:
        console.print(f"[red]Cleanup error:[/red] {exc}")
        sys.exit(1)

    console.print(f"Removed {removed_leases} lease file(s) and {removed_states} state file(s) from {directory}")
