"""``permission-hook analyze`` — classify an agent transcript."""

from __future__ import annotations

import sys

import click

from permission_hook.cli_commands._output import console, print_status
from permission_hook.config import ConfigLoader
from permission_hook.errors import TranscriptError
from permission_hook.transcript import analyze, generate_summary, read_transcript, session_name


@click.command("analyze")
@click.argument("transcript", type=click.Path(exists=True, dir_okay=False))
@click.option("--session", "session_id", default="", help="Session id to show in the session label.")
def analyze_cmd(transcript: str, session_id: str) -> None:
    """Show the status and summary a Stop event would produce.

    TRANSCRIPT is a JSON-lines transcript file written by the agent.
    """
    config = ConfigLoader().load()
    try:
        messages = read_transcript(transcript)
    except TranscriptError as exc:
        console.print(f"[red]Error reading transcript:[/red] {exc}")
        sys.exit(1)

    status = analyze(messages, config.notifications)
    summary = generate_summary(messages, status)
    print_status(status, summary, session_name(session_id or "unknown"))
