"""``permission-hook log`` — show recent logged decisions."""

from __future__ import annotations

import json

import click

from permission_hook.cli_commands._output import console, print_decisions_table
from permission_hook.config import config_dir
from permission_hook.logs import DecisionLog


@click.command("log")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, show_default=True, help="Entries to show.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def log_cmd(limit: int, as_json: bool) -> None:
    """Show the most recent allow / deny / prompt / notify decisions."""
    entries = DecisionLog(config_dir()).read(limit)

    if as_json:
        console.print_json(json.dumps([e.model_dump(exclude_none=True) for e in entries]))
        return

    if not entries:
        console.print("[yellow]No decisions logged yet.[/yellow]")
        return

    print_decisions_table(entries)
