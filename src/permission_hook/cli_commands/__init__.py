"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from permission_hook.cli_commands.analyze import analyze_cmd
    from permission_hook.cli_commands.check import check
    from permission_hook.cli_commands.cleanup import cleanup
    from permission_hook.cli_commands.config import config_cmd
    from permission_hook.cli_commands.log import log_cmd

    cli.add_command(check)
    cli.add_command(analyze_cmd)
    cli.add_command(cleanup)
    cli.add_command(config_cmd)
    cli.add_command(log_cmd)
