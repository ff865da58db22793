"""permission-hook CLI entrypoint.

With no subcommand the process behaves as the agent hook: it reads one event
from stdin, answers on stdout/stderr and exits 0 (or 2 for a deny).
"""

from __future__ import annotations

import logging
import sys

import click

from permission_hook import __version__
from permission_hook.config import ConfigLoader
from permission_hook.hook import HookOutcome, HookRunner
from permission_hook.logs import configure_logging

logger = logging.getLogger(__name__)


def run_hook(raw: str) -> HookOutcome:
    """Load config, wire a :class:`HookRunner` and handle one event."""
    configure_logging()
    config = ConfigLoader().load()
    configure_logging(verbose=config.logging.verbose)

    telemetry = config.telemetry.enabled
    if telemetry:
        from permission_hook.utils.telemetry import configure_telemetry

        try:
            configure_telemetry(otlp_endpoint=config.telemetry.otlp_endpoint)
        except ImportError as exc:
            logger.warning("%s", exc)
            telemetry = False

    try:
        return HookRunner.from_config(config).run(raw)
    finally:
        if telemetry:
            from permission_hook.utils.telemetry import shutdown_telemetry

            shutdown_telemetry()


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="permission-hook")
@click.pass_context
def main(ctx: click.Context) -> None:
    """permission-hook — permission and notification hook for coding agents.

    Run without a subcommand to process one hook event from stdin.
    """
    if ctx.invoked_subcommand is not None:
        return

    raw = sys.stdin.buffer.read().decode("utf-8", errors="replace")
    outcome = run_hook(raw)
    if outcome.stdout:
        click.echo(outcome.stdout)
    if outcome.stderr:
        click.echo(outcome.stderr, err=True)
    sys.exit(outcome.exit_code)


# Register subcommands
from permission_hook.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
