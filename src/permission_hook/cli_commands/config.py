"""``permission-hook config`` — show the effective configuration."""

from __future__ import annotations

import sys

import click

from permission_hook.cli_commands._output import console, print_config
from permission_hook.config import ConfigLoader, HookConfig
from permission_hook.errors import ConfigError


@click.command("config")
@click.option("--defaults", is_flag=True, help="Show the built-in defaults instead.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def config_cmd(defaults: bool, as_json: bool) -> None:
    """Validate and show the configuration the hook would use."""
    loader = ConfigLoader()
    path = None if defaults else loader.find()

    if path is None:
        config = HookConfig()
        source = "built-in defaults" if defaults else f"built-in defaults (no config in {loader.directory})"
    else:
        try:
            config = loader.load_strict(path)
        except ConfigError as exc:
            console.print(f"[red]Invalid config:[/red] {exc}")
            sys.exit(1)
        source = str(path)

    if as_json:
        console.print_json(config.model_dump_json())
        return
    print_config(config, source=source)
