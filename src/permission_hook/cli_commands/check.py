"""``permission-hook check`` — show the verdict for a tool call."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click

from permission_hook.cli_commands._output import console, print_verdict
from permission_hook.config import ConfigLoader
from permission_hook.policy import PolicyEngine
from permission_hook.policy.engine import SHELL_TOOL


@click.command()
@click.argument("command", required=False)
@click.option("--tool", "tool_name", default=SHELL_TOOL, show_default=True, help="Tool name to evaluate.")
@click.option("--input", "raw_input", default=None, help="Tool input as a JSON object.")
@click.option("--llm", "use_llm", is_flag=True, help="Consult the LLM classifier for ambiguous calls.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def check(command: str | None, tool_name: str, raw_input: str | None, use_llm: bool, as_json: bool) -> None:
    """Evaluate a tool call against the configured rules.

    COMMAND is a shell command line; use --input for other tools.
    """
    tool_input: dict[str, Any]
    if raw_input is not None:
        try:
            parsed = json.loads(raw_input)
        except json.JSONDecodeError as exc:
            console.print(f"[red]Invalid --input JSON:[/red] {exc}")
            sys.exit(1)
        if not isinstance(parsed, dict):
            console.print("[red]Invalid --input JSON:[/red] expected an object")
            sys.exit(1)
        tool_input = parsed
    elif command is not None:
        tool_input = {"command": command}
    else:
        console.print("[red]Nothing to check:[/red] pass COMMAND or --input")
        sys.exit(1)

    config = ConfigLoader().load()
    classifier = None
    if use_llm:
        if not config.ambiguous.classifier_enabled:
            console.print("[yellow]LLM classifier is not configured; ignoring --llm.[/yellow]")
        else:
            from permission_hook.policy.classifier import LLMClassifier

            classifier = LLMClassifier(config.ambiguous.llm)

    engine = PolicyEngine(config.policy(), classifier)
    verdict = asyncio.run(engine.resolve(tool_name, tool_input))
    print_verdict(tool_name, verdict, as_json=as_json)
