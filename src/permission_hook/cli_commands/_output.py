"""Shared CLI output formatters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from permission_hook.policy import Allow, Deny

if TYPE_CHECKING:
    from permission_hook.config import HookConfig
    from permission_hook.logs import DecisionEntry
    from permission_hook.policy import Verdict
    from permission_hook.transcript import Status

console = Console()

_DECISION_STYLES = {"allow": "green", "deny": "red", "prompt": "yellow", "notify": "blue"}


def verdict_label(verdict: Verdict) -> str:
    if isinstance(verdict, Allow):
        return "allow"
    if isinstance(verdict, Deny):
        return "deny"
    return "defer"


def print_verdict(tool_name: str, verdict: Verdict, *, as_json: bool = False) -> None:
    """Pretty-print a policy verdict."""
    if as_json:
        console.print_json(verdict.model_dump_json())
        return

    label = verdict_label(verdict)
    style = _DECISION_STYLES.get(label, "yellow")
    console.print(f"[bold {style}]{label.upper()}[/bold {style}] {tool_name}")
    reason = getattr(verdict, "reason", "")
    if reason:
        console.print(f"  Reason: {reason}")
    elif label == "defer":
        console.print("  The user would be prompted.")


def print_status(status: Status, summary: str, session: str) -> None:
    """Pretty-print a transcript classification."""
    console.print(f"\n[bold]Status:[/bold] {status.value}")
    console.print(f"  Session: {session}")
    console.print(f"  Summary: {summary or '(none)'}")


def print_config(config: HookConfig, *, source: str) -> None:
    """Pretty-print the rule lists of a config with its source."""
    console.print(f"[bold]Config source:[/bold] {source}")

    table = Table(title="Policy Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Sample")

    rows = [
        ("Auto-approve tools", config.auto_approve.tools),
        ("Auto-approve commands", config.auto_approve.bash_patterns),
        ("Auto-deny commands", config.auto_deny.bash_patterns),
        ("Protected paths", config.auto_deny.protected_paths),
    ]
    for name, values in rows:
        table.add_row(name, str(len(values)), _truncate(", ".join(values[:3])))

    console.print(table)
    console.print(f"  Ambiguous mode: {config.ambiguous.mode}")
    console.print(f"  Inline script checks: {'on' if config.inline_scripts.enabled else 'off'}")
    console.print(f"  Desktop notifications: {'on' if config.notifications.desktop.enabled else 'off'}")
    webhook = config.notifications.webhook
    console.print(f"  Webhook: {webhook.preset if webhook.enabled else 'off'}")


def print_decisions_table(entries: list[DecisionEntry]) -> None:
    """Pretty-print logged decisions as a table."""
    table = Table(title="Recent Decisions")
    table.add_column("Time")
    table.add_column("Tool", style="cyan")
    table.add_column("Decision")
    table.add_column("Reason")
    table.add_column("Details")

    for entry in entries:
        style = _DECISION_STYLES.get(entry.decision, "white")
        table.add_row(
            entry.timestamp[:19].replace("T", " "),
            entry.tool,
            f"[{style}]{entry.decision}[/{style}]",
            _truncate(entry.reason, 60),
            _truncate(entry.details or "-", 40),
        )

    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
