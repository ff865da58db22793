"""PolicyEngine: tiered allow / deny / defer decisions for tool calls.

Pure logic, no I/O, apart from the optional classifier awaited by
:meth:`PolicyEngine.resolve`.  Resolution order:

1. ``auto_approve_tools`` (fast path).
2. Shell commands whose every segment is a known-safe command or a harmless
   inline script.
3. Read-only MCP capability tools.
4. Deny rules: dangerous shell patterns, protected paths, destructive MCP
   capability tools.
5. The classifier, when one is configured.

The first tier that reaches a definite answer wins; otherwise ``Defer``.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from permission_hook.errors import ClassifierError
from permission_hook.policy.models import Allow, Defer, Deny, PolicyConfiguration
from permission_hook.policy.shell import (
    normalize_program_path,
    parse_inline_script,
    split_command_segments,
)
from permission_hook.utils.telemetry import ATTR_DECISION, ATTR_REASON, ATTR_TOOL_NAME, get_tracer

if TYPE_CHECKING:
    import re

    from permission_hook.policy.models import InlineScript, Verdict

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

SHELL_TOOL = "Bash"
FILE_MUTATING_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
MCP_PREFIX = "mcp__"

READ_ONLY_ACTION_WORDS = (
    "get", "list", "read", "fetch", "search", "find", "query",
    "view", "show", "describe", "inspect", "status", "health",
)
DESTRUCTIVE_ACTION_WORDS = (
    "delete", "remove", "destroy", "drop", "clear",
    "wipe", "purge", "erase", "reset", "truncate",
)


@runtime_checkable
class Classifier(Protocol):
    """Decides actions no rule covers."""

    async def classify(self, tool_name: str, tool_input: dict[str, Any]) -> Verdict:
        """Return a verdict, or raise :class:`ClassifierError`."""
        ...


class PolicyEngine:
    """Evaluate tool calls against a :class:`PolicyConfiguration`."""

    def __init__(
        self,
        policy: PolicyConfiguration,
        classifier: Classifier | None = None,
    ) -> None:
        self._policy = policy
        self._classifier = classifier

    @property
    def policy(self) -> PolicyConfiguration:
        return self._policy

    def evaluate(self, tool_name: str, tool_input: dict[str, Any] | None = None) -> Verdict:
        """Return the rule-based verdict for one tool call."""
        tool_input = tool_input or {}
        with _tracer.start_as_current_span("policy.evaluate") as span:
            span.set_attribute(ATTR_TOOL_NAME, tool_name)
            verdict = self._evaluate(tool_name, tool_input)
            span.set_attribute(ATTR_DECISION, verdict.decision)
            if not isinstance(verdict, Defer):
                span.set_attribute(ATTR_REASON, verdict.reason)
            return verdict

    async def resolve(self, tool_name: str, tool_input: dict[str, Any] | None = None) -> Verdict:
        """Like :meth:`evaluate`, then ask the classifier when nothing decided."""
        tool_input = tool_input or {}
        verdict = self.evaluate(tool_name, tool_input)
        if not isinstance(verdict, Defer) or self._classifier is None:
            return verdict

        try:
            return await self._classifier.classify(tool_name, tool_input)
        except ClassifierError as exc:
            logger.warning("Classifier unavailable, deferring: %s", exc)
            return Defer()

    # -- tiers ---------------------------------------------------------------

    def _evaluate(self, tool_name: str, tool_input: dict[str, Any]) -> Verdict:
        if tool_name in self._policy.auto_approve_tools:
            return Allow(reason="auto-approve tool")

        command = _command_text(tool_input) if tool_name == SHELL_TOOL else None

        if command is not None:
            reason = self._approve_shell(command)
            if reason:
                return Allow(reason=reason)

        action = _mcp_action(tool_name)
        if action is not None and any(word in action for word in READ_ONLY_ACTION_WORDS):
            return Allow(reason="read-only MCP")

        if command is not None and self._is_dangerous_command(command):
            return Deny(reason="dangerous pattern")

        if tool_name in FILE_MUTATING_TOOLS and self._touches_protected_path(tool_input):
            return Deny(reason="protected path")

        if action is not None and any(word in action for word in DESTRUCTIVE_ACTION_WORDS):
            return Deny(reason="destructive MCP")

        return Defer()

    def _approve_shell(self, command: str) -> str:
        """Return an approval reason when every segment is safe, else ``""``."""
        reason = ""
        for segment in split_command_segments(command.strip()):
            if _is_cd(segment):
                continue
            if _matches_any(normalize_program_path(segment), self._policy.approve_regexes):
                reason = reason or "safe pattern"
                continue
            script = self._inline_script(segment)
            if script is None or not self._is_script_safe(script):
                return ""
            reason = f"safe {script.kind.value}"
        return reason

    def _inline_script(self, segment: str) -> InlineScript | None:
        if not self._policy.inline_scripts_enabled:
            return None
        return parse_inline_script(normalize_program_path(segment))

    def _is_script_safe(self, script: InlineScript) -> bool:
        dangerous = self._policy.dangerous_regexes(script.kind)
        for regex in dangerous:
            if regex.search(script.source):
                logger.debug("Inline %s script matched %s", script.kind.value, regex.pattern)
                return False
        return True

    def _is_dangerous_command(self, command: str) -> bool:
        regexes = self._policy.deny_regexes
        candidates = [normalize_program_path(s) for s in split_command_segments(command)]
        candidates.append(command)
        return any(_matches_any(candidate, regexes) for candidate in candidates)

    def _touches_protected_path(self, tool_input: dict[str, Any]) -> bool:
        path = _target_path(tool_input)
        if not path:
            return False
        expanded = os.path.normpath(os.path.expanduser(path))
        regexes = self._policy.protected_path_regexes
        return _matches_any(path, regexes) or _matches_any(expanded, regexes)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _matches_any(text: str, regexes: tuple[re.Pattern[str], ...]) -> bool:
    return any(regex.search(text) for regex in regexes)


def _is_cd(segment: str) -> bool:
    return segment == "cd" or segment.startswith(("cd ", "cd\t"))


def _command_text(tool_input: dict[str, Any]) -> str | None:
    command = tool_input.get("command")
    return command if isinstance(command, str) else None


def _target_path(tool_input: dict[str, Any]) -> str:
    for key in ("file_path", "path", "notebook_path"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _mcp_action(tool_name: str) -> str | None:
    """Return the lower-cased action of an ``mcp__<server>__<action>`` tool."""
    if not tool_name.startswith(MCP_PREFIX):
        return None
    return tool_name.split("__")[-1].lower()


def describe_input(tool_input: dict[str, Any]) -> str | None:
    """Pick the most telling field of a tool input for the decision log."""
    for key in ("command", "file_path", "pattern", "url"):
        value = tool_input.get(key)
        if isinstance(value, str):
            return value
    return None
