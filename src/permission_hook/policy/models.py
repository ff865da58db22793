"""Data models for the command policy engine."""

from __future__ import annotations

import functools
import logging
import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class InterpreterKind(str, Enum):
    """Interpreter that runs an inline script."""

    PYTHON = "python"
    NODE = "node"
    POWERSHELL = "powershell"
    CMD = "cmd"


class InlineScript(BaseModel):
    """Source code handed to an interpreter on its command line or via heredoc."""

    model_config = ConfigDict(frozen=True)

    kind: InterpreterKind
    source: str


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------


class Allow(BaseModel):
    """Let the action run without asking the user."""

    model_config = ConfigDict(frozen=True)

    decision: Literal["allow"] = "allow"
    reason: str = ""


class Deny(BaseModel):
    """Block the action."""

    model_config = ConfigDict(frozen=True)

    decision: Literal["deny"] = "deny"
    reason: str = ""


class Defer(BaseModel):
    """No rule decided; the host agent asks the user."""

    model_config = ConfigDict(frozen=True)

    decision: Literal["defer"] = "defer"


Verdict = Allow | Deny | Defer


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class PolicyConfiguration(BaseModel):
    """Immutable rule set, built once per invocation from the loaded config."""

    model_config = ConfigDict(frozen=True)

    auto_approve_tools: frozenset[str] = Field(default_factory=frozenset)
    auto_approve_command_patterns: tuple[str, ...] = ()
    auto_deny_command_patterns: tuple[str, ...] = ()
    protected_path_patterns: tuple[str, ...] = ()
    dangerous_inline_script_patterns: dict[InterpreterKind, tuple[str, ...]] = Field(
        default_factory=dict
    )
    inline_scripts_enabled: bool = True

    @property
    def approve_regexes(self) -> tuple[re.Pattern[str], ...]:
        return compile_patterns(self.auto_approve_command_patterns)

    @property
    def deny_regexes(self) -> tuple[re.Pattern[str], ...]:
        return compile_patterns(self.auto_deny_command_patterns)

    @property
    def protected_path_regexes(self) -> tuple[re.Pattern[str], ...]:
        return compile_patterns(self.protected_path_patterns)

    def dangerous_regexes(self, kind: InterpreterKind) -> tuple[re.Pattern[str], ...]:
        return compile_patterns(self.dangerous_inline_script_patterns.get(kind, ()))


@functools.lru_cache(maxsize=64)
def compile_patterns(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    """Compile *patterns*, skipping any that are not valid regexes."""
    compiled: list[re.Pattern[str]] = []
    for source in patterns:
        try:
            compiled.append(re.compile(source))
        except re.error as exc:
            logger.warning("Skipping invalid pattern %r: %s", source, exc)
    return tuple(compiled)
