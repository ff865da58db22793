"""Configuration models and loading.

The hook reads one config file per invocation.  Every section has built-in
defaults, so a missing or corrupt file degrades to the default policy instead
of failing the host agent.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from permission_hook.errors import ConfigError
from permission_hook.policy.models import InterpreterKind, PolicyConfiguration

logger = logging.getLogger(__name__)

HOME_ENV = "PERMISSION_HOOK_HOME"
STATE_DIR_ENV = "PERMISSION_HOOK_STATE_DIR"

_CONFIG_FILENAMES = ("config.json", "config.yaml", "config.yml")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class AutoApproveSettings(BaseModel):
    """Tier 1 allow rules."""

    tools: list[str] = Field(
        default_factory=lambda: [
            "Read", "Glob", "Grep",
            "WebFetch", "WebSearch",
            "Task", "TaskList", "TaskGet", "TaskCreate", "TaskUpdate",
        ],
        description="Tool names that are always allowed.",
    )
    bash_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^git\s+(status|log|diff|branch|show|remote|fetch)",
            r"^ls(\s|$)",
            r"^pwd$",
            r"^echo\s",
            r"^cat\s",
            r"^head\s",
            r"^tail\s",
            r"^grep\s",
            r"^wc(\s|$)",
            r"^npm\s+(list|ls|outdated|view|info|search)",
            r"^node\s+--version",
            r"^python3?\s+--version",
            r"^pip3?\s+(list|show|search)",
            r"^docker\s+(ps|images|inspect|logs)",
            r"^gh\s+(repo|pr|issue|release|run|workflow)\s+(view|list|status|diff|checks)",
            r"^gh\s+api\s",
            r"^gh\s+auth\s+status",
            r"^(whoami|hostname|date|uname|env)$",
        ],
        description="Regexes a shell segment may match to be allowed.",
    )


class AutoDenySettings(BaseModel):
    """Tier 2 deny rules."""

    bash_patterns: list[str] = Field(
        default_factory=lambda: [
            r"rm\s+(-rf?|--recursive)?\s*[/~]",
            r"rm\s+-rf?\s+\*",
            r"git\s+push.*--force",
            r"git\s+reset\s+--hard",
            r"curl.*\|\s*(ba)?sh",
            r"wget.*\|\s*(ba)?sh",
            r"sudo\s+rm",
            r"npm\s+publish",
            r"yarn\s+publish",
            r"mkfs\.",
            r"dd\s+.*of=/dev",
            r">\s*/etc/",
            r"chmod\s+(-R\s+)?777\s+/",
        ],
        description="Regexes that deny a shell command when any segment matches.",
    )
    protected_paths: list[str] = Field(
        default_factory=lambda: [
            r"^/etc/",
            r"^/usr/",
            r"^/bin/",
            r"^/sbin/",
            r"(?i)^C:\\Windows",
            r"(?i)^C:\\Program Files",
        ],
        description="Regexes for paths that file-mutating tools may not touch.",
    )


class InlineScriptSettings(BaseModel):
    """Inline interpreter code detection (``python -c``, heredocs, ...)."""

    enabled: bool = True
    dangerous_python_patterns: list[str] = Field(
        default_factory=lambda: [
            r"os\.remove",
            r"os\.unlink",
            r"os\.rmdir",
            r"os\.system",
            r"shutil\.rmtree",
            r"subprocess",
        ]
    )
    dangerous_node_patterns: list[str] = Field(
        default_factory=lambda: [
            r"child_process",
            r"fs\.unlink",
            r"fs\.rmdir",
            r"fs\.rm\(",
            r"rimraf",
        ]
    )
    dangerous_powershell_patterns: list[str] = Field(
        default_factory=lambda: [
            r"(?i)Remove-Item",
            r"(?i)rm\s+-r",
            r"(?i)del\s+-r",
            r"(?i)Stop-Process",
            r"(?i)Kill",
            r"(?i)Format-Volume",
            r"(?i)Clear-Disk",
            r"(?i)Initialize-Disk",
            r"(?i)Invoke-Expression",
            r"(?i)iex\s",
            r"(?i)Start-Process.*-Verb\s+RunAs",
            r"(?i)Set-ExecutionPolicy",
            r"(?i)Disable-",
            r"(?i)Stop-Service",
            r"(?i)Uninstall-",
        ]
    )
    dangerous_cmd_patterns: list[str] = Field(
        default_factory=lambda: [
            r"(?i)\bdel\s",
            r"(?i)\berase\s",
            r"(?i)\b(rd|rmdir)\s",
            r"(?i)\bformat\s",
            r"(?i)\breg\s+delete",
            r"(?i)\btaskkill\b",
            r"(?i)\bshutdown\b",
        ]
    )


class LLMSettings(BaseModel):
    model: str = Field(default="openrouter/openai/gpt-4o-mini", description="LiteLLM model string.")
    api_key: str = ""
    api_base: str = ""
    timeout: float = Field(default=10.0, description="Seconds before the classifier gives up.")


class AmbiguousSettings(BaseModel):
    """Tier 3: what to do when no rule decides."""

    mode: Literal["ask", "llm"] = "ask"
    llm: LLMSettings = Field(default_factory=LLMSettings)

    @property
    def classifier_enabled(self) -> bool:
        return self.mode == "llm" and bool(self.llm.api_key)


class LoggingSettings(BaseModel):
    enabled: bool = Field(default=True, description="Append decisions to decisions.log.")
    verbose: bool = Field(default=False, description="Emit debug diagnostics on stderr.")


class DesktopSettings(BaseModel):
    enabled: bool = False
    timeout_ms: int = 5000


class WebhookSettings(BaseModel):
    enabled: bool = False
    url: str = ""
    preset: str = Field(default="custom", description="slack, discord, telegram or custom.")
    telegram_chat_id: str | None = None
    retry_enabled: bool = True
    retry_max_attempts: int = 3
    timeout: float = 10.0
    rate_limit_per_minute: float = 10.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_recovery_seconds: float = 30.0


class NotificationSettings(BaseModel):
    desktop: DesktopSettings = Field(default_factory=DesktopSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    suppress_question_after_task_complete_seconds: int = 12
    suppress_question_after_any_notification_seconds: int = 12
    duplicate_message_window_seconds: int = 180
    notify_on_subagent_stop: bool = False
    notify_on_text_response: bool = True


class UpdateSettings(BaseModel):
    check_enabled: bool = False
    check_interval_hours: int = 24
    github_repo: str = "tantk/permission-hook"


class TelemetrySettings(BaseModel):
    enabled: bool = False
    otlp_endpoint: str | None = None


class HookConfig(BaseModel):
    """Top-level configuration, one instance per invocation."""

    auto_approve: AutoApproveSettings = Field(default_factory=AutoApproveSettings)
    auto_deny: AutoDenySettings = Field(default_factory=AutoDenySettings)
    inline_scripts: InlineScriptSettings = Field(default_factory=InlineScriptSettings)
    ambiguous: AmbiguousSettings = Field(default_factory=AmbiguousSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    updates: UpdateSettings = Field(default_factory=UpdateSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    def policy(self) -> PolicyConfiguration:
        """Freeze the rule lists into a :class:`PolicyConfiguration`."""
        scripts = self.inline_scripts
        return PolicyConfiguration(
            auto_approve_tools=frozenset(self.auto_approve.tools),
            auto_approve_command_patterns=tuple(self.auto_approve.bash_patterns),
            auto_deny_command_patterns=tuple(self.auto_deny.bash_patterns),
            protected_path_patterns=tuple(self.auto_deny.protected_paths),
            dangerous_inline_script_patterns={
                InterpreterKind.PYTHON: tuple(scripts.dangerous_python_patterns),
                InterpreterKind.NODE: tuple(scripts.dangerous_node_patterns),
                InterpreterKind.POWERSHELL: tuple(scripts.dangerous_powershell_patterns),
                InterpreterKind.CMD: tuple(scripts.dangerous_cmd_patterns),
            },
            inline_scripts_enabled=scripts.enabled,
        )


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def config_dir() -> Path:
    """Directory holding the config file and decision logs."""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override)
    return Path.home() / ".permission-hook"


def state_dir() -> Path:
    """Directory holding leases and per-session state."""
    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ConfigLoader:
    """Load and validate the hook config from ``directory``."""

    def __init__(self, directory: Path | None = None) -> None:
        self._directory = directory or config_dir()

    @property
    def directory(self) -> Path:
        return self._directory

    def find(self) -> Path | None:
        """Return the first existing config file, if any."""
        for name in _CONFIG_FILENAMES:
            candidate = self._directory / name
            if candidate.is_file():
                return candidate
        return None

    def load_strict(self, path: Path) -> HookConfig:
        """Parse *path* or raise :class:`ConfigError`.

        ``.json`` files go through :func:`json.loads`; ``.yaml``/``.yml``
        through ``yaml.safe_load``.  An empty file means all defaults.
        """
        try:
            raw = path.read_text(encoding="utf-8-sig")
        except OSError as exc:
            raise ConfigError(str(path), str(exc)) from exc

        data: Any = None
        if raw.strip():
            if path.suffix == ".json":
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise ConfigError(str(path), f"parse error: {exc}") from exc
            else:
                try:
                    data = yaml.safe_load(raw)
                except yaml.YAMLError as exc:
                    raise ConfigError(str(path), f"parse error: {exc}") from exc

        if data is None:
            return HookConfig()
        if not isinstance(data, dict):
            raise ConfigError(str(path), "top level must be a mapping")

        try:
            return HookConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(path), str(exc)) from exc

    def load(self) -> HookConfig:
        """Load the config, falling back to defaults on any problem."""
        path = self.find()
        if path is None:
            return HookConfig()
        try:
            return self.load_strict(path)
        except ConfigError as exc:
            logger.warning("%s; using defaults", exc)
            return HookConfig()
