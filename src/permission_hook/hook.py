"""HookRunner: one stdin event in, one exit code (and maybe a response) out.

The host agent spawns the hook once per event and blocks on it, so nothing
here may fail loudly: malformed input and internal errors end in exit 0,
and only an explicit deny produces exit 2.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TypeVar, assert_never

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from permission_hook.config import HookConfig, config_dir, state_dir
from permission_hook.coordination import LeaseManager, SessionStore
from permission_hook.delivery.update import UPDATE_STATE_FILENAME, UpdateChecker
from permission_hook.delivery.webhook import WebhookNotifier
from permission_hook.errors import CoordinationError, DeliveryError, TranscriptError
from permission_hook.logs import DecisionLog
from permission_hook.notify import DesktopNotifier, Notifier
from permission_hook.policy import Allow, Defer, Deny, PolicyEngine, describe_input
from permission_hook.transcript import (
    Status,
    analyze,
    generate_summary,
    read_transcript,
    session_name,
    status_for_pre_tool_use,
)
from permission_hook.transcript.summary import git_branch
from permission_hook.utils.telemetry import ATTR_EVENT, ATTR_SESSION_ID, get_tracer

if TYPE_CHECKING:
    from permission_hook.policy import Verdict

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

T = TypeVar("T")

LEASE_MAX_AGE = 60
STATE_MAX_AGE = 24 * 3600
PERMISSION_PROMPT_MESSAGE = "Permission prompt"


class HookEvent(str, Enum):
    PRE_TOOL_USE = "PreToolUse"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    NOTIFICATION = "Notification"

    @classmethod
    def parse(cls, name: str) -> HookEvent:
        """Unknown or missing event names are treated as ``PreToolUse``."""
        try:
            return cls(name)
        except ValueError:
            if name:
                logger.debug("Unknown hook event %r, treating as PreToolUse", name)
            return cls.PRE_TOOL_USE


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class HookInput(BaseModel):
    """The JSON object the host writes to stdin."""

    model_config = ConfigDict(extra="ignore")

    hook_event_name: str = ""
    tool_name: str = ""
    tool: str = ""
    tool_input: dict[str, Any] | None = None
    input: dict[str, Any] | None = None
    session_id: str = "unknown"
    transcript_path: str | None = None
    cwd: str = ""
    message: str = ""

    @field_validator("tool_input", "input", mode="before")
    @classmethod
    def _object_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("hook_event_name", "tool_name", "tool", "cwd", "message", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("session_id", mode="before")
    @classmethod
    def _default_session(cls, value: Any) -> Any:
        return value or "unknown"

    @property
    def event(self) -> HookEvent:
        return HookEvent.parse(self.hook_event_name)

    @property
    def resolved_tool_name(self) -> str:
        return self.tool_name or self.tool

    @property
    def resolved_tool_input(self) -> dict[str, Any]:
        if self.tool_input is not None:
            return self.tool_input
        return self.input or {}


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hook_event_name: str = Field(default="PreToolUse", alias="hookEventName")
    permission_decision: str = Field(alias="permissionDecision")
    permission_decision_reason: str = Field(default="", alias="permissionDecisionReason")


class HookResponse(BaseModel):
    """The JSON object written to stdout for a definite decision."""

    model_config = ConfigDict(populate_by_name=True)

    hook_specific_output: HookSpecificOutput = Field(alias="hookSpecificOutput")
    suppress_output: bool = Field(default=True, alias="suppressOutput")

    @classmethod
    def allow(cls, reason: str) -> HookResponse:
        return cls(hook_specific_output=HookSpecificOutput(permission_decision="allow", permission_decision_reason=reason))

    @classmethod
    def deny(cls, reason: str) -> HookResponse:
        return cls(hook_specific_output=HookSpecificOutput(permission_decision="deny", permission_decision_reason=reason))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class HookOutcome(BaseModel):
    """What the process should print and how it should exit."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""


def parse_input(raw: str) -> HookInput | None:
    """Parse stdin text; ``None`` for anything unusable."""
    text = raw.lstrip("\ufeff").strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return HookInput.model_validate(data)
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class HookRunner:
    """Routes one hook event to the policy engine or the notification path."""

    def __init__(
        self,
        config: HookConfig,
        *,
        engine: PolicyEngine,
        leases: LeaseManager,
        sessions: SessionStore,
        decisions: DecisionLog,
        desktop: DesktopNotifier | None = None,
        webhook: WebhookNotifier | None = None,
        updates: UpdateChecker | None = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._leases = leases
        self._sessions = sessions
        self._decisions = decisions
        self._desktop = desktop
        self._webhook = webhook
        self._updates = updates

    @classmethod
    def from_config(
        cls,
        config: HookConfig,
        *,
        home: Path | None = None,
        coordination_dir: Path | None = None,
    ) -> HookRunner:
        """Wire every collaborator from *config* and the standard directories."""
        home = home or config_dir()
        coordination_dir = coordination_dir or state_dir()
        classifier = None
        if config.ambiguous.classifier_enabled:
            from permission_hook.policy.classifier import LLMClassifier

            classifier = LLMClassifier(config.ambiguous.llm)
        notifications = config.notifications
        return cls(
            config,
            engine=PolicyEngine(config.policy(), classifier),
            leases=LeaseManager(coordination_dir),
            sessions=SessionStore(coordination_dir),
            decisions=DecisionLog(home, enabled=config.logging.enabled),
            desktop=DesktopNotifier(notifications.desktop) if notifications.desktop.enabled else None,
            webhook=WebhookNotifier(notifications.webhook) if notifications.webhook.enabled else None,
            updates=UpdateChecker(config.updates, home / UPDATE_STATE_FILENAME),
        )

    def run(self, raw: str) -> HookOutcome:
        return asyncio.run(self.handle(raw))

    async def handle(self, raw: str) -> HookOutcome:
        hook_input = parse_input(raw)
        if hook_input is None:
            logger.debug("Ignoring unparsable hook input")
            return HookOutcome()

        event = hook_input.event
        with _tracer.start_as_current_span("hook.handle") as span:
            span.set_attribute(ATTR_EVENT, event.value)
            span.set_attribute(ATTR_SESSION_ID, hook_input.session_id)
            logger.debug("Hook event: %s", event.value)
            try:
                return await self._dispatch(event, hook_input)
            except Exception:
                logger.exception("Unexpected error handling %s", event.value)
                return HookOutcome()

    async def _dispatch(self, event: HookEvent, hook_input: HookInput) -> HookOutcome:
        if event is HookEvent.PRE_TOOL_USE:
            return await self.pre_tool_use(hook_input)
        if event is HookEvent.STOP:
            await self.stop(hook_input)
        elif event is HookEvent.SUBAGENT_STOP:
            if self._config.notifications.notify_on_subagent_stop:
                await self.stop(hook_input)
            else:
                logger.debug("SubagentStop notifications disabled")
        elif event is HookEvent.NOTIFICATION:
            await self.notification(hook_input)
        else:
            assert_never(event)
        return HookOutcome()

    # -- PreToolUse ----------------------------------------------------------

    async def pre_tool_use(self, hook_input: HookInput) -> HookOutcome:
        tool_name = hook_input.resolved_tool_name
        tool_input = hook_input.resolved_tool_input
        details = describe_input(tool_input)

        verdict: Verdict = await self._engine.resolve(tool_name, tool_input)

        if isinstance(verdict, Allow):
            self._decisions.record(tool_name, "allow", verdict.reason, details)
            logger.debug("ALLOW: %s - %s", tool_name, verdict.reason)
            return HookOutcome(stdout=HookResponse.allow(verdict.reason).to_json())

        if isinstance(verdict, Deny):
            self._decisions.record(tool_name, "deny", verdict.reason, details)
            return HookOutcome(
                exit_code=2,
                stderr=f"[permission-hook] DENY: {tool_name} - {verdict.reason}",
            )

        if isinstance(verdict, Defer):
            status = status_for_pre_tool_use(tool_name)
            if status is not Status.UNKNOWN:
                self._coordinate(
                    "update interactive tool state",
                    lambda: self._sessions.update_interactive_tool(
                        hook_input.session_id, tool_name, hook_input.cwd
                    ),
                    default=None,
                )
                logger.debug("Interactive tool: %s -> %s", tool_name, status.value)

            reason = f"Prompting user for: {tool_name} ({details or 'no details'})"
            self._decisions.record(tool_name, "prompt", reason, details)
            self._decisions.record_prompt(tool_name, details)
            logger.debug(reason)
            return HookOutcome()

        assert_never(verdict)

    # -- Stop / SubagentStop -------------------------------------------------

    async def stop(self, hook_input: HookInput) -> None:
        event_kind = hook_input.event.value
        session_id = hook_input.session_id

        if self._coordinate("probe lease", lambda: self._leases.probe(session_id, event_kind), default=False):
            logger.debug("Duplicate %s for %s, skipping", event_kind, session_id)
            return

        path = hook_input.transcript_path
        if not path or not Path(path).is_file():
            logger.debug("No transcript available")
            return
        try:
            messages = read_transcript(path)
        except TranscriptError as exc:
            logger.warning("%s", exc)
            return

        status = analyze(messages, self._config.notifications)
        if status is Status.UNKNOWN:
            logger.debug("Unknown status, skipping notification")
            return

        if not self._claim(session_id, event_kind):
            return

        self._coordinate(
            "update session state",
            lambda: self._sessions.update_state(session_id, status, "", hook_input.cwd),
            default=None,
        )

        summary = generate_summary(messages, status)
        window = self._config.notifications.duplicate_message_window_seconds
        if self._coordinate(
            "check duplicate message",
            lambda: self._sessions.is_duplicate_message(session_id, summary, window),
            default=False,
        ):
            logger.debug("Duplicate message for %s, skipping notification", session_id)
        else:
            await self._notify(status, summary, hook_input)
            self._coordinate(
                "record notification",
                lambda: self._sessions.update_last_notification(session_id, status, summary),
                default=None,
            )

        self._decisions.record(event_kind, "notify", status.value, session_id)
        self._coordinate("sweep leases", lambda: self._leases.cleanup(LEASE_MAX_AGE), default=0)
        self._coordinate("sweep session state", lambda: self._sessions.cleanup(STATE_MAX_AGE), default=0)
        await self._check_for_update()

    # -- Notification --------------------------------------------------------

    async def notification(self, hook_input: HookInput) -> None:
        event_kind = HookEvent.NOTIFICATION.value
        session_id = hook_input.session_id
        settings = self._config.notifications

        if self._coordinate("probe lease", lambda: self._leases.probe(session_id, event_kind), default=False):
            logger.debug("Duplicate notification for %s, skipping", session_id)
            return

        suppressed = self._coordinate(
            "check cooldown",
            lambda: self._sessions.should_suppress_question_after_any_notification(
                session_id, settings.suppress_question_after_any_notification_seconds
            )
            or self._sessions.should_suppress_question_after_task_complete(
                session_id, settings.suppress_question_after_task_complete_seconds
            ),
            default=False,
        )
        if suppressed:
            logger.debug("Question suppressed due to recent notification")
            return

        if not self._claim(session_id, event_kind):
            return

        message = hook_input.message or PERMISSION_PROMPT_MESSAGE
        status = Status.QUESTION
        self._coordinate(
            "update notification state",
            lambda: self._sessions.update_last_notification(session_id, status, message),
            default=None,
        )
        await self._notify(status, message, hook_input)
        self._decisions.record(event_kind, "notify", status.value, session_id)

    # -- helpers -------------------------------------------------------------

    def _claim(self, session_id: str, event_kind: str) -> bool:
        """Take the event lease, then the cross-event content lock."""
        if not self._coordinate("acquire lease", lambda: self._leases.acquire(session_id, event_kind), default=True):
            logger.debug("Lost %s lease for %s (duplicate)", event_kind, session_id)
            return False
        if not self._coordinate(
            "acquire content lock", lambda: self._leases.acquire_content_lock(session_id), default=True
        ):
            logger.debug("Content lock held for %s (duplicate)", session_id)
            return False
        return True

    async def _notify(self, status: Status, summary: str, hook_input: HookInput) -> None:
        session = session_name(hook_input.session_id, hook_input.cwd, git_branch(hook_input.cwd))
        channels: list[tuple[str, Notifier | None]] = [("Desktop", self._desktop), ("Webhook", self._webhook)]
        for label, notifier in channels:
            if notifier is None:
                continue
            try:
                await notifier.notify(status, summary, session)
            except DeliveryError as exc:
                logger.warning("%s notification dropped: %s", label, exc)

    async def _check_for_update(self) -> None:
        if self._updates is None:
            return
        update = await self._updates.check()
        if update is None:
            return
        current, latest = update
        logger.info("permission-hook %s is available (installed %s)", latest, current)
        if self._desktop is None:
            return
        try:
            await self._desktop.show(
                "⬆️ Update Available", f"permission-hook {latest} is available (installed {current})"
            )
        except DeliveryError as exc:
            logger.warning("Update notification dropped: %s", exc)
            return
        self._updates.mark_notified()

    @staticmethod
    def _coordinate(action: str, operation: Callable[[], T], *, default: T) -> T:
        """Run a coordination step; on I/O trouble warn and carry on with *default*."""
        try:
            return operation()
        except CoordinationError as exc:
            logger.warning("Could not %s: %s", action, exc)
            return default
