"""Status analyzer: fixed-priority decision table over the latest agent turn.

Given the messages since the last user prompt, decide whether the agent
finished a task, finished a read-only review, asked a question, presented a
plan, hit its session limit or lost authentication.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from permission_hook.transcript.models import Status
from permission_hook.transcript.reader import read_transcript, recent_assistant_messages
from permission_hook.utils.telemetry import ATTR_STATUS, get_tracer

if TYPE_CHECKING:
    from pathlib import Path

    from permission_hook.config import NotificationSettings
    from permission_hook.transcript.models import TranscriptMessage

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EXIT_PLAN_TOOL = "ExitPlanMode"
QUESTION_TOOL = "AskUserQuestion"

ACTIVE_TOOLS = frozenset({
    "Write", "Edit", "Bash", "NotebookEdit",
    "SlashCommand", "KillShell", "Task", "MultiEdit",
})
READ_LIKE_TOOLS = frozenset({"Read", "Grep", "Glob"})

LIMIT_CHECK_WINDOW = 3
REVIEW_TEXT_THRESHOLD = 200


def status_for_pre_tool_use(tool_name: str) -> Status:
    """Status implied by an interactive tool about to run."""
    if tool_name == EXIT_PLAN_TOOL:
        return Status.PLAN_READY
    if tool_name == QUESTION_TOOL:
        return Status.QUESTION
    return Status.UNKNOWN


def _is_session_limit(text: str) -> bool:
    lowered = text.lower()
    return "session limit reached" in lowered or "session limit has been reached" in lowered


def _is_auth_error(text: str) -> bool:
    lowered = text.lower()
    return "api error: 401" in lowered and "/login" in lowered


def analyze(messages: list[TranscriptMessage], settings: NotificationSettings) -> Status:
    """Classify the latest turn in *messages*."""
    recent = recent_assistant_messages(messages)
    if not recent:
        return Status.UNKNOWN

    last_few = recent[::-1][:LIMIT_CHECK_WINDOW]
    if any(_is_session_limit(m.text) for m in last_few):
        return Status.SESSION_LIMIT_REACHED
    if any(_is_auth_error(m.text) for m in last_few):
        return Status.API_ERROR

    tools: list[str] = []
    text_length = 0
    for message in recent:
        tools.extend(message.tools)
        text_length += len(message.text)

    if not tools:
        if settings.notify_on_text_response and text_length > 0:
            return Status.TASK_COMPLETE
        return Status.UNKNOWN

    last_tool = tools[-1]
    if last_tool == EXIT_PLAN_TOOL:
        return Status.PLAN_READY
    if last_tool == QUESTION_TOOL:
        return Status.QUESTION
    if EXIT_PLAN_TOOL in tools[:-1]:
        return Status.TASK_COMPLETE

    has_active = any(t in ACTIVE_TOOLS for t in tools)
    if not has_active and any(t in READ_LIKE_TOOLS for t in tools) and text_length > REVIEW_TEXT_THRESHOLD:
        return Status.REVIEW_COMPLETE

    # Active last tool and any other tool use both mean the task ran to completion.
    return Status.TASK_COMPLETE


def analyze_transcript(path: str | Path, settings: NotificationSettings) -> Status:
    """Read the transcript at *path* and classify it.

    Raises :class:`~permission_hook.errors.TranscriptError` when the file
    cannot be read.
    """
    with _tracer.start_as_current_span("transcript.analyze") as span:
        status = analyze(read_transcript(path), settings)
        span.set_attribute(ATTR_STATUS, status.value)
        logger.debug("Transcript %s classified as %s", path, status.value)
        return status
