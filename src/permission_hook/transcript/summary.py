"""Notification text: titles, session names and short summaries."""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from permission_hook.transcript.analyzer import QUESTION_TOOL
from permission_hook.transcript.models import Status
from permission_hook.transcript.reader import recent_assistant_messages

if TYPE_CHECKING:
    from permission_hook.transcript.models import TranscriptMessage

MAX_SUMMARY_LENGTH = 150
SUMMARY_WINDOW = 3

SESSION_LIMIT_TEXT = "Session limit reached - please start a new conversation"
AUTH_ERROR_TEXT = "API authentication error - please log in again"
PLAN_FALLBACK_TEXT = "Plan is ready for review"

_TITLES: dict[Status, str] = {
    Status.TASK_COMPLETE: "✅ Task Complete",
    Status.REVIEW_COMPLETE: "📋 Review Complete",
    Status.QUESTION: "❓ Question",
    Status.PLAN_READY: "📝 Plan Ready",
    Status.SESSION_LIMIT_REACHED: "⚠️ Session Limit",
    Status.API_ERROR: "🔐 Auth Error",
    Status.UNKNOWN: "🔔 Notification",
}

_CODE_FENCE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE = re.compile(r"`[^`]+`")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_HEADING = re.compile(r"^#{1,6}\s*", re.MULTILINE)
_BULLET = re.compile(r"^\s*[-*+]\s+", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")


def status_title(status: Status) -> str:
    return _TITLES[status]


def session_name(session_id: str, cwd: str = "", branch: str | None = None) -> str:
    """Short human label for a session: ``[branch] folder`` or ``Session abcd1234``."""
    parts: list[str] = []
    if branch:
        parts.append(f"[{branch}]")
    if cwd:
        folder = re.split(r"[\\/]", cwd.rstrip("/\\"))[-1]
        if folder:
            parts.append(folder)
    if not parts:
        parts.append(f"Session {session_id[:8]}")
    return " ".join(parts)


def git_branch(cwd: str | Path) -> str | None:
    """Current branch of the repository containing *cwd*, read from ``.git/HEAD``."""
    if not cwd:
        return None
    directory = Path(cwd)
    for candidate in (directory, *directory.parents):
        head = candidate / ".git" / "HEAD"
        if not head.is_file():
            continue
        try:
            content = head.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        prefix = "ref: refs/heads/"
        if content.startswith(prefix):
            return content[len(prefix):]
        # Detached HEAD.
        return content[:8] or None
    return None


def clean_markdown(text: str) -> str:
    """Reduce markdown to plain single-line text."""
    text = _CODE_FENCE.sub("[code]", text)
    text = _INLINE_CODE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = text.replace("**", "").replace("__", "").replace("*", "").replace("_", " ")
    text = _HEADING.sub("", text)
    text = _BULLET.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def truncate_smart(text: str, max_len: int = MAX_SUMMARY_LENGTH) -> str:
    """Cut *text* to *max_len* characters, preferring a word boundary."""
    if len(text) <= max_len:
        return text
    if max_len <= 0:
        return "..."
    truncated = text[:max_len]
    last_space = truncated.rfind(" ")
    if last_space > max_len // 2:
        return text[:last_space] + "..."
    return truncated + "..."


def _question_text(message: TranscriptMessage) -> str | None:
    tool_input: Any = message.tool_input(QUESTION_TOOL)
    if not isinstance(tool_input, dict):
        return None
    questions = tool_input.get("questions")
    if isinstance(questions, list) and questions and isinstance(questions[0], dict):
        question = questions[0].get("question")
        if isinstance(question, str):
            return question
    question = tool_input.get("question")
    return question if isinstance(question, str) else None


def _last_text(messages: list[TranscriptMessage]) -> str:
    for message in reversed(messages):
        if message.text:
            return message.text
    return ""


def relevant_text(messages: list[TranscriptMessage], status: Status) -> str:
    recent = recent_assistant_messages(messages, SUMMARY_WINDOW)

    if status is Status.SESSION_LIMIT_REACHED:
        return SESSION_LIMIT_TEXT
    if status is Status.API_ERROR:
        return AUTH_ERROR_TEXT
    if status is Status.QUESTION:
        for message in reversed(recent):
            question = _question_text(message)
            if question:
                return question
        return _last_text(recent)
    if status is Status.PLAN_READY:
        return _last_text(recent) or PLAN_FALLBACK_TEXT
    return _last_text(recent)


def generate_summary(messages: list[TranscriptMessage], status: Status) -> str:
    """One-line summary of the latest turn for a notification body."""
    return truncate_smart(clean_markdown(relevant_text(messages, status)))
