"""Transcript reader: JSON Lines file to an ordered message list."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from permission_hook.errors import TranscriptError
from permission_hook.transcript.models import TranscriptMessage

logger = logging.getLogger(__name__)

MAX_RECENT_MESSAGES = 15


def parse_lines(lines: list[str]) -> list[TranscriptMessage]:
    """Parse transcript lines, skipping blank and malformed ones."""
    messages: list[TranscriptMessage] = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed transcript line %d", lineno)
            continue
        if not isinstance(data, dict):
            continue
        try:
            messages.append(TranscriptMessage.model_validate(data))
        except ValidationError:
            logger.debug("Skipping invalid transcript entry on line %d", lineno)
    return messages


def read_transcript(path: str | Path) -> list[TranscriptMessage]:
    """Read the transcript at *path*.

    Raises :class:`TranscriptError` when the file cannot be opened; content
    problems never raise.
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8", errors="replace") as fh:
            lines = fh.readlines()
    except OSError as exc:
        raise TranscriptError(str(path), str(exc)) from exc
    return parse_lines(lines)


def recent_assistant_messages(
    messages: list[TranscriptMessage],
    max_count: int = MAX_RECENT_MESSAGES,
) -> list[TranscriptMessage]:
    """Assistant messages after the last user prompt, the newest *max_count*."""
    start = 0
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].is_user_prompt:
            start = index + 1
            break
    window = [m for m in messages[start:] if m.is_assistant]
    if max_count <= 0:
        return []
    return window[-max_count:]
