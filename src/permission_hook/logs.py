"""Diagnostics and the on-disk decision log.

Diagnostics go through stdlib ``logging`` to stderr; stdout is reserved for
the hook response.  Decisions are appended as JSON lines to
``decisions.log`` in the config directory, and prompts that were handed back
to the user are kept in a short ``recent_prompts.log`` for quick review.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel

DECISIONS_FILENAME = "decisions.log"
PROMPTS_FILENAME = "recent_prompts.log"

MAX_REASON_LENGTH = 150
MAX_DETAILS_LENGTH = 100
MAX_PROMPT_LINES = 50

_HANDLER_NAME = "permission-hook-stderr"

logger = logging.getLogger(__name__)


def configure_logging(*, verbose: bool = False) -> None:
    """Attach a single stderr handler to the package logger."""
    root = logging.getLogger("permission_hook")
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("[permission-hook] %(levelname)s: %(message)s"))
    root.addHandler(handler)
    root.propagate = False


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


class DecisionEntry(BaseModel):
    timestamp: str
    tool: str
    decision: str
    reason: str
    details: str | None = None

    @classmethod
    def create(cls, tool: str, decision: str, reason: str, details: str | None = None) -> DecisionEntry:
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(),
            tool=tool,
            decision=decision,
            reason=truncate(reason, MAX_REASON_LENGTH),
            details=truncate(details, MAX_DETAILS_LENGTH) if details is not None else None,
        )


class DecisionLog:
    """Append-only decision records under *directory*."""

    def __init__(self, directory: Path, *, enabled: bool = True) -> None:
        self._directory = Path(directory)
        self._enabled = enabled

    @property
    def decisions_path(self) -> Path:
        return self._directory / DECISIONS_FILENAME

    @property
    def prompts_path(self) -> Path:
        return self._directory / PROMPTS_FILENAME

    def record(self, tool: str, decision: str, reason: str, details: str | None = None) -> None:
        if not self._enabled:
            return
        entry = DecisionEntry.create(tool, decision, reason, details)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with self.decisions_path.open("a", encoding="utf-8") as fh:
                fh.write(entry.model_dump_json(exclude_none=True) + "\n")
        except OSError as exc:
            logger.warning("Cannot write decision log: %s", exc)

    def record_prompt(self, tool: str, details: str | None = None) -> None:
        """Keep the last few prompts in a human-readable file."""
        line = f"{datetime.now().strftime('%H:%M:%S')} | {tool} | {details or '-'}"
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            try:
                existing = self.prompts_path.read_text(encoding="utf-8").splitlines()
            except FileNotFoundError:
                existing = []
            lines = [*existing, line.replace("\n", " ")][-MAX_PROMPT_LINES:]
            self.prompts_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot write prompts log: %s", exc)

    def read(self, limit: int | None = None) -> list[DecisionEntry]:
        """Return logged decisions, oldest first; malformed lines are skipped."""
        try:
            lines = self.decisions_path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        entries: list[DecisionEntry] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                entries.append(DecisionEntry.model_validate_json(line))
            except ValueError:
                continue
        return entries[-limit:] if limit else entries
