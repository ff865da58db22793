"""Per-session state used for notification cooldowns and message dedup."""

from __future__ import annotations

import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ValidationError

from permission_hook.coordination.lease import safe_key
from permission_hook.errors import CoordinationError
from permission_hook.transcript.models import Status

logger = logging.getLogger(__name__)

STATE_PREFIX = "permission-hook-state-"
STATE_SUFFIX = ".json"

_REPEATED_PUNCTUATION = re.compile(r"([^\w\s])\1+")
_WHITESPACE = re.compile(r"\s+")


class SessionState(BaseModel):
    """Durable record for one session; timestamps are Unix seconds, 0 = never."""

    session_id: str
    last_interactive_tool: str = ""
    last_timestamp: int = 0
    last_task_complete_time: int = 0
    last_notification_time: int = 0
    last_notification_status: str = ""
    last_notification_message: str = ""
    cwd: str = ""


def normalize_message(message: str) -> str:
    """Lower-case, trim and collapse whitespace and repeated punctuation."""
    text = _WHITESPACE.sub(" ", message.lower().strip())
    return _REPEATED_PUNCTUATION.sub(r"\1", text)


class SessionStore:
    """JSON files under *directory*, one per session, overwritten whole."""

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time) -> None:
        self._directory = Path(directory)
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def state_path(self, session_id: str) -> Path:
        return self._directory / f"{STATE_PREFIX}{safe_key(session_id)}{STATE_SUFFIX}"

    # -- persistence ---------------------------------------------------------

    def load(self, session_id: str) -> SessionState | None:
        """Return the stored state, ``None`` if absent.

        Raises :class:`CoordinationError` if the file is unreadable or corrupt.
        """
        path = self.state_path(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CoordinationError(f"cannot read {path.name}: {exc}") from exc
        try:
            return SessionState.model_validate_json(raw)
        except ValidationError as exc:
            raise CoordinationError(f"corrupt state file {path.name}") from exc

    def save(self, state: SessionState) -> None:
        """Atomically replace the stored state for ``state.session_id``."""
        path = self.state_path(state.session_id)
        tmp_name = ""
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._directory,
                prefix=f".{path.name}.",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(state.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise CoordinationError(f"cannot write {path.name}: {exc}") from exc

    def delete(self, session_id: str) -> None:
        path = self.state_path(session_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise CoordinationError(f"cannot delete {path.name}: {exc}") from exc

    def _load_or_new(self, session_id: str) -> SessionState:
        return self.load(session_id) or SessionState(session_id=session_id)

    # -- updates -------------------------------------------------------------

    def update_task_complete(self, session_id: str) -> None:
        state = self._load_or_new(session_id)
        state.last_task_complete_time = self._now()
        self.save(state)

    def update_interactive_tool(self, session_id: str, tool: str, cwd: str = "") -> None:
        state = self._load_or_new(session_id)
        state.last_interactive_tool = tool
        state.last_timestamp = self._now()
        state.cwd = cwd
        self.save(state)

    def update_last_notification(self, session_id: str, status: Status, message: str) -> None:
        state = self._load_or_new(session_id)
        state.last_notification_time = self._now()
        state.last_notification_status = status.value
        state.last_notification_message = message
        self.save(state)

    def update_state(self, session_id: str, status: Status, tool: str = "", cwd: str = "") -> None:
        """Record the side effects of *status* for the session."""
        if status in (Status.TASK_COMPLETE, Status.REVIEW_COMPLETE):
            self.update_task_complete(session_id)
        elif status in (Status.PLAN_READY, Status.QUESTION) and tool:
            self.update_interactive_tool(session_id, tool, cwd)

    # -- predicates ----------------------------------------------------------

    def _within(self, timestamp: int, window: float) -> bool:
        return timestamp != 0 and self._now() - timestamp < window

    def should_suppress_question_after_task_complete(self, session_id: str, window: float) -> bool:
        if window <= 0:
            return False
        state = self.load(session_id)
        return state is not None and self._within(state.last_task_complete_time, window)

    def should_suppress_question_after_any_notification(self, session_id: str, window: float) -> bool:
        if window <= 0:
            return False
        state = self.load(session_id)
        return state is not None and self._within(state.last_notification_time, window)

    def is_duplicate_message(self, session_id: str, message: str, window: float) -> bool:
        """True if *message* repeats the last notification within *window* seconds."""
        if window <= 0:
            return False
        state = self.load(session_id)
        if state is None or not state.last_notification_message:
            return False
        if not self._within(state.last_notification_time, window):
            return False
        return normalize_message(message) == normalize_message(state.last_notification_message)

    # -- sweeping ------------------------------------------------------------

    def cleanup(self, max_age: float) -> int:
        """Delete state files not modified for *max_age* seconds."""
        now = self._clock()
        removed = 0
        for path in self._state_files():
            try:
                if now - path.stat().st_mtime > max_age:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise CoordinationError(f"cannot remove {path.name}: {exc}") from exc
        return removed

    def cleanup_for_session(self, session_id: str) -> int:
        path = self.state_path(session_id)
        if not path.exists():
            return 0
        self.delete(session_id)
        return 1

    def _state_files(self) -> list[Path]:
        try:
            return [
                p
                for p in self._directory.iterdir()
                if p.name.startswith(STATE_PREFIX) and p.name.endswith(STATE_SUFFIX)
            ]
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise CoordinationError(f"cannot list {self._directory}: {exc}") from exc
