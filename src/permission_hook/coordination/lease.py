"""File-backed leases for cross-invocation deduplication.

Every hook invocation is a fresh process, so the only way two invocations
for the same session can agree on who sends a notification is a file that
one of them creates first.  Creation uses ``open(path, "x")``, which fails
atomically when the file already exists.  Leases are never waited on: a
loser treats the event as a duplicate.  Leases expire by age so a crashed
invocation cannot block a session forever.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Callable

from permission_hook.errors import CoordinationError

logger = logging.getLogger(__name__)

LEASE_PREFIX = "permission-hook-lease-"
CONTENT_LOCK_PREFIX = "permission-hook-content-"
LEASE_SUFFIX = ".lock"

EVENT_LEASE_TTL = 2.0
CONTENT_LOCK_TTL = 5.0

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def safe_key(value: str) -> str:
    """Make *value* usable inside a file name."""
    return _UNSAFE_CHARS.sub("_", value) or "unknown"


class LeaseManager:
    """Create, probe and sweep lease files under *directory*."""

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time) -> None:
        self._directory = Path(directory)
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._directory

    def lease_path(self, session_id: str, event_kind: str) -> Path:
        return self._directory / f"{LEASE_PREFIX}{safe_key(session_id)}@{safe_key(event_kind)}{LEASE_SUFFIX}"

    def content_lock_path(self, session_id: str) -> Path:
        return self._directory / f"{CONTENT_LOCK_PREFIX}{safe_key(session_id)}{LEASE_SUFFIX}"

    # -- event leases --------------------------------------------------------

    def probe(self, session_id: str, event_kind: str) -> bool:
        """Return ``True`` if a fresh lease for the key already exists."""
        return self._is_fresh(self.lease_path(session_id, event_kind), EVENT_LEASE_TTL)

    def acquire(self, session_id: str, event_kind: str) -> bool:
        """Try to take the lease; ``False`` means another invocation holds it."""
        return self._acquire(self.lease_path(session_id, event_kind), EVENT_LEASE_TTL)

    def release(self, session_id: str, event_kind: str) -> None:
        self._remove(self.lease_path(session_id, event_kind))

    # -- content lock --------------------------------------------------------

    def acquire_content_lock(self, session_id: str) -> bool:
        """Like :meth:`acquire`, but shared by every event kind of a session."""
        return self._acquire(self.content_lock_path(session_id), CONTENT_LOCK_TTL)

    def release_content_lock(self, session_id: str) -> None:
        self._remove(self.content_lock_path(session_id))

    # -- sweeping ------------------------------------------------------------

    def cleanup(self, max_age: float) -> int:
        """Delete lease files older than *max_age* seconds; return the count."""
        now = self._clock()
        removed = 0
        for path in self._lease_files():
            mtime = self._mtime(path)
            if mtime is not None and now - mtime > max_age:
                removed += self._remove(path)
        return removed

    def cleanup_for_session(self, session_id: str) -> int:
        """Delete every lease file belonging to *session_id*, whatever its age."""
        key = safe_key(session_id)
        removed = 0
        for path in self._lease_files():
            name = path.name
            if (
                name.startswith(f"{LEASE_PREFIX}{key}@")
                or name == f"{CONTENT_LOCK_PREFIX}{key}{LEASE_SUFFIX}"
            ):
                removed += self._remove(path)
        return removed

    # -- internals -----------------------------------------------------------

    def _acquire(self, path: Path, ttl: float) -> bool:
        mtime = self._mtime(path)
        if mtime is not None:
            if self._clock() - mtime < ttl:
                return False
            self._reclaim_stale(path, ttl)

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CoordinationError(f"cannot create {self._directory}: {exc}") from exc

        try:
            with open(path, "x", encoding="utf-8") as fh:
                fh.write(str(int(self._clock())))
        except FileExistsError:
            return False
        except OSError as exc:
            raise CoordinationError(f"cannot create {path.name}: {exc}") from exc
        logger.debug("Acquired %s", path.name)
        return True

    def _reclaim_stale(self, path: Path, ttl: float) -> None:
        # Another invocation may have replaced the stale file in the meantime.
        mtime = self._mtime(path)
        if mtime is not None and self._clock() - mtime >= ttl:
            self._remove(path)

    def _is_fresh(self, path: Path, ttl: float) -> bool:
        mtime = self._mtime(path)
        return mtime is not None and self._clock() - mtime < ttl

    def _mtime(self, path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CoordinationError(f"cannot stat {path.name}: {exc}") from exc

    def _remove(self, path: Path) -> int:
        try:
            path.unlink()
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise CoordinationError(f"cannot remove {path.name}: {exc}") from exc
        return 1

    def _lease_files(self) -> list[Path]:
        try:
            entries = list(os.scandir(self._directory))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise CoordinationError(f"cannot list {self._directory}: {exc}") from exc
        return [
            Path(entry.path)
            for entry in entries
            if entry.name.endswith(LEASE_SUFFIX)
            and entry.name.startswith((LEASE_PREFIX, CONTENT_LOCK_PREFIX))
        ]
