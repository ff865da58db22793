"""Coordination subsystem: file-backed leases and per-session state."""

from permission_hook.coordination.lease import CONTENT_LOCK_TTL, EVENT_LEASE_TTL, LeaseManager
from permission_hook.coordination.state import SessionState, SessionStore, normalize_message

__all__ = [
    "CONTENT_LOCK_TTL",
    "EVENT_LEASE_TTL",
    "LeaseManager",
    "SessionState",
    "SessionStore",
    "normalize_message",
]
