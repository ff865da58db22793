"""Transcript subsystem: reading agent transcripts and classifying turns."""

from permission_hook.transcript.analyzer import analyze, analyze_transcript, status_for_pre_tool_use
from permission_hook.transcript.models import ContentBlock, Status, TranscriptMessage
from permission_hook.transcript.reader import read_transcript, recent_assistant_messages
from permission_hook.transcript.summary import generate_summary, session_name, status_title

__all__ = [
    "ContentBlock",
    "Status",
    "TranscriptMessage",
    "analyze",
    "analyze_transcript",
    "generate_summary",
    "read_transcript",
    "recent_assistant_messages",
    "session_name",
    "status_for_pre_tool_use",
    "status_title",
]
