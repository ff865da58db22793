"""Data models for agent transcripts and their classification."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Status(str, Enum):
    """What happened at the end of an agent turn."""

    TASK_COMPLETE = "task_complete"
    REVIEW_COMPLETE = "review_complete"
    QUESTION = "question"
    PLAN_READY = "plan_ready"
    SESSION_LIMIT_REACHED = "session_limit_reached"
    API_ERROR = "api_error"
    UNKNOWN = "unknown"


class ContentBlock(BaseModel):
    """One block of message content: text, tool use, tool result or other."""

    type: str = ""
    text: str = ""
    name: str = ""
    input: Any = None


class MessageBody(BaseModel):
    role: str = ""
    content: list[ContentBlock] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        """Accept plain string content and skip blocks that are not objects."""
        if value is None:
            return []
        if isinstance(value, str):
            return [{"type": "text", "text": value}] if value else []
        if isinstance(value, list):
            blocks: list[Any] = []
            for item in value:
                if isinstance(item, str):
                    blocks.append({"type": "text", "text": item})
                elif isinstance(item, dict):
                    blocks.append(item)
            return blocks
        return value


class TranscriptMessage(BaseModel):
    """One line of a JSON Lines transcript."""

    type: str = ""
    message: MessageBody = Field(default_factory=MessageBody)
    timestamp: str = ""

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def role(self) -> str:
        return self.message.role

    @property
    def is_user(self) -> bool:
        return self.type == "user" or self.role == "user"

    @property
    def is_assistant(self) -> bool:
        return self.type == "assistant" or self.role == "assistant"

    @property
    def is_user_prompt(self) -> bool:
        """True for messages the human typed.

        The host records tool results as user messages; those belong to the
        assistant's turn.
        """
        if not self.is_user:
            return False
        blocks = self.message.content
        return not blocks or any(b.type != "tool_result" for b in blocks)

    @property
    def tools(self) -> list[str]:
        return [b.name for b in self.message.content if b.type == "tool_use"]

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.message.content if b.type == "text")

    def tool_input(self, tool_name: str) -> Any:
        """Input of the first ``tool_use`` block for *tool_name*, if any."""
        for block in self.message.content:
            if block.type == "tool_use" and block.name == tool_name:
                return block.input
        return None
