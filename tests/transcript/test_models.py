"""Tests for transcript data models."""

from __future__ import annotations

from permission_hook.transcript.models import Status, TranscriptMessage


class TestTranscriptMessage:
    def test_string_content_coerced(self) -> None:
        msg = TranscriptMessage.model_validate({"type": "user", "message": {"role": "user", "content": "hi"}})
        assert msg.text == "hi"
        assert msg.is_user_prompt

    def test_mixed_content_list(self) -> None:
        msg = TranscriptMessage.model_validate(
            {
                "type": "assistant",
                "message": {
                    "role": "assistant",
                    "content": [
                        "plain",
                        {"type": "text", "text": "more"},
                        {"type": "tool_use", "name": "Edit", "input": {"file_path": "a.py"}},
                        42,
                    ],
                },
            }
        )
        assert msg.is_assistant
        assert msg.text == "plain\nmore"
        assert msg.tools == ["Edit"]
        assert msg.tool_input("Edit") == {"file_path": "a.py"}
        assert msg.tool_input("Write") is None

    def test_tool_result_is_not_a_prompt(self) -> None:
        msg = TranscriptMessage.model_validate(
            {"type": "user", "message": {"role": "user", "content": [{"type": "tool_result", "content": "ok"}]}}
        )
        assert msg.is_user
        assert not msg.is_user_prompt

    def test_role_only_detection(self) -> None:
        msg = TranscriptMessage.model_validate({"message": {"role": "assistant", "content": None}})
        assert msg.is_assistant
        assert msg.text == ""

    def test_non_object_message(self) -> None:
        msg = TranscriptMessage.model_validate({"type": "summary", "message": "compacted"})
        assert not msg.is_user
        assert not msg.is_assistant
        assert msg.tools == []


class TestStatus:
    def test_values(self) -> None:
        assert Status("plan_ready") is Status.PLAN_READY
        assert len(Status) == 7
