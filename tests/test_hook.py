"""Tests for HookRunner: input parsing, PreToolUse decisions and notifications."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from permission_hook.config import HookConfig
from permission_hook.coordination import LeaseManager, SessionStore
from permission_hook.errors import CoordinationError, DeliveryError
from permission_hook.hook import HookEvent, HookOutcome, HookRunner, parse_input
from permission_hook.logs import DecisionLog
from permission_hook.policy import PolicyEngine
from permission_hook.transcript import Status, read_transcript

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=True)
    notifier.show = AsyncMock(return_value=True)
    return notifier


def _make_runner(
    tmp_path: Path,
    config: HookConfig | None = None,
    *,
    desktop: MagicMock | None = None,
    webhook: MagicMock | None = None,
    updates: MagicMock | None = None,
    engine: Any = None,
    leases: Any = None,
    sessions: Any = None,
) -> HookRunner:
    config = config or HookConfig()
    state = tmp_path / "state"
    return HookRunner(
        config,
        engine=engine or PolicyEngine(config.policy()),
        leases=leases or LeaseManager(state),
        sessions=sessions or SessionStore(state),
        decisions=DecisionLog(tmp_path / "home"),
        desktop=desktop,
        webhook=webhook,
        updates=updates,
    )


def _pre_tool_use(tool_name: str, tool_input: dict[str, Any], session_id: str = "s1") -> str:
    return json.dumps({
        "hook_event_name": "PreToolUse",
        "session_id": session_id,
        "tool_name": tool_name,
        "tool_input": tool_input,
    })


def _assistant(text: str = "", tools: tuple[str, ...] = ()) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    content.extend({"type": "tool_use", "name": name, "input": {}} for name in tools)
    return {"type": "assistant", "message": {"role": "assistant", "content": content}}


def _write_transcript(tmp_path: Path, *entries: dict[str, Any]) -> Path:
    path = tmp_path / "transcript.jsonl"
    lines = [{"type": "user", "message": {"role": "user", "content": "do the thing"}}, *entries]
    path.write_text("\n".join(json.dumps(e) for e in lines) + "\n", encoding="utf-8")
    return path


def _stop(transcript: Path, session_id: str = "s1", event: str = "Stop") -> str:
    return json.dumps({
        "hook_event_name": event,
        "session_id": session_id,
        "transcript_path": str(transcript),
        "cwd": "",
    })


def _notification(message: str = "", session_id: str = "s1") -> str:
    return json.dumps({"hook_event_name": "Notification", "session_id": session_id, "message": message})


def _decisions(tmp_path: Path) -> list[dict[str, Any]]:
    path = tmp_path / "home" / "decisions.log"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------


class TestParseInput:
    def test_valid(self) -> None:
        hook_input = parse_input('{"tool_name": "Read", "tool_input": {"file_path": "x"}}')
        assert hook_input is not None
        assert hook_input.event is HookEvent.PRE_TOOL_USE
        assert hook_input.resolved_tool_name == "Read"
        assert hook_input.resolved_tool_input == {"file_path": "x"}
        assert hook_input.session_id == "unknown"

    def test_byte_order_mark(self) -> None:
        hook_input = parse_input('\ufeff{"tool_name": "Read"}\n')
        assert hook_input is not None
        assert hook_input.resolved_tool_name == "Read"

    def test_legacy_field_names(self) -> None:
        hook_input = parse_input('{"tool": "Bash", "input": {"command": "ls"}}')
        assert hook_input is not None
        assert hook_input.resolved_tool_name == "Bash"
        assert hook_input.resolved_tool_input == {"command": "ls"}

    def test_non_object_tool_input(self) -> None:
        hook_input = parse_input('{"tool_name": "Bash", "tool_input": "ls"}')
        assert hook_input is not None
        assert hook_input.resolved_tool_input == {}

    def test_empty_session_id(self) -> None:
        hook_input = parse_input('{"session_id": ""}')
        assert hook_input is not None
        assert hook_input.session_id == "unknown"

    def test_unknown_event_is_pre_tool_use(self) -> None:
        hook_input = parse_input('{"hook_event_name": "SessionStart"}')
        assert hook_input is not None
        assert hook_input.event is HookEvent.PRE_TOOL_USE

    @pytest.mark.parametrize("field", ["hook_event_name", "tool_name", "tool", "cwd", "message"])
    def test_null_text_field(self, field: str) -> None:
        hook_input = parse_input(json.dumps({field: None}))
        assert hook_input is not None
        assert getattr(hook_input, field) == ""

    def test_null_session_and_transcript(self) -> None:
        hook_input = parse_input('{"session_id": null, "transcript_path": null}')
        assert hook_input is not None
        assert hook_input.session_id == "unknown"
        assert hook_input.transcript_path is None

    def test_null_tool_name_falls_back_to_tool(self) -> None:
        hook_input = parse_input('{"tool_name": null, "tool": "Bash", "tool_input": {"command": "ls"}}')
        assert hook_input is not None
        assert hook_input.resolved_tool_name == "Bash"

    def test_unusable(self) -> None:
        assert parse_input("") is None
        assert parse_input("   ") is None
        assert parse_input("{not json") is None
        assert parse_input("[1, 2]") is None
        assert parse_input('{"session_id": 5}') is None


# ---------------------------------------------------------------------------
# PreToolUse
# ---------------------------------------------------------------------------


class TestPreToolUse:
    async def test_allow_read(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = await runner.handle('{"tool_name":"Read","tool_input":{"file_path":"x.txt"}}')

        assert outcome.exit_code == 0
        response = json.loads(outcome.stdout)
        assert response["hookSpecificOutput"]["hookEventName"] == "PreToolUse"
        assert response["hookSpecificOutput"]["permissionDecision"] == "allow"
        assert response["hookSpecificOutput"]["permissionDecisionReason"]
        assert response["suppressOutput"] is True
        assert _decisions(tmp_path)[0]["decision"] == "allow"

    async def test_deny_rm_root(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = await runner.handle('{"tool_name":"Bash","tool_input":{"command":"rm -rf /"}}')

        assert outcome.exit_code == 2
        assert outcome.stdout == ""
        assert outcome.stderr.startswith("[permission-hook] DENY: Bash - ")
        entry = _decisions(tmp_path)[0]
        assert entry["decision"] == "deny"
        assert entry["details"] == "rm -rf /"

    async def test_quoted_pipe_does_not_split(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        command = 'grep -n "a\\|b" f.rs | head -5'
        outcome = await runner.handle(_pre_tool_use("Bash", {"command": command}))

        assert outcome.exit_code == 0
        assert json.loads(outcome.stdout)["hookSpecificOutput"]["permissionDecision"] == "allow"

    async def test_defer_prints_nothing(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = await runner.handle(_pre_tool_use("Bash", {"command": "make build"}))

        assert outcome == HookOutcome()
        entry = _decisions(tmp_path)[0]
        assert entry["decision"] == "prompt"
        assert entry["reason"] == "Prompting user for: Bash (make build)"
        prompts = (tmp_path / "home" / "recent_prompts.log").read_text(encoding="utf-8")
        assert "| Bash | make build" in prompts

    async def test_defer_interactive_tool_updates_state(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = await runner.handle(_pre_tool_use("AskUserQuestion", {}, session_id="abc"))

        assert outcome.exit_code == 0
        assert outcome.stdout == ""
        state = SessionStore(tmp_path / "state").load("abc")
        assert state is not None
        assert state.last_interactive_tool == "AskUserQuestion"
        assert _decisions(tmp_path)[0]["reason"] == "Prompting user for: AskUserQuestion (no details)"

    async def test_legacy_input(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = await runner.handle('{"tool":"Bash","input":{"command":"git status"}}')
        assert json.loads(outcome.stdout)["hookSpecificOutput"]["permissionDecision"] == "allow"

    async def test_null_fields_still_denied(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        payload = {
            "hook_event_name": "PreToolUse",
            "tool_name": None,
            "tool": "Bash",
            "tool_input": {"command": "rm -rf /"},
            "cwd": None,
            "message": None,
        }
        outcome = await runner.handle(json.dumps(payload))

        assert outcome.exit_code == 2
        assert outcome.stderr.startswith("[permission-hook] DENY: Bash - ")

    async def test_decision_log_disabled(self, tmp_path: Path) -> None:
        config = HookConfig.model_validate({"logging": {"enabled": False}})
        runner = _make_runner(tmp_path, config)
        await runner.handle('{"tool_name":"Read","tool_input":{}}')
        assert _decisions(tmp_path) == []


class TestFailureHandling:
    async def test_malformed_input(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        assert await runner.handle("not json at all") == HookOutcome()

    async def test_unexpected_error_exits_zero(self, tmp_path: Path, caplog) -> None:  # noqa: ANN001
        engine = MagicMock()
        engine.resolve = AsyncMock(side_effect=RuntimeError("boom"))
        runner = _make_runner(tmp_path, engine=engine)

        with caplog.at_level(logging.ERROR, logger="permission_hook.hook"):
            outcome = await runner.handle(_pre_tool_use("Bash", {"command": "ls"}))

        assert outcome == HookOutcome()
        assert "Unexpected error handling PreToolUse" in caplog.text

    def test_run_is_synchronous(self, tmp_path: Path) -> None:
        runner = _make_runner(tmp_path)
        outcome = runner.run('{"tool_name":"Glob","tool_input":{"pattern":"*.py"}}')
        assert json.loads(outcome.stdout)["hookSpecificOutput"]["permissionDecision"] == "allow"


# ---------------------------------------------------------------------------
# Stop / SubagentStop
# ---------------------------------------------------------------------------


class TestStop:
    async def test_task_complete_notifies(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        webhook = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop, webhook=webhook)
        transcript = _write_transcript(tmp_path, _assistant("Edited the file.", ("Edit",)), _assistant("All done."))

        outcome = await runner.handle(_stop(transcript, session_id="abcdef123456"))

        assert outcome == HookOutcome()
        status, summary, session = desktop.notify.call_args.args
        assert status is Status.TASK_COMPLETE
        assert summary == "All done."
        assert session == "Session abcdef12"
        webhook.notify.assert_awaited_once()

        state = SessionStore(tmp_path / "state").load("abcdef123456")
        assert state is not None
        assert state.last_task_complete_time > 0
        assert state.last_notification_message == "All done."

        entry = _decisions(tmp_path)[-1]
        assert (entry["tool"], entry["decision"], entry["reason"]) == ("Stop", "notify", "task_complete")
        assert entry["details"] == "abcdef123456"

    async def test_duplicate_stop_is_skipped(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Write",)))

        with patch("permission_hook.hook.read_transcript", wraps=read_transcript) as mock_read:
            await runner.handle(_stop(transcript))
            await runner.handle(_stop(transcript))

        mock_read.assert_called_once()
        desktop.notify.assert_awaited_once()

    async def test_review_complete(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)
        transcript = _write_transcript(
            tmp_path,
            _assistant(tools=("Read",)),
            _assistant(tools=("Read",)),
            _assistant("x" * 250, ("Grep",)),
        )

        await runner.handle(_stop(transcript))

        assert desktop.notify.call_args.args[0] is Status.REVIEW_COMPLETE

    async def test_unknown_status_is_silent(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)
        transcript = _write_transcript(tmp_path)

        await runner.handle(_stop(transcript))

        desktop.notify.assert_not_awaited()
        assert not LeaseManager(tmp_path / "state").probe("s1", "Stop")

    async def test_missing_transcript(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)

        await runner.handle(_stop(tmp_path / "missing.jsonl"))

        desktop.notify.assert_not_awaited()

    async def test_duplicate_message_not_resent(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        sessions = SessionStore(tmp_path / "state")
        sessions.update_last_notification("s1", Status.TASK_COMPLETE, "all   DONE!!")
        runner = _make_runner(tmp_path, desktop=desktop, sessions=sessions)
        transcript = _write_transcript(tmp_path, _assistant("All done!", ("Bash",)))

        await runner.handle(_stop(transcript))

        desktop.notify.assert_not_awaited()
        assert _decisions(tmp_path)[-1]["decision"] == "notify"

    async def test_delivery_error_is_a_warning(self, tmp_path: Path, caplog) -> None:  # noqa: ANN001
        desktop = _make_notifier()
        webhook = _make_notifier()
        webhook.notify = AsyncMock(side_effect=DeliveryError("boom", attempts=3))
        runner = _make_runner(tmp_path, desktop=desktop, webhook=webhook)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        with caplog.at_level(logging.WARNING, logger="permission_hook.hook"):
            outcome = await runner.handle(_stop(transcript))

        assert outcome == HookOutcome()
        desktop.notify.assert_awaited_once()
        assert "Webhook notification dropped" in caplog.text

    async def test_coordination_errors_do_not_block(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        leases = MagicMock()
        leases.probe.side_effect = CoordinationError("disk full")
        leases.acquire.side_effect = CoordinationError("disk full")
        leases.acquire_content_lock.side_effect = CoordinationError("disk full")
        leases.cleanup.side_effect = CoordinationError("disk full")
        runner = _make_runner(tmp_path, desktop=desktop, leases=leases)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        await runner.handle(_stop(transcript))

        desktop.notify.assert_awaited_once()

    async def test_subagent_stop_disabled_by_default(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        with patch("permission_hook.hook.read_transcript") as mock_read:
            await runner.handle(_stop(transcript, event="SubagentStop"))

        mock_read.assert_not_called()
        desktop.notify.assert_not_awaited()

    async def test_subagent_stop_enabled(self, tmp_path: Path) -> None:
        config = HookConfig.model_validate({"notifications": {"notify_on_subagent_stop": True}})
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, config, desktop=desktop)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        await runner.handle(_stop(transcript, event="SubagentStop"))

        desktop.notify.assert_awaited_once()
        assert LeaseManager(tmp_path / "state").probe("s1", "SubagentStop")

    async def test_update_notice(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        updates = MagicMock()
        updates.check = AsyncMock(return_value=("0.1.0", "0.2.0"))
        runner = _make_runner(tmp_path, desktop=desktop, updates=updates)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        await runner.handle(_stop(transcript))

        title, body = desktop.show.call_args.args
        assert "Update Available" in title
        assert "0.2.0" in body
        updates.mark_notified.assert_called_once()

    async def test_no_update(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        updates = MagicMock()
        updates.check = AsyncMock(return_value=None)
        runner = _make_runner(tmp_path, desktop=desktop, updates=updates)
        transcript = _write_transcript(tmp_path, _assistant("Done.", ("Edit",)))

        await runner.handle(_stop(transcript))

        desktop.show.assert_not_awaited()
        updates.mark_notified.assert_not_called()


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------


class TestNotification:
    async def test_question_sent(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)

        await runner.handle(_notification("Claude needs your permission to use Bash"))

        status, summary, _ = desktop.notify.call_args.args
        assert status is Status.QUESTION
        assert summary == "Claude needs your permission to use Bash"
        state = SessionStore(tmp_path / "state").load("s1")
        assert state is not None
        assert state.last_notification_status == "question"

    async def test_default_message(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)

        await runner.handle(_notification())

        assert desktop.notify.call_args.args[1] == "Permission prompt"

    async def test_null_message_uses_default(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        runner = _make_runner(tmp_path, desktop=desktop)

        await runner.handle('{"hook_event_name": "Notification", "session_id": "s1", "message": null}')

        assert desktop.notify.call_args.args[1] == "Permission prompt"

    async def test_suppressed_after_task_complete(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        sessions = SessionStore(tmp_path / "state")
        sessions.update_task_complete("s1")
        runner = _make_runner(tmp_path, desktop=desktop, sessions=sessions)

        await runner.handle(_notification("Waiting for input"))

        desktop.notify.assert_not_awaited()

    async def test_suppressed_after_any_notification(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        sessions = SessionStore(tmp_path / "state")
        sessions.update_last_notification("s1", Status.PLAN_READY, "Plan")
        runner = _make_runner(tmp_path, desktop=desktop, sessions=sessions)

        await runner.handle(_notification("Waiting for input"))

        desktop.notify.assert_not_awaited()

    async def test_cooldown_disabled(self, tmp_path: Path) -> None:
        config = HookConfig.model_validate({
            "notifications": {
                "suppress_question_after_task_complete_seconds": 0,
                "suppress_question_after_any_notification_seconds": 0,
            }
        })
        desktop = _make_notifier()
        sessions = SessionStore(tmp_path / "state")
        sessions.update_task_complete("s1")
        runner = _make_runner(tmp_path, config, desktop=desktop, sessions=sessions)

        await runner.handle(_notification("Waiting for input"))

        desktop.notify.assert_awaited_once()

    async def test_blocked_by_content_lock(self, tmp_path: Path) -> None:
        desktop = _make_notifier()
        LeaseManager(tmp_path / "state").acquire_content_lock("s1")
        runner = _make_runner(tmp_path, desktop=desktop)

        await runner.handle(_notification("Waiting for input"))

        desktop.notify.assert_not_awaited()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestFromConfig:
    def test_defaults_have_no_channels(self, tmp_path: Path) -> None:
        runner = HookRunner.from_config(HookConfig(), home=tmp_path, coordination_dir=tmp_path)
        assert runner._desktop is None
        assert runner._webhook is None
        assert runner._updates is not None

    def test_enabled_channels(self, tmp_path: Path) -> None:
        config = HookConfig.model_validate({
            "notifications": {
                "desktop": {"enabled": True},
                "webhook": {"enabled": True, "url": "https://example.test/hook"},
            }
        })
        runner = HookRunner.from_config(config, home=tmp_path, coordination_dir=tmp_path)
        assert runner._desktop is not None
        assert runner._webhook is not None
