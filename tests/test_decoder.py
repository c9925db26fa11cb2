"""Tests for decoding raw ACP payloads into events."""

from __future__ import annotations

import pytest

from acpsession.engine.decoder import (
    clean_tool_name,
    content_text,
    decode_notification,
    decode_permission_request,
    normalize_kind,
    normalize_status,
)
from acpsession.engine.events import (
    AgentError,
    CommandsUpdated,
    MessageChunk,
    MessageEnd,
    ModeUpdated,
    PlanUpdated,
    ThoughtChunk,
    ToolCallStarted,
    ToolCallUpdated,
    UserMessageChunk,
)
from acpsession.errors import DecodeError
from acpsession.session.entries import PlanPriority, PlanStatus, ToolCallStatus, ToolKind


def notification(update: dict, session_id: str = "s1") -> dict:
    return {"sessionId": session_id, "update": update}


class TestNormalization:
    """Loosely typed wire values."""

    def test_clean_tool_name(self):
        assert clean_tool_name("mcp__acp__Read") == "Read"
        assert clean_tool_name("Bash") == "Bash"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("pending", ToolCallStatus.PENDING),
            ("in_progress", ToolCallStatus.IN_PROGRESS),
            ("inprogress", ToolCallStatus.IN_PROGRESS),
            ("In-Progress", ToolCallStatus.IN_PROGRESS),
            ("completed", ToolCallStatus.COMPLETED),
            ("failed", ToolCallStatus.FAILED),
            ("weird", ToolCallStatus.PENDING),
        ],
    )
    def test_normalize_status(self, raw, expected):
        assert normalize_status(raw) is expected

    def test_missing_status_is_none(self):
        assert normalize_status(None) is None

    def test_normalize_kind(self):
        assert normalize_kind("execute") is ToolKind.EXECUTE
        assert normalize_kind("teleport") is ToolKind.OTHER
        assert normalize_kind(None) is None

    def test_content_text(self):
        blocks = [
            {"type": "content", "content": {"type": "text", "text": "a"}},
            {"type": "text", "text": "b"},
            {"type": "diff", "path": "x", "newText": "y"},
        ]
        assert content_text(blocks) == "a\nb"


class TestDecodeNotification:
    """session/update params -> typed events."""

    def test_message_chunk(self):
        event = decode_notification(
            notification({"sessionUpdate": "agent_message_chunk", "content": {"type": "text", "text": "Hi"}})
        )
        assert event == MessageChunk("s1", "Hi")

    def test_bare_string_content(self):
        event = decode_notification(
            notification({"sessionUpdate": "agent_thought_chunk", "content": "hmm"})
        )
        assert event == ThoughtChunk("s1", "hmm")

    def test_non_text_content_yields_empty(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "agent_message_chunk",
                    "content": {"type": "image", "data": "...", "mimeType": "image/png"},
                }
            )
        )
        assert event == MessageChunk("s1", "")

    def test_user_chunk_and_end(self):
        assert isinstance(
            decode_notification(
                notification({"sessionUpdate": "user_message_chunk", "content": {"type": "text", "text": "q"}})
            ),
            UserMessageChunk,
        )
        assert decode_notification(notification({"sessionUpdate": "agent_message_end"})) == MessageEnd("s1")

    def test_tool_call(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "tool_call",
                    "toolCallId": "t1",
                    "title": "ls -la",
                    "kind": "execute",
                    "status": "pending",
                    "rawInput": {"command": "ls -la"},
                    "_meta": {"claudeCode": {"toolName": "mcp__acp__Bash"}},
                }
            )
        )
        assert isinstance(event, ToolCallStarted)
        assert event.call_id == "t1"
        assert event.tool_name == "Bash"
        assert event.tool_kind is ToolKind.EXECUTE
        assert event.status is ToolCallStatus.PENDING
        assert event.raw_input == {"command": "ls -la"}

    def test_tool_call_leaves_unsent_fields_empty(self):
        event = decode_notification(notification({"sessionUpdate": "tool_call", "toolCallId": "t1"}))
        assert isinstance(event, ToolCallStarted)
        assert event.tool_name is None
        assert event.title is None
        assert event.tool_kind is None
        assert event.status is None

    def test_tool_call_unknown_kind(self):
        event = decode_notification(
            notification({"sessionUpdate": "tool_call", "toolCallId": "t1", "kind": "teleport"})
        )
        assert event.tool_kind is ToolKind.OTHER

    def test_tool_call_update_partial(self):
        event = decode_notification(
            notification({"sessionUpdate": "tool_call_update", "toolCallId": "t1", "status": "completed"})
        )
        assert isinstance(event, ToolCallUpdated)
        assert event.status is ToolCallStatus.COMPLETED
        assert event.title is None
        assert event.tool_kind is None
        assert event.output is None

    def test_tool_output_prefers_raw_output(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "tool_call_update",
                    "toolCallId": "t1",
                    "rawOutput": "ok",
                    "content": [{"type": "content", "content": {"type": "text", "text": "other"}}],
                }
            )
        )
        assert event.output == "ok"

    def test_tool_output_from_content(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "tool_call_update",
                    "toolCallId": "t1",
                    "content": [{"type": "content", "content": {"type": "text", "text": "out"}}],
                }
            )
        )
        assert event.output == "out"

    def test_tool_call_without_id(self):
        with pytest.raises(DecodeError):
            decode_notification(notification({"sessionUpdate": "tool_call", "title": "x"}))

    def test_plan(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "plan",
                    "entries": [
                        {"content": "Step 1", "priority": "high", "status": "completed"},
                        {"content": "Step 2"},
                        {"content": "Step 3", "priority": "urgent", "status": "???"},
                    ],
                }
            )
        )
        assert isinstance(event, PlanUpdated)
        assert [i.priority for i in event.items] == [
            PlanPriority.HIGH,
            PlanPriority.MEDIUM,
            PlanPriority.MEDIUM,
        ]
        assert event.items[0].status is PlanStatus.COMPLETED
        assert event.items[2].status is PlanStatus.PENDING

    def test_nested_plan_shape(self):
        event = decode_notification(
            notification({"sessionUpdate": "plan", "plan": {"entries": [{"content": "x"}]}})
        )
        assert event.items[0].content == "x"

    def test_mode_update(self):
        event = decode_notification(
            notification({"sessionUpdate": "current_mode_update", "currentModeId": "plan"})
        )
        assert event == ModeUpdated("s1", "plan")

    def test_mode_update_without_id(self):
        with pytest.raises(DecodeError):
            decode_notification(notification({"sessionUpdate": "current_mode_update"}))

    def test_commands(self):
        event = decode_notification(
            notification(
                {
                    "sessionUpdate": "available_commands_update",
                    "availableCommands": [
                        {"name": "review", "description": "Review code", "input": {"hint": "path"}},
                        {"name": "init"},
                    ],
                }
            )
        )
        assert isinstance(event, CommandsUpdated)
        assert [c.name for c in event.commands] == ["review", "init"]
        assert event.commands[0].hint == "path"

    def test_error(self):
        event = decode_notification(
            notification({"sessionUpdate": "error", "error": {"message": "rate limited"}})
        )
        assert event == AgentError("s1", "rate limited")

    def test_unknown_discriminant(self):
        with pytest.raises(DecodeError, match="Unknown session update"):
            decode_notification(notification({"sessionUpdate": "telepathy"}))

    def test_missing_session_id(self):
        with pytest.raises(DecodeError):
            decode_notification({"update": {"sessionUpdate": "agent_message_chunk", "content": "x"}})

    def test_empty_session_id(self):
        with pytest.raises(DecodeError):
            decode_notification(notification({"sessionUpdate": "agent_message_end"}, session_id=""))

    def test_not_an_object(self):
        with pytest.raises(DecodeError):
            decode_notification(["not", "a", "dict"])


class TestDecodePermissionRequest:
    """session/request_permission params -> PermissionRequested."""

    def test_decode(self):
        event = decode_permission_request(
            {
                "sessionId": "s1",
                "toolCall": {
                    "toolCallId": "t1",
                    "title": "Write file.txt",
                    "content": [{"type": "content", "content": {"type": "text", "text": "Write 3 lines"}}],
                    "_meta": {"claudeCode": {"toolName": "mcp__acp__Write"}},
                },
                "options": [
                    {"optionId": "allow", "name": "Allow", "kind": "allow_once"},
                    {"optionId": "reject", "name": "Reject", "kind": "reject_once"},
                ],
            },
            "r1",
        )
        assert event.request_id == "r1"
        assert event.tool_name == "Write"
        assert event.description == "Write 3 lines"
        assert event.tool_call_id == "t1"
        assert [o.option_id for o in event.options] == ["allow", "reject"]
        assert event.options[0].label == "Allow"

    def test_title_used_when_no_meta(self):
        event = decode_permission_request(
            {"sessionId": "s1", "toolCall": {"toolCallId": "t1", "title": "Run tests"}, "options": []},
            "r1",
        )
        assert event.tool_name == "Run tests"
        assert event.description == "Run tests"

    def test_invalid(self):
        with pytest.raises(DecodeError):
            decode_permission_request({"sessionId": "s1"}, "r1")
