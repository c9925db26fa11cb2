"""End-to-end tests: raw session/update params through the event processor."""

from __future__ import annotations

import logging

from acpsession.engine.events import PermissionExpired
from acpsession.session.entries import (
    MessageEntry,
    ModeChangeEntry,
    PermissionRequestEntry,
    PlanEntry,
    Role,
    ThoughtEntry,
    ToolCallEntry,
    ToolCallStatus,
)
from acpsession.session.registry import SessionStatus

SID = "sess-1"


def update(kind: str, /, **fields) -> dict:
    return {"sessionId": SID, "update": {"sessionUpdate": kind, **fields}}


def text(kind: str, value: str) -> dict:
    return update(kind, content={"type": "text", "text": value})


class TestScenarios:
    """Full notification sequences."""

    def test_tool_call_lifecycle(self, processor, registry, session_id):
        processor.ingest_notification(update("tool_call", toolCallId="1", status="pending"))
        processor.ingest_notification(update("tool_call_update", toolCallId="1", status="in_progress"))
        processor.ingest_notification(
            update("tool_call_update", toolCallId="1", status="completed", rawOutput="ok")
        )

        entries = registry.get_entries(session_id)
        assert len(entries) == 1
        assert isinstance(entries[0], ToolCallEntry)
        assert entries[0].status is ToolCallStatus.COMPLETED
        assert entries[0].output == "ok"

    def test_repeated_tool_call_keeps_progress(self, processor, registry, session_id):
        processor.ingest_notification(
            update(
                "tool_call",
                toolCallId="t1",
                title="cat x",
                _meta={"claudeCode": {"toolName": "mcp__acp__Bash"}},
            )
        )
        processor.ingest_notification(update("tool_call_update", toolCallId="t1", status="in_progress"))
        processor.ingest_notification(update("tool_call", toolCallId="t1"))

        entries = registry.get_entries(session_id)
        assert len(entries) == 1
        assert entries[0].status is ToolCallStatus.IN_PROGRESS
        assert entries[0].tool_name == "Bash"
        assert entries[0].title == "cat x"

    def test_tool_name_from_call_id(self, processor, registry, session_id):
        processor.ingest_notification(update("tool_call", toolCallId="t1"))
        entry = registry.get_entries(session_id)[0]
        assert entry.tool_name == "t1"
        assert entry.title == "t1"

    def test_streaming_message(self, processor, registry, session_id):
        for fragment in ["Hel", "Hello", "Hello", "Hello wor"]:
            processor.ingest_notification(text("agent_message_chunk", fragment))
        entries = registry.get_entries(session_id)
        assert len(entries) == 1
        assert entries[0].text == "Hello wor"

    def test_interleaved_turn(self, processor, registry, session_id):
        processor.ingest_notification(text("agent_thought_chunk", "Let me look"))
        processor.ingest_notification(text("agent_message_chunk", "Reading the file."))
        processor.ingest_notification(
            update(
                "tool_call",
                toolCallId="t1",
                title="Read main.py",
                kind="read",
                _meta={"claudeCode": {"toolName": "mcp__acp__Read"}},
            )
        )
        processor.ingest_notification(
            update("plan", entries=[{"content": "Fix bug", "priority": "high", "status": "in_progress"}])
        )
        processor.ingest_notification(update("current_mode_update", currentModeId="plan"))
        processor.ingest_notification(update("tool_call_update", toolCallId="t1", status="completed"))
        processor.ingest_notification(text("agent_message_chunk", "Done."))

        entries = registry.get_entries(session_id)
        assert [type(e) for e in entries] == [
            ThoughtEntry,
            MessageEntry,
            ToolCallEntry,
            PlanEntry,
            ModeChangeEntry,
            MessageEntry,
        ]
        assert entries[2].tool_name == "Read"
        assert entries[2].status is ToolCallStatus.COMPLETED
        assert entries[5].text == "Done."
        assert [e.seq for e in entries] == [1, 2, 3, 4, 5, 6]

    def test_permission_round(self, processor, registry, session_id):
        processor.ingest_permission_request(
            {
                "sessionId": SID,
                "toolCall": {"toolCallId": "t1", "title": "Edit file"},
                "options": [{"optionId": "allow", "name": "Allow", "kind": "allow_once"}],
            },
            "r1",
        )
        pending = registry.get_pending_permission(session_id)
        assert isinstance(pending, PermissionRequestEntry)
        assert pending.tool_name == "Edit file"

        processor.ingest(PermissionExpired(SID, "r1"))
        assert registry.get_pending_permission(session_id) is None

    def test_message_end_seals_stream(self, processor, registry, session_id):
        processor.ingest_notification(text("agent_message_chunk", "one"))
        processor.ingest_notification(update("agent_message_end"))
        processor.ingest_notification(text("agent_message_chunk", "two"))
        assert [e.text for e in registry.get_entries(session_id)] == ["one", "two"]

    def test_user_replay_then_answer(self, processor, registry, session_id):
        processor.ingest_notification(text("user_message_chunk", "hi"))
        processor.ingest_notification(text("agent_message_chunk", "hello"))
        entries = registry.get_entries(session_id)
        assert [e.role for e in entries] == [Role.USER, Role.ASSISTANT]

    def test_commands_create_no_entry(self, processor, registry, session_id):
        processor.ingest_notification(
            update("available_commands_update", availableCommands=[{"name": "init"}])
        )
        assert registry.get_entries(session_id) == []
        assert registry.get_capabilities(session_id).available_commands[0].name == "init"

    def test_agent_error_sets_status(self, processor, registry, session_id):
        processor.ingest_notification(update("error", error={"message": "overloaded"}))
        info = registry.get_session(session_id)
        assert info.status is SessionStatus.ERROR
        assert info.last_error == "overloaded"


class TestRecoverableFailures:
    """Bad input is logged and dropped, never raised."""

    def test_unknown_update_dropped(self, processor, registry, session_id, caplog):
        with caplog.at_level(logging.WARNING, logger="acpsession"):
            assert processor.ingest_notification(update("hologram")) is None
        assert registry.get_entries(session_id) == []
        assert "Unknown session update" in caplog.text

    def test_unroutable_dropped(self, processor):
        assert processor.ingest_notification({"update": {"sessionUpdate": "agent_message_end"}}) is None

    def test_unknown_session_dropped(self, processor, registry):
        params = {"sessionId": "elsewhere", "update": {"sessionUpdate": "agent_message_chunk", "content": "x"}}
        assert processor.ingest_notification(params) is None
        assert not registry.has_session("elsewhere")

    def test_update_for_unknown_tool_call_dropped(self, processor, registry, session_id):
        result = processor.ingest_notification(
            update("tool_call_update", toolCallId="ghost", status="completed")
        )
        assert result is None
        assert registry.get_entries(session_id) == []

    def test_processing_continues_after_error(self, processor, registry, session_id):
        processor.ingest_notification(update("hologram"))
        processor.ingest_notification(text("agent_message_chunk", "still here"))
        assert registry.get_entries(session_id)[0].text == "still here"

    def test_sessions_are_independent(self, processor, registry, session_id, tmp_path):
        registry.create_session("other", str(tmp_path))
        processor.ingest_notification(text("agent_message_chunk", "for sess-1"))
        processor.ingest_notification(
            {"sessionId": "other", "update": {"sessionUpdate": "agent_message_chunk", "content": "for other"}}
        )
        assert registry.get_entries(session_id)[0].text == "for sess-1"
        assert registry.get_entries("other")[0].text == "for other"
