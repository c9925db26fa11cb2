"""Tests for the command dispatcher."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from acpsession.commands import CommandDispatcher
from acpsession.errors import TransportError
from acpsession.session.entries import MessageEntry, MetaEntry, ModeChangeEntry, Role
from acpsession.session.registry import SessionStatus
from acpsession.types import ResourceLinkContent

SID = "sess-1"


@pytest.fixture
def transport():
    """Mock transport; every request succeeds with an empty result by default."""
    t = Mock()
    t.request = AsyncMock(return_value={})
    t.notify = AsyncMock(return_value=None)
    t.respond_permission = AsyncMock(return_value=None)
    return t


@pytest.fixture
def dispatcher(registry, transport, config):
    return CommandDispatcher(registry, transport, config)


class TestSendPrompt:
    """Optimistic user entry, then the round trip."""

    async def test_success(self, dispatcher, registry, session_id, transport):
        transport.request.return_value = {"stopReason": "end_turn"}

        stop_reason = await dispatcher.send_prompt(session_id, "Fix the bug")

        assert stop_reason == "end_turn"
        method, params = transport.request.await_args.args
        assert method == "session/prompt"
        assert params == {"sessionId": SID, "prompt": [{"type": "text", "text": "Fix the bug"}]}
        entries = registry.get_entries(session_id)
        assert isinstance(entries[0], MessageEntry)
        assert entries[0].role is Role.USER
        assert registry.get_status(session_id) is SessionStatus.READY

    async def test_user_entry_visible_while_prompting(self, dispatcher, registry, session_id, transport):
        observed = {}

        async def request(method, params):
            observed["entries"] = registry.get_entries(session_id)
            observed["status"] = registry.get_status(session_id)
            return {"stopReason": "end_turn"}

        transport.request.side_effect = request
        await dispatcher.send_prompt(session_id, "hello")
        assert observed["entries"][0].text == "hello"
        assert observed["status"] is SessionStatus.PROMPTING

    async def test_failure_keeps_entry(self, dispatcher, registry, session_id, transport):
        transport.request.side_effect = TransportError("session/prompt failed: boom", method="session/prompt")

        with pytest.raises(TransportError):
            await dispatcher.send_prompt(session_id, "hello")

        entries = registry.get_entries(session_id)
        assert len(entries) == 1
        assert entries[0].text == "hello"
        info = registry.get_session(session_id)
        assert info.status is SessionStatus.ERROR
        assert "boom" in info.last_error

    async def test_malformed_result(self, dispatcher, registry, session_id, transport):
        transport.request.return_value = {"stopReason": None}

        with pytest.raises(TransportError) as excinfo:
            await dispatcher.send_prompt(session_id, "hello")

        assert excinfo.value.method == "session/prompt"
        assert [e.text for e in registry.get_entries(session_id)] == ["hello"]
        info = registry.get_session(session_id)
        assert info.status is SessionStatus.ERROR
        assert "Invalid session/prompt response" in info.last_error

    async def test_resources_appended(self, dispatcher, session_id, transport):
        transport.request.return_value = {"stopReason": "end_turn"}
        link = ResourceLinkContent(uri="file:///a.py", name="a.py")
        await dispatcher.send_prompt(session_id, "look", [link])
        prompt = transport.request.await_args.args[1]["prompt"]
        assert prompt[1] == {"type": "resource_link", "uri": "file:///a.py", "name": "a.py"}

    async def test_turn_end_seals_stream(self, dispatcher, registry, session_id, transport, processor):
        transport.request.return_value = {"stopReason": "end_turn"}
        processor.ingest_notification(
            {"sessionId": SID, "update": {"sessionUpdate": "agent_message_chunk", "content": "first"}}
        )
        await dispatcher.send_prompt(session_id, "again")
        processor.ingest_notification(
            {"sessionId": SID, "update": {"sessionUpdate": "agent_message_chunk", "content": "second"}}
        )
        texts = [e.text for e in registry.get_entries(session_id)]
        assert texts == ["first", "again", "second"]


class TestPassThroughCommands:
    """cancel, set_mode, connect, new_session."""

    async def test_cancel(self, dispatcher, session_id, transport, registry):
        registry.append_entry(session_id, MessageEntry(role=Role.USER, text="x"))
        await dispatcher.cancel(session_id)
        transport.notify.assert_awaited_once_with("session/cancel", {"sessionId": SID})
        assert len(registry.get_entries(session_id)) == 1

    async def test_cancel_failure(self, dispatcher, session_id, transport, registry):
        transport.notify.side_effect = TransportError("closed", method="session/cancel")
        with pytest.raises(TransportError):
            await dispatcher.cancel(session_id)
        assert registry.get_status(session_id) is SessionStatus.ERROR

    async def test_set_mode(self, dispatcher, session_id, transport, registry):
        await dispatcher.set_mode(session_id, "plan")
        transport.request.assert_awaited_once_with(
            "session/set_mode", {"sessionId": SID, "modeId": "plan"}
        )
        entries = registry.get_entries(session_id)
        assert isinstance(entries[0], ModeChangeEntry)

        # The agent's own current_mode_update that follows is a no-op
        await dispatcher.set_mode(session_id, "plan")
        assert len(registry.get_entries(session_id)) == 1

    async def test_set_mode_failure(self, dispatcher, session_id, transport, registry):
        transport.request.side_effect = TransportError("bad mode", method="session/set_mode")
        with pytest.raises(TransportError):
            await dispatcher.set_mode(session_id, "plan")
        assert registry.get_entries(session_id) == []
        assert registry.get_status(session_id) is SessionStatus.ERROR

    async def test_connect(self, dispatcher, transport):
        transport.request.return_value = {
            "protocolVersion": 1,
            "agentInfo": {"name": "claude-code-acp", "version": "1.0"},
        }
        agent = await dispatcher.connect()
        assert agent.agent_info.name == "claude-code-acp"
        method, params = transport.request.await_args.args
        assert method == "initialize"
        assert params["protocolVersion"] == 1
        assert params["clientCapabilities"]["terminal"] is False

    async def test_connect_failure(self, dispatcher, transport):
        transport.request.side_effect = TransportError("spawn failed")
        with pytest.raises(TransportError):
            await dispatcher.connect()

    async def test_new_session(self, dispatcher, transport, registry, tmp_path):
        transport.request.return_value = {
            "sessionId": "agent-1",
            "modes": {"currentModeId": "default", "availableModes": [{"id": "default", "name": "Default"}]},
        }
        session_id = await dispatcher.new_session(str(tmp_path))
        assert session_id == "agent-1"
        entries = registry.get_entries("agent-1")
        assert isinstance(entries[0], MetaEntry)
        assert registry.get_capabilities("agent-1").current_mode_id == "default"

    async def test_new_session_without_id(self, dispatcher, transport, tmp_path):
        with pytest.raises(TransportError):
            await dispatcher.new_session(str(tmp_path))


class TestResume:
    """load -> resume -> new."""

    async def test_load_succeeds(self, dispatcher, transport, registry, session_id, tmp_path):
        assert await dispatcher.resume_session(session_id, str(tmp_path)) == SID
        assert transport.request.await_args_list[0].args[0] == "session/load"
        assert registry.get_status(session_id) is SessionStatus.READY

    async def test_falls_back_to_resume(self, dispatcher, transport, session_id, tmp_path):
        async def request(method, params):
            if method == "session/load":
                raise TransportError("not supported", method=method, code=-32601)
            return {}

        transport.request.side_effect = request
        await dispatcher.resume_session(session_id, str(tmp_path))
        methods = [c.args[0] for c in transport.request.await_args_list]
        assert methods == ["session/load", "session/resume"]

    async def test_falls_back_to_new_and_aliases(self, dispatcher, transport, registry, session_id, tmp_path):
        async def request(method, params):
            if method in ("session/load", "session/resume"):
                raise TransportError("unknown session", method=method)
            if method == "session/new":
                return {"sessionId": "agent-2"}
            return {"stopReason": "end_turn"}

        transport.request.side_effect = request
        agent_id = await dispatcher.resume_session(session_id, str(tmp_path))

        assert agent_id == "agent-2"
        assert dispatcher.local_session_id("agent-2") == SID
        await dispatcher.send_prompt(session_id, "continue")
        assert transport.request.await_args.args[1]["sessionId"] == "agent-2"

    async def test_all_strategies_fail(self, dispatcher, transport, registry, session_id, tmp_path):
        transport.request.side_effect = TransportError("down")
        with pytest.raises(TransportError):
            await dispatcher.resume_session(session_id, str(tmp_path))
        assert registry.get_status(session_id) is SessionStatus.ERROR

    async def test_replay_flag_only_during_load(self, dispatcher, transport, registry, session_id, tmp_path):
        registry.append_entry(session_id, MessageEntry(role=Role.USER, text="earlier"))
        seen = []

        async def request(method, params):
            seen.append(SID in dispatcher.replaying)
            return {}

        transport.request.side_effect = request
        await dispatcher.resume_session(session_id, str(tmp_path))
        assert seen == [True]
        assert SID not in dispatcher.replaying

    async def test_unknown_session_is_created(self, dispatcher, registry, tmp_path):
        await dispatcher.resume_session("fresh", str(tmp_path))
        assert registry.has_session("fresh")


class TestPermissionDelegation:
    """Permission answers go through the correlator."""

    async def test_respond(self, dispatcher, registry, session_id, transport, processor):
        processor.ingest_permission_request(
            {"sessionId": SID, "toolCall": {"toolCallId": "t1", "title": "Bash"}, "options": []},
            "r1",
        )
        entry = await dispatcher.respond_to_permission(session_id, "r1", "allow")
        transport.respond_permission.assert_awaited_once_with(SID, "r1", "allow")
        assert entry.response_option == "allow"
        assert registry.get_pending_permission(session_id) is None

    async def test_dismiss(self, dispatcher, registry, session_id, processor):
        processor.ingest_permission_request(
            {"sessionId": SID, "toolCall": {"toolCallId": "t1"}, "options": []},
            "r1",
        )
        assert dispatcher.dismiss_permission(session_id) == "r1"
        assert registry.get_pending_permission(session_id) is None
