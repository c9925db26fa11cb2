"""Tests for permission request correlation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from acpsession.engine.events import PermissionExpired, PermissionRequested
from acpsession.engine.permissions import PermissionCorrelator, expire_request, record_request
from acpsession.errors import PermissionTimeout, TransportError, UnknownCorrelation
from acpsession.session.entries import PermissionChoice
from acpsession.session.registry import SessionStatus


def requested(request_id="r1", session_id="sess-1"):
    return PermissionRequested(
        session_id=session_id,
        request_id=request_id,
        tool_name="Bash",
        description="rm -rf build",
        options=(
            PermissionChoice("allow", "Allow", "allow_once"),
            PermissionChoice("reject", "Reject", "reject_once"),
        ),
        tool_call_id="t1",
    )


@pytest.fixture
def responder():
    return AsyncMock(return_value=None)


@pytest.fixture
def correlator(registry, responder):
    return PermissionCorrelator(registry, responder, response_timeout=0.2)


@pytest.fixture
def pending_request(registry, session_id):
    with registry.transaction(session_id) as slog:
        record_request(slog, requested())
    return "r1"


class TestRecordRequest:
    """Incoming requests become pending entries."""

    def test_request_becomes_pending(self, registry, session_id, pending_request):
        pending = registry.get_pending_permission(session_id)
        assert pending is not None
        assert pending.request_id == "r1"
        assert not pending.answered
        assert [o.option_id for o in pending.options] == ["allow", "reject"]

    def test_newer_request_takes_pointer(self, registry, session_id, pending_request):
        with registry.transaction(session_id) as slog:
            record_request(slog, requested("r2"))
        assert registry.get_pending_permission(session_id).request_id == "r2"
        assert len(registry.get_entries(session_id)) == 2

    def test_duplicate_request_not_appended(self, registry, session_id, pending_request):
        with registry.transaction(session_id) as slog:
            record_request(slog, requested())
        assert len(registry.get_entries(session_id)) == 1


class TestRespond:
    """Exactly one response per request."""

    async def test_respond_records_answer(self, registry, session_id, pending_request, correlator, responder):
        """PermissionRequest r1 + respond(r1, allow) -> answered, nothing pending."""
        entry = await correlator.respond(session_id, "r1", "allow")

        responder.assert_awaited_once_with(session_id, "r1", "allow")
        assert entry.response_option == "allow"
        assert entry.response_time is not None
        assert registry.get_pending_permission(session_id) is None
        assert registry.get_entries(session_id)[0].response_option == "allow"

    async def test_second_response_not_sent(self, session_id, pending_request, correlator, responder):
        await correlator.respond(session_id, "r1", "allow")
        assert await correlator.respond(session_id, "r1", "reject") is None
        assert responder.await_count == 1

    async def test_concurrent_responses_send_once(self, registry, session_id, pending_request, correlator, responder):
        """Two answers racing for r1: the first is delivered, the second ignored."""
        delivered = []

        async def deliver_once(sid, request_id, option_id):
            if delivered:
                raise TransportError("response already sent")
            delivered.append(option_id)
            await asyncio.sleep(0.01)

        responder.side_effect = deliver_once
        first, second = await asyncio.gather(
            correlator.respond(session_id, "r1", "allow"),
            correlator.respond(session_id, "r1", "reject"),
        )

        assert first.response_option == "allow"
        assert second is None
        assert responder.await_count == 1
        assert delivered == ["allow"]
        assert registry.get_entries(session_id)[0].response_option == "allow"
        assert registry.get_status(session_id) is SessionStatus.READY

    async def test_retry_allowed_after_failed_delivery(self, registry, session_id, pending_request, correlator, responder):
        async def hang(*args):
            await asyncio.sleep(10)

        responder.side_effect = hang
        with pytest.raises(PermissionTimeout):
            await correlator.respond(session_id, "r1", "allow")

        responder.side_effect = None
        entry = await correlator.respond(session_id, "r1", "allow")
        assert entry.response_option == "allow"

    async def test_unknown_request_has_no_side_effects(self, registry, session_id, pending_request, correlator, responder):
        with pytest.raises(UnknownCorrelation):
            await correlator.respond(session_id, "ghost", "allow")
        responder.assert_not_awaited()
        assert registry.get_pending_permission(session_id).request_id == "r1"
        assert registry.get_status(session_id) is SessionStatus.READY

    async def test_transport_error_still_records(self, registry, session_id, pending_request, correlator, responder):
        responder.side_effect = TransportError("pipe closed")
        with pytest.raises(TransportError):
            await correlator.respond(session_id, "r1", "allow")

        assert registry.get_entries(session_id)[0].response_option == "allow"
        assert registry.get_pending_permission(session_id) is None
        info = registry.get_session(session_id)
        assert info.status is SessionStatus.ERROR
        assert "pipe closed" in info.last_error

    async def test_timeout_leaves_entry_unanswered(self, registry, session_id, pending_request, correlator, responder):
        async def hang(*args):
            await asyncio.sleep(10)

        responder.side_effect = hang
        with pytest.raises(PermissionTimeout) as excinfo:
            await correlator.respond(session_id, "r1", "allow")

        assert excinfo.value.request_id == "r1"
        assert isinstance(excinfo.value, TransportError)
        assert not registry.get_entries(session_id)[0].answered
        assert registry.get_pending_permission(session_id) is None
        assert registry.get_status(session_id) is SessionStatus.ERROR


class TestDismissAndExpire:
    """The pointer can be cleared without answering."""

    def test_dismiss(self, registry, session_id, pending_request, correlator):
        assert correlator.dismiss(session_id) == "r1"
        assert registry.get_pending_permission(session_id) is None
        assert not registry.get_entries(session_id)[0].answered

    def test_dismiss_when_nothing_pending(self, session_id, correlator):
        assert correlator.dismiss(session_id) is None

    def test_expire(self, registry, session_id, pending_request):
        with registry.transaction(session_id) as slog:
            expire_request(slog, PermissionExpired(session_id, "r1"))
        assert registry.get_pending_permission(session_id) is None
        assert not registry.get_entries(session_id)[0].answered

    def test_expire_unknown(self, registry, session_id):
        with registry.transaction(session_id) as slog:
            with pytest.raises(UnknownCorrelation):
                expire_request(slog, PermissionExpired(session_id, "ghost"))
