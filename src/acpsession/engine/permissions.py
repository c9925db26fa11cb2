"""Permission request correlation.

Each ``session/request_permission`` from the agent becomes a
PermissionRequest entry and the session's pending permission. The user's
answer is sent back exactly once, bounded by a timeout, and recorded on the
same entry.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import Awaitable, Callable

from acpsession.engine.events import PermissionExpired, PermissionRequested
from acpsession.errors import PermissionTimeout, TransportError, UnknownCorrelation
from acpsession.logging import get_logger
from acpsession.session.entries import EntryKind, PermissionRequestEntry
from acpsession.session.registry import SessionLog, SessionRegistry, SessionStatus

log = get_logger("permissions")

# (session_id, request_id, option_id) -> delivered to the agent
PermissionResponder = Callable[[str, str, str], Awaitable[None]]


def record_request(slog: SessionLog, event: PermissionRequested) -> PermissionRequestEntry:
    """Append an unanswered PermissionRequest entry and make it pending."""
    existing = slog.find(EntryKind.PERMISSION_REQUEST, event.request_id)
    if isinstance(existing, PermissionRequestEntry):
        log.debug("Duplicate permission request %s ignored", event.request_id)
        return existing

    if slog.pending_request_id is not None:
        log.info(
            "Permission request %s replaces pending %s in %s",
            event.request_id,
            slog.pending_request_id,
            slog.session_id,
        )

    entry = PermissionRequestEntry(
        request_id=event.request_id,
        tool_name=event.tool_name,
        description=event.description,
        options=list(event.options),
        tool_call_id=event.tool_call_id,
    )
    slog.append(entry)
    slog.set_pending(event.request_id)
    return entry


def expire_request(slog: SessionLog, event: PermissionExpired) -> None:
    """The agent stopped waiting: clear the pointer, leave the entry unanswered."""
    if slog.find(EntryKind.PERMISSION_REQUEST, event.request_id) is None:
        raise UnknownCorrelation(
            slog.session_id, EntryKind.PERMISSION_REQUEST.value, event.request_id
        )
    if slog.pending_request_id == event.request_id:
        slog.set_pending(None)
    log.info("Permission request %s expired in %s", event.request_id, slog.session_id)


class PermissionCorrelator:
    """Pairs pending permission requests with exactly one user response."""

    def __init__(
        self,
        registry: SessionRegistry,
        responder: PermissionResponder,
        *,
        response_timeout: float = 10.0,
    ) -> None:
        self._registry = registry
        self._responder = responder
        self.response_timeout = response_timeout
        # (session_id, request_id) answers currently being delivered
        self._in_flight: set[tuple[str, str]] = set()

    def _lookup(self, slog: SessionLog, request_id: str) -> PermissionRequestEntry:
        entry = slog.find(EntryKind.PERMISSION_REQUEST, request_id)
        if not isinstance(entry, PermissionRequestEntry):
            raise UnknownCorrelation(
                slog.session_id, EntryKind.PERMISSION_REQUEST.value, request_id
            )
        return entry

    @staticmethod
    def _record_answer(slog: SessionLog, entry: PermissionRequestEntry, option_id: str) -> None:
        entry.response_option = option_id
        entry.response_time = time.time()
        slog.touch(entry)
        if slog.pending_request_id == entry.request_id:
            slog.set_pending(None)

    async def respond(
        self, session_id: str, request_id: str, option_id: str
    ) -> PermissionRequestEntry | None:
        """Send the user's answer to the agent and record it.

        Only one answer per request is ever delivered. A call made while
        another answer for the same request is still in flight is ignored.

        Returns:
            Snapshot of the answered entry, or None if it was already
            answered or an answer is in flight.

        Raises:
            UnknownCorrelation: If the request id is unknown (no side effects).
            PermissionTimeout: If the response did not complete in time.
            TransportError: If the response could not be delivered.
        """
        key = (session_id, request_id)
        with self._registry.transaction(session_id) as slog:
            entry = self._lookup(slog, request_id)
            if entry.answered:
                log.warning(
                    "Permission request %s already answered with %s",
                    request_id,
                    entry.response_option,
                )
                return None
            if key in self._in_flight:
                log.warning(
                    "Permission request %s is already being answered, ignoring %s",
                    request_id,
                    option_id,
                )
                return None
            self._in_flight.add(key)

        try:
            return await self._deliver(session_id, request_id, option_id)
        finally:
            self._in_flight.discard(key)

    async def _deliver(
        self, session_id: str, request_id: str, option_id: str
    ) -> PermissionRequestEntry:
        log.debug("Responding to permission %s with %s", request_id, option_id)
        try:
            await asyncio.wait_for(
                self._responder(session_id, request_id, option_id),
                timeout=self.response_timeout,
            )
        except asyncio.TimeoutError as e:
            error = PermissionTimeout(request_id, self.response_timeout)
            with self._registry.transaction(session_id) as slog:
                if slog.pending_request_id == request_id:
                    slog.set_pending(None)
                slog.set_status(SessionStatus.ERROR, str(error))
            log.error("%s", error)
            raise error from e
        except TransportError as e:
            with self._registry.transaction(session_id) as slog:
                self._record_answer(slog, self._lookup(slog, request_id), option_id)
                slog.set_status(SessionStatus.ERROR, str(e))
            log.error("Permission response for %s failed: %s", request_id, e)
            raise

        with self._registry.transaction(session_id) as slog:
            entry = self._lookup(slog, request_id)
            self._record_answer(slog, entry, option_id)
            return copy.deepcopy(entry)

    def dismiss(self, session_id: str) -> str | None:
        """Clear the pending pointer without answering.

        Returns:
            The request id that was pending, if any.
        """
        with self._registry.transaction(session_id) as slog:
            request_id = slog.pending_request_id
            slog.set_pending(None)
        if request_id:
            log.debug("Dismissed permission %s in %s", request_id, session_id)
        return request_id
