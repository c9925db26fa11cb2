"""Event dispatch: route decoded events to the tracker that owns them.

Every event is applied inside one registry transaction for its session, so
each event is atomic with respect to readers and to user commands.
"""

from __future__ import annotations

from typing import Any

from acpsession.config import Config
from acpsession.engine.decoder import decode_notification, decode_permission_request
from acpsession.engine.events import (
    AgentError,
    CommandsUpdated,
    MessageChunk,
    MessageEnd,
    ModeUpdated,
    PermissionExpired,
    PermissionRequested,
    PlanUpdated,
    SessionEvent,
    ThoughtChunk,
    ToolCallStarted,
    ToolCallUpdated,
    UserMessageChunk,
)
from acpsession.engine.merge import merge_message, merge_thought, merge_user_message
from acpsession.engine.modes import apply_commands, apply_mode, apply_plan
from acpsession.engine.permissions import expire_request, record_request
from acpsession.engine.tools import ToolCallTracker
from acpsession.errors import DecodeError, UnknownCorrelation, UnknownSession
from acpsession.logging import VERBOSE, get_logger
from acpsession.session.registry import SessionLog, SessionRegistry, SessionStatus

log = get_logger("engine")


class EventProcessor:
    """Applies session events to the registry."""

    def __init__(self, registry: SessionRegistry, config: Config | None = None) -> None:
        self.registry = registry
        self.config = config or Config()
        self.tools = ToolCallTracker(self.config.tool_output)

    @property
    def baseline_mode(self) -> str:
        return self.config.session.baseline_mode

    def apply(self, event: SessionEvent) -> None:
        """Apply one event.

        Raises:
            UnknownSession: If the event's session is not registered.
            UnknownCorrelation: If an update names an unseen id.
        """
        with self.registry.transaction(event.session_id) as slog:
            self._dispatch(slog, event)
        log.log(VERBOSE, "Applied %s to %s", type(event).__name__, event.session_id)

    def _dispatch(self, slog: SessionLog, event: SessionEvent) -> None:
        match event:
            case MessageChunk(text=text):
                merge_message(slog, text)
            case ThoughtChunk(text=text):
                merge_thought(slog, text)
            case UserMessageChunk(text=text):
                merge_user_message(slog, text)
            case MessageEnd():
                slog.seal_tail()
            case ToolCallStarted():
                self.tools.start(slog, event)
            case ToolCallUpdated():
                self.tools.update(slog, event)
            case PlanUpdated():
                apply_plan(slog, event)
            case ModeUpdated():
                apply_mode(slog, event, baseline_mode=self.baseline_mode)
            case CommandsUpdated():
                apply_commands(slog, event, baseline_mode=self.baseline_mode)
            case AgentError(message=message):
                log.error("Agent error in %s: %s", slog.session_id, message)
                slog.set_status(SessionStatus.ERROR, message)
            case PermissionRequested():
                record_request(slog, event)
            case PermissionExpired():
                expire_request(slog, event)
            case _:
                raise DecodeError(f"Unhandled event type: {type(event).__name__}", event)

    def ingest(self, event: SessionEvent) -> bool:
        """Apply an event, logging and dropping recoverable failures.

        Returns:
            True if the event was applied.
        """
        try:
            self.apply(event)
        except (UnknownCorrelation, UnknownSession) as e:
            log.warning("Dropped %s: %s", type(event).__name__, e)
            return False
        return True

    def ingest_notification(self, params: Any) -> SessionEvent | None:
        """Decode and apply the params of a ``session/update`` notification.

        Returns:
            The applied event, or None if it was dropped.
        """
        try:
            event = decode_notification(params)
        except DecodeError as e:
            log.warning("Dropped session update: %s", e)
            return None
        return event if self.ingest(event) else None

    def ingest_permission_request(self, params: Any, request_id: str) -> PermissionRequested | None:
        try:
            event = decode_permission_request(params, request_id)
        except DecodeError as e:
            log.warning("Dropped permission request: %s", e)
            return None
        return event if self.ingest(event) else None
