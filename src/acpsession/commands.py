"""Command dispatch: user intents to agent requests.

Each command records its local effect in the registry first (so a UI sees
the user's prompt immediately), then awaits the transport. Failures set the
session status to ``error`` and propagate; nothing is retried.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from acpsession.config import Config
from acpsession.engine.events import ModeUpdated
from acpsession.engine.modes import apply_meta, apply_mode, meta_from_response
from acpsession.engine.permissions import PermissionCorrelator
from acpsession.errors import TransportError
from acpsession.logging import get_logger
from acpsession.session.entries import MessageEntry, PermissionRequestEntry, Role
from acpsession.session.registry import SessionRegistry, SessionStatus
from acpsession.transport.base import AgentTransport
from acpsession.types import (
    CancelNotification,
    ContentBlock,
    InitializeResponse,
    NewSessionResponse,
    PromptResponse,
    TextContent,
)

log = get_logger("commands")

CLIENT_VERSION = "0.1.0"


class CommandDispatcher:
    """Sends commands for registered sessions to one agent.

    Local session ids are stable. When a resume falls back to
    ``session/new`` the agent issues a different id; the dispatcher keeps
    the mapping in both directions (``agent_session_id`` for outbound
    traffic, ``local_session_id`` for inbound).
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: AgentTransport,
        config: Config | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.config = config or Config()
        self.permissions = PermissionCorrelator(
            registry,
            transport.respond_permission,
            response_timeout=self.config.permissions.response_timeout,
        )
        self.agent: InitializeResponse | None = None

        self._agent_ids: dict[str, str] = {}
        self._local_ids: dict[str, str] = {}
        # Local sessions whose history the agent is replaying (session/load)
        self.replaying: set[str] = set()

    # --- Session id mapping ---

    def agent_session_id(self, session_id: str) -> str:
        return self._agent_ids.get(session_id, session_id)

    def local_session_id(self, agent_session_id: str) -> str:
        return self._local_ids.get(agent_session_id, agent_session_id)

    def _alias(self, session_id: str, agent_session_id: str) -> None:
        self._agent_ids[session_id] = agent_session_id
        self._local_ids[agent_session_id] = session_id
        log.info("Session %s continues as agent session %s", session_id, agent_session_id)

    def _fail(self, session_id: str, error: TransportError) -> None:
        log.error("%s failed for %s: %s", error.method or "command", session_id, error)
        if self.registry.has_session(session_id):
            self.registry.set_status(session_id, SessionStatus.ERROR, str(error))

    # --- Connection ---

    async def connect(self) -> InitializeResponse:
        """Perform the ACP ``initialize`` handshake.

        Raises:
            TransportError: If the agent rejects or never answers the handshake.
        """
        agent_config = self.config.agent
        result = await self.transport.request(
            "initialize",
            {
                "protocolVersion": agent_config.protocol_version,
                "clientCapabilities": {
                    "fs": {"readTextFile": False, "writeTextFile": False},
                    "terminal": False,
                },
                "clientInfo": {"name": agent_config.client_name, "version": CLIENT_VERSION},
            },
        )
        try:
            self.agent = InitializeResponse.model_validate(result or {})
        except ValidationError as e:
            raise TransportError(f"Invalid initialize response: {e}", method="initialize") from e
        name = self.agent.agent_info.name if self.agent.agent_info else "agent"
        log.info("Connected to %s (protocol %s)", name, self.agent.protocol_version)
        return self.agent

    async def new_session(self, cwd: str, *, name: str | None = None) -> str:
        """Create a session on the agent and register it locally.

        Returns:
            The new session id.
        """
        response = await self._session_request(
            "session/new", {"cwd": cwd, "mcpServers": []}
        )
        if not response.session_id:
            raise TransportError("session/new returned no sessionId", method="session/new")

        session_id = response.session_id
        self.registry.create_session(session_id, cwd, name=name, status=SessionStatus.READY)
        with self.registry.transaction(session_id) as slog:
            apply_meta(
                slog,
                meta_from_response(response, baseline_mode=self.config.session.baseline_mode),
            )
        return session_id

    async def resume_session(self, session_id: str, cwd: str) -> str:
        """Reattach a known session to the agent.

        Tries ``session/load``, then ``session/resume``, then falls back to
        ``session/new`` under the same local id. History the agent replays
        during a load is suppressed when the local log already has entries.

        Returns:
            The agent's id for the session (differs from ``session_id`` only
            after the ``session/new`` fallback).

        Raises:
            TransportError: If all three strategies fail.
        """
        if not self.registry.has_session(session_id):
            self.registry.create_session(session_id, cwd, status=SessionStatus.CONNECTING)
        else:
            self.registry.set_status(session_id, SessionStatus.CONNECTING)

        params = {"sessionId": session_id, "cwd": cwd, "mcpServers": []}
        has_history = bool(self.registry.get_entries(session_id))
        response: NewSessionResponse | None = None

        if has_history:
            self.replaying.add(session_id)
        try:
            response = await self._session_request("session/load", params)
        except TransportError as e:
            log.info("session/load failed for %s: %s", session_id, e)
        finally:
            self.replaying.discard(session_id)

        if response is None:
            try:
                response = await self._session_request("session/resume", params)
            except TransportError as e:
                log.info("session/resume failed for %s: %s", session_id, e)

        if response is None:
            try:
                response = await self._session_request(
                    "session/new", {"cwd": cwd, "mcpServers": []}
                )
            except TransportError as e:
                self._fail(session_id, e)
                raise
            if response.session_id and response.session_id != session_id:
                self._alias(session_id, response.session_id)

        with self.registry.transaction(session_id) as slog:
            if response.modes or response.models or slog.capabilities is None:
                apply_meta(
                    slog,
                    meta_from_response(response, baseline_mode=self.config.session.baseline_mode),
                )
            slog.seal_tail()
            slog.set_status(SessionStatus.READY)
        return self.agent_session_id(session_id)

    async def _session_request(self, method: str, params: dict[str, Any]) -> NewSessionResponse:
        result = await self.transport.request(method, params)
        try:
            return NewSessionResponse.model_validate(result or {})
        except ValidationError as e:
            raise TransportError(f"Invalid {method} response: {e}", method=method) from e

    # --- Prompting ---

    async def send_prompt(
        self,
        session_id: str,
        text: str,
        resources: Sequence[ContentBlock] = (),
    ) -> str:
        """Send a user prompt and wait for the agent's turn to finish.

        The user Message entry is appended before anything is sent, and stays
        in the log whatever the outcome.

        Returns:
            The agent's stop reason.

        Raises:
            TransportError: If the prompt could not be delivered or was rejected.
        """
        with self.registry.transaction(session_id) as slog:
            slog.append(MessageEntry(role=Role.USER, text=text))
            slog.set_status(SessionStatus.PROMPTING)

        blocks = [TextContent(text=text), *resources]
        prompt = [b.model_dump(by_alias=True, exclude_none=True) for b in blocks]
        try:
            result = await self.transport.request(
                "session/prompt",
                {"sessionId": self.agent_session_id(session_id), "prompt": prompt},
            )
        except TransportError as e:
            self._fail(session_id, e)
            raise

        try:
            stop_reason = PromptResponse.model_validate(result or {}).stop_reason
        except ValidationError as e:
            error = TransportError(f"Invalid session/prompt response: {e}", method="session/prompt")
            self._fail(session_id, error)
            raise error from e
        with self.registry.transaction(session_id) as slog:
            slog.seal_tail()
            slog.set_status(SessionStatus.READY)
        log.debug("Prompt in %s finished: %s", session_id, stop_reason)
        return stop_reason

    async def cancel(self, session_id: str) -> None:
        """Ask the agent to stop the current turn. Entries are left as they are."""
        try:
            notification = CancelNotification(session_id=self.agent_session_id(session_id))
            await self.transport.notify("session/cancel", notification.model_dump(by_alias=True))
        except TransportError as e:
            self._fail(session_id, e)
            raise

    async def set_mode(self, session_id: str, mode_id: str) -> None:
        """Switch the session's mode; the change is logged once confirmed."""
        try:
            await self.transport.request(
                "session/set_mode",
                {"sessionId": self.agent_session_id(session_id), "modeId": mode_id},
            )
        except TransportError as e:
            self._fail(session_id, e)
            raise
        with self.registry.transaction(session_id) as slog:
            apply_mode(
                slog,
                ModeUpdated(session_id, mode_id),
                baseline_mode=self.config.session.baseline_mode,
            )

    # --- Permissions ---

    async def respond_to_permission(
        self, session_id: str, request_id: str, option_id: str
    ) -> PermissionRequestEntry | None:
        return await self.permissions.respond(session_id, request_id, option_id)

    def dismiss_permission(self, session_id: str) -> str | None:
        return self.permissions.dismiss(session_id)
