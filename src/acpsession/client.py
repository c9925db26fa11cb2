"""Client facade: one agent connection, its sessions and their logs.

Wires the transport's inbound traffic into the event processor and exposes
the command dispatcher, registry reads and persistence in one object.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from acpsession.commands import CommandDispatcher
from acpsession.config import Config, get_config
from acpsession.engine.events import PermissionExpired
from acpsession.engine.processor import EventProcessor
from acpsession.errors import TransportError
from acpsession.logging import TRACE, get_logger
from acpsession.session import storage
from acpsession.session.entries import Entry, PermissionRequestEntry
from acpsession.session.registry import Listener, SessionRegistry, SessionStatus
from acpsession.transport.connection import AgentConnection
from acpsession.types import ContentBlock, InitializeResponse

log = get_logger("client")


class AgentClient:
    """High-level entry point for driving one ACP agent.

    Example:
        client = AgentClient()
        await client.start(cwd="/path/to/project")
        session_id = await client.new_session("/path/to/project")
        await client.send_prompt(session_id, "Explain this repo")
        for entry in client.get_entries(session_id):
            ...
        await client.close()
    """

    def __init__(
        self,
        config: Config | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.config = config or get_config()
        self.registry = registry or SessionRegistry()
        self.processor = EventProcessor(self.registry, self.config)
        self.connection: AgentConnection | None = None
        self.dispatcher: CommandDispatcher | None = None
        self._attached: set[str] = set()

    # --- Connection ---

    async def start(self, command: str | None = None, cwd: str | None = None) -> InitializeResponse:
        """Spawn the agent and perform the handshake."""
        connection = await AgentConnection.spawn(
            command or self.config.agent.command,
            cwd=cwd,
            permission_request_timeout=self.config.permissions.request_timeout,
        )
        self.attach(connection)
        try:
            return await self.commands.connect()
        except TransportError:
            await self.close()
            raise

    def attach(self, connection: AgentConnection) -> None:
        """Route ``connection``'s inbound traffic into this client."""
        connection.on_notification = self._on_notification
        connection.on_permission_request = self._on_permission_request
        connection.on_permission_expired = self._on_permission_expired
        connection.on_close = self._on_close
        self.connection = connection
        self.dispatcher = CommandDispatcher(self.registry, connection, self.config)

    @property
    def commands(self) -> CommandDispatcher:
        if self.dispatcher is None:
            raise TransportError("Client is not connected to an agent")
        return self.dispatcher

    async def close(self) -> None:
        if self.config.session.persist:
            for session_id in list(self._attached):
                self.save(session_id)
        if self.connection is not None:
            await self.connection.close()

    # --- Inbound routing ---

    def _route(self, params: dict[str, Any]) -> dict[str, Any] | None:
        """Map the agent's session id to ours; None if the update is suppressed."""
        agent_id = params.get("sessionId")
        if not isinstance(agent_id, str) or self.dispatcher is None:
            return params
        local_id = self.dispatcher.local_session_id(agent_id)
        if local_id in self.dispatcher.replaying:
            log.log(TRACE, "Suppressed replayed update for %s", local_id)
            return None
        if local_id != agent_id:
            params = {**params, "sessionId": local_id}
        return params

    def _on_notification(self, params: dict[str, Any]) -> None:
        routed = self._route(params)
        if routed is not None:
            self.processor.ingest_notification(routed)

    def _on_permission_request(self, params: dict[str, Any], request_id: str) -> None:
        routed = self._route(params) or params
        self.processor.ingest_permission_request(routed, request_id)

    def _on_permission_expired(self, session_id: str, request_id: str) -> None:
        if self.dispatcher is not None:
            session_id = self.dispatcher.local_session_id(session_id)
        self.processor.ingest(PermissionExpired(session_id, request_id))

    def _on_close(self) -> None:
        log.info("Agent connection closed")
        for session_id in self._attached:
            if self.registry.has_session(session_id):
                self.registry.set_status(session_id, SessionStatus.DISCONNECTED)

    # --- Sessions ---

    async def new_session(self, cwd: str, *, name: str | None = None) -> str:
        session_id = await self.commands.new_session(cwd, name=name)
        self._attached.add(session_id)
        return session_id

    async def resume_session(self, session_id: str, cwd: str) -> str:
        """Resume a session, restoring its saved log first when there is one."""
        if not self.registry.has_session(session_id):
            storage.restore_session(
                self.registry,
                cwd,
                session_id,
                baseline_mode=self.config.session.baseline_mode,
            )
        self._attached.add(session_id)
        return await self.commands.resume_session(session_id, cwd)

    async def send_prompt(
        self, session_id: str, text: str, resources: Sequence[ContentBlock] = ()
    ) -> str:
        try:
            return await self.commands.send_prompt(session_id, text, resources)
        finally:
            if self.config.session.persist:
                self.save(session_id)

    async def cancel(self, session_id: str) -> None:
        await self.commands.cancel(session_id)

    async def set_mode(self, session_id: str, mode_id: str) -> None:
        await self.commands.set_mode(session_id, mode_id)

    async def respond_to_permission(
        self, session_id: str, request_id: str, option_id: str
    ) -> PermissionRequestEntry | None:
        return await self.commands.respond_to_permission(session_id, request_id, option_id)

    def dismiss_permission(self, session_id: str) -> str | None:
        return self.commands.dismiss_permission(session_id)

    def save(self, session_id: str) -> None:
        try:
            storage.save_session(self.registry, session_id)
        except RuntimeError as e:
            log.warning("Could not save session %s: %s", session_id, e)

    # --- Reads ---

    def get_entries(self, session_id: str) -> list[Entry]:
        return self.registry.get_entries(session_id)

    def get_pending_permission(self, session_id: str) -> PermissionRequestEntry | None:
        return self.registry.get_pending_permission(session_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.registry.subscribe(listener)
