"""JSON-RPC connection to an agent process.

Correlates outbound requests with their responses, forwards
``session/update`` notifications, and turns ``session/request_permission``
requests into client-side request ids that the user answers later.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from acpsession.errors import TransportError
from acpsession.logging import get_logger
from acpsession.transport.process import graceful_shutdown, spawn_agent
from acpsession.transport.stdio import JsonRpcMessage, StdioTransport

log = get_logger("transport")

METHOD_NOT_FOUND = -32601

NotificationHandler = Callable[[dict[str, Any]], None]
# (params, request_id)
PermissionHandler = Callable[[dict[str, Any], str], None]
# (session_id, request_id)
ExpiryHandler = Callable[[str, str], None]


@dataclass
class _PendingPermission:
    rpc_id: int | str
    session_id: str
    timer: asyncio.TimerHandle | None = None


class AgentConnection:
    """One agent process speaking ACP over stdio.

    Inbound traffic is handled by a reader task started with ``start()``.
    Handlers are plain callables invoked on the event loop.
    """

    def __init__(
        self,
        transport: StdioTransport,
        *,
        process: asyncio.subprocess.Process | None = None,
        permission_request_timeout: float = 300.0,
    ) -> None:
        self.transport = transport
        self.process = process
        self.permission_request_timeout = permission_request_timeout

        self.on_notification: NotificationHandler | None = None
        self.on_permission_request: PermissionHandler | None = None
        self.on_permission_expired: ExpiryHandler | None = None
        self.on_close: Callable[[], None] | None = None

        self._ids = itertools.count()
        self._pending: dict[int | str, tuple[str, asyncio.Future[Any]]] = {}
        self._permissions: dict[str, _PendingPermission] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    async def spawn(
        cls,
        command: str,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        permission_request_timeout: float = 300.0,
    ) -> AgentConnection:
        """Spawn ``command`` and return a started connection to it."""
        process = await spawn_agent(command, cwd=cwd, env=env)
        connection = cls(
            StdioTransport.from_process(process),
            process=process,
            permission_request_timeout=permission_request_timeout,
        )
        connection.start()
        return connection

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop())

    # --- Outbound ---

    async def request(self, method: str, params: dict[str, Any]) -> Any:
        """Send a request and wait for its result.

        Raises:
            TransportError: On an error response or a closed connection.
        """
        if self._closed:
            raise TransportError("Agent connection is closed", method=method)

        msg_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = (method, future)
        try:
            await self._write(JsonRpcMessage(id=msg_id, method=method, params=params), method)
            return await future
        finally:
            self._pending.pop(msg_id, None)

    async def notify(self, method: str, params: dict[str, Any]) -> None:
        if self._closed:
            raise TransportError("Agent connection is closed", method=method)
        await self._write(JsonRpcMessage(method=method, params=params), method)

    async def respond_permission(self, session_id: str, request_id: str, option_id: str) -> None:
        """Answer a pending permission request with the chosen option.

        Raises:
            TransportError: If the request is no longer pending or the write fails.
        """
        pending = self._permissions.pop(request_id, None)
        if pending is None:
            raise TransportError(
                f"Permission request {request_id} is no longer pending",
                method="session/request_permission",
            )
        if pending.timer is not None:
            pending.timer.cancel()
        result = {"outcome": {"outcome": "selected", "optionId": option_id}}
        await self._write(
            JsonRpcMessage(id=pending.rpc_id, result=result), "session/request_permission"
        )

    async def _write(self, msg: JsonRpcMessage, method: str) -> None:
        try:
            await self.transport.write_message(msg)
        except (ConnectionError, OSError) as e:
            raise TransportError(f"{method}: failed to write to agent: {e}", method=method) from e

    # --- Inbound ---

    async def _read_loop(self) -> None:
        try:
            async for msg in self.transport.messages():
                if msg.is_response():
                    self._handle_response(msg)
                elif msg.is_request():
                    await self._handle_request(msg)
                elif msg.is_notification():
                    self._handle_notification(msg)
                else:
                    log.warning("Ignoring malformed JSON-RPC message: %s", msg.to_dict())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Agent reader failed: %s", e)
        finally:
            self._shutdown_pending("Agent closed the connection")

    def _handle_response(self, msg: JsonRpcMessage) -> None:
        entry = self._pending.get(msg.id)  # type: ignore[arg-type]
        if entry is None:
            log.warning("Response for unknown request id %r", msg.id)
            return
        method, future = entry
        if future.done():
            return
        if msg.error is not None:
            future.set_exception(TransportError.from_rpc_error(method, msg.error))
        else:
            future.set_result(msg.result)

    def _handle_notification(self, msg: JsonRpcMessage) -> None:
        if msg.method != "session/update":
            log.debug("Ignoring notification %s", msg.method)
            return
        if self.on_notification is not None:
            try:
                self.on_notification(msg.params or {})
            except Exception as e:
                log.error("Notification handler failed: %s", e)

    async def _handle_request(self, msg: JsonRpcMessage) -> None:
        if msg.method == "session/request_permission" and self.on_permission_request:
            params = msg.params or {}
            request_id = uuid.uuid4().hex
            pending = _PendingPermission(
                rpc_id=msg.id,  # type: ignore[arg-type]
                session_id=str(params.get("sessionId", "")),
            )
            self._permissions[request_id] = pending
            if self.permission_request_timeout > 0:
                pending.timer = asyncio.get_running_loop().call_later(
                    self.permission_request_timeout,
                    lambda: asyncio.ensure_future(self._expire_permission(request_id)),
                )
            try:
                self.on_permission_request(params, request_id)
            except Exception as e:
                log.error("Permission handler failed: %s", e)
            return

        log.debug("Agent requested unsupported method %s", msg.method)
        response = JsonRpcMessage(
            id=msg.id,
            error={"code": METHOD_NOT_FOUND, "message": f"Method not found: {msg.method}"},
        )
        try:
            await self.transport.write_message(response)
        except (ConnectionError, OSError) as e:
            log.warning("Could not answer %s: %s", msg.method, e)

    async def _expire_permission(self, request_id: str) -> None:
        pending = self._permissions.pop(request_id, None)
        if pending is None:
            return
        log.info("Permission request %s timed out, answering cancelled", request_id)
        try:
            await self.transport.write_message(
                JsonRpcMessage(id=pending.rpc_id, result={"outcome": {"outcome": "cancelled"}})
            )
        except (ConnectionError, OSError) as e:
            log.warning("Could not cancel permission request %s: %s", request_id, e)
        if self.on_permission_expired is not None:
            self.on_permission_expired(pending.session_id, request_id)

    def _shutdown_pending(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        for method, future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(reason, method=method))
        for pending in self._permissions.values():
            if pending.timer is not None:
                pending.timer.cancel()
        self._permissions.clear()
        if self.on_close is not None:
            self.on_close()

    # --- Lifecycle ---

    async def close(self) -> None:
        """Stop reading, fail outstanding requests and stop the agent."""
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        self._shutdown_pending("Agent connection closed")
        await self.transport.close()
        if self.process is not None:
            await graceful_shutdown(self.process)
