"""Exceptions raised by the session engine.

Decode and correlation errors are recovered where they are detected (logged,
event dropped). Transport errors and timeouts propagate to the caller of the
command that triggered them, after the session status has been set to
``error``.
"""

from __future__ import annotations

from typing import Any


class SessionEngineError(Exception):
    """Base class for all engine errors."""


class DecodeError(SessionEngineError):
    """A raw notification could not be turned into a typed event."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class UnknownCorrelation(SessionEngineError):
    """An update referenced a callId/requestId that was never created."""

    def __init__(self, session_id: str, kind: str, key: str) -> None:
        super().__init__(f"No {kind} entry with id {key!r} in session {session_id}")
        self.session_id = session_id
        self.kind = kind
        self.key = key


class UnknownSession(SessionEngineError):
    """A registry operation named a session that does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class TransportError(SessionEngineError):
    """A command could not be delivered to the agent or the agent rejected it."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.code = code
        self.data = data

    @classmethod
    def from_rpc_error(cls, method: str, error: dict[str, Any]) -> TransportError:
        """Build from a JSON-RPC error object."""
        message = error.get("message") or "Unknown error"
        return cls(
            f"{method} failed: {message}",
            method=method,
            code=error.get("code"),
            data=error.get("data"),
        )


class PermissionTimeout(TransportError):
    """The permission response round trip did not finish in time."""

    def __init__(self, request_id: str, timeout: float) -> None:
        super().__init__(
            f"Permission response for {request_id} timed out after {timeout:g}s",
            method="session/request_permission",
        )
        self.request_id = request_id
        self.timeout = timeout
