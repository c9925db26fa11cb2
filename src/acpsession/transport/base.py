"""Outbound interface the command dispatcher needs from a transport."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AgentTransport(Protocol):
    """Request/notify channel to one agent process.

    Implementations raise ``TransportError`` for every delivery failure:
    JSON-RPC error responses, closed pipes and agents that went away.
    """

    async def request(self, method: str, params: dict[str, Any]) -> Any:
        """Send a request and return its ``result``."""
        ...

    async def notify(self, method: str, params: dict[str, Any]) -> None:
        """Send a notification (no response expected)."""
        ...

    async def respond_permission(self, session_id: str, request_id: str, option_id: str) -> None:
        """Answer a pending ``session/request_permission`` from the agent."""
        ...
