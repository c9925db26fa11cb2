"""ACP notification and agent-initiated request payloads."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from acpsession.types.common import AcpModel, PermissionOption, ToolCallPayload


class SessionNotification(AcpModel):
    """Params of a ``session/update`` notification.

    ``update`` stays a raw dict: its shape depends on the ``sessionUpdate``
    discriminant and is decoded by ``acpsession.engine.decoder``.
    """

    session_id: str = Field(alias="sessionId", min_length=1)
    update: dict[str, Any]


class RequestPermissionParams(AcpModel):
    """Params of a ``session/request_permission`` request from the agent."""

    session_id: str = Field(alias="sessionId", min_length=1)
    tool_call: ToolCallPayload = Field(alias="toolCall")
    options: list[PermissionOption] = Field(default_factory=list)


class CancelNotification(AcpModel):
    """Cancel in-progress prompt notification (client to agent)."""

    session_id: str = Field(alias="sessionId")
