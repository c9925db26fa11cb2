"""Common ACP wire types shared across notifications, requests and responses."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AcpModel(BaseModel):
    """Base model for ACP types with populate_by_name enabled.

    Extra fields are ignored so newer agents can add fields freely.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TextContent(AcpModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str


class ResourceContents(AcpModel):
    """Embedded text resource."""

    uri: str
    text: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class ResourceContent(AcpModel):
    """Embedded resource content block."""

    type: Literal["resource"] = "resource"
    resource: ResourceContents


class ResourceLinkContent(AcpModel):
    """Reference to a resource without its contents."""

    type: Literal["resource_link"] = "resource_link"
    uri: str
    name: str
    mime_type: str | None = Field(default=None, alias="mimeType")


ContentBlock = TextContent | ResourceContent | ResourceLinkContent


class ModeInfo(AcpModel):
    """Operating mode offered by the agent."""

    id: str
    name: str
    description: str | None = None


class ModelInfo(AcpModel):
    """Model offered by the agent."""

    model_id: str = Field(alias="modelId")
    name: str
    description: str | None = None


class CommandInput(AcpModel):
    hint: str = ""


class AvailableCommand(AcpModel):
    """Slash command advertised by the agent."""

    name: str
    description: str = ""
    input: CommandInput | None = None


class PermissionOption(AcpModel):
    """Permission option presented to the user."""

    option_id: str = Field(alias="optionId")
    name: str
    kind: str = "allow_once"


class PlanItemPayload(AcpModel):
    """Entry of an agent plan as sent on the wire."""

    content: str
    priority: str | None = None
    status: str | None = None


class ToolCallPayload(AcpModel):
    """Tool call fields shared by ``tool_call``, ``tool_call_update`` and
    permission requests. Every field except the id is optional on updates.
    """

    tool_call_id: str = Field(alias="toolCallId")
    title: str | None = None
    kind: str | None = None
    status: str | None = None
    content: list[dict[str, Any]] | None = None
    raw_input: Any = Field(default=None, alias="rawInput")
    raw_output: Any = Field(default=None, alias="rawOutput")
    meta: dict[str, Any] | None = Field(default=None, alias="_meta")
