"""Pydantic models for the Agent Client Protocol wire format."""

from acpsession.types.common import (
    AcpModel,
    AvailableCommand,
    ContentBlock,
    ModeInfo,
    ModelInfo,
    PermissionOption,
    PlanItemPayload,
    ResourceContent,
    ResourceContents,
    ResourceLinkContent,
    TextContent,
    ToolCallPayload,
)
from acpsession.types.notifications import (
    CancelNotification,
    RequestPermissionParams,
    SessionNotification,
)
from acpsession.types.responses import (
    InitializeResponse,
    NewSessionResponse,
    PromptResponse,
    SessionModelState,
    SessionModeState,
)

__all__ = [
    "AcpModel",
    "AvailableCommand",
    "CancelNotification",
    "ContentBlock",
    "InitializeResponse",
    "ModeInfo",
    "ModelInfo",
    "NewSessionResponse",
    "PermissionOption",
    "PlanItemPayload",
    "PromptResponse",
    "RequestPermissionParams",
    "ResourceContent",
    "ResourceContents",
    "ResourceLinkContent",
    "SessionModeState",
    "SessionModelState",
    "SessionNotification",
    "TextContent",
    "ToolCallPayload",
]
