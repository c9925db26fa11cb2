"""ACP response payloads the client reads back from the agent."""

from __future__ import annotations

from pydantic import Field

from acpsession.types.common import AcpModel, ModeInfo, ModelInfo


class AgentInfo(AcpModel):
    name: str
    title: str | None = None
    version: str | None = None


class InitializeResponse(AcpModel):
    """Result of ``initialize``."""

    protocol_version: int = Field(default=1, alias="protocolVersion")
    agent_info: AgentInfo | None = Field(default=None, alias="agentInfo")
    agent_capabilities: dict = Field(default_factory=dict, alias="agentCapabilities")


class SessionModeState(AcpModel):
    current_mode_id: str = Field(alias="currentModeId")
    available_modes: list[ModeInfo] = Field(default_factory=list, alias="availableModes")


class SessionModelState(AcpModel):
    current_model_id: str = Field(alias="currentModelId")
    available_models: list[ModelInfo] = Field(default_factory=list, alias="availableModels")


class NewSessionResponse(AcpModel):
    """Result of ``session/new``, ``session/load`` and ``session/resume``.

    ``session_id`` is absent on load/resume responses.
    """

    session_id: str | None = Field(default=None, alias="sessionId")
    modes: SessionModeState | None = None
    models: SessionModelState | None = None


class PromptResponse(AcpModel):
    """Result of ``session/prompt``."""

    stop_reason: str = Field(default="end_turn", alias="stopReason")
