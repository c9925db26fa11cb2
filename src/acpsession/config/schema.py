"""Configuration schema dataclasses for acp-session.

All fields have defaults so partial YAML files merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_AGENT_COMMAND = "npx @zed-industries/claude-code-acp@latest"


@dataclass
class AgentConfig:
    """How to spawn and greet the external agent process."""

    command: str = DEFAULT_AGENT_COMMAND
    client_name: str = "acp-session"
    protocol_version: int = 1


@dataclass
class SessionConfig:
    """Session defaults."""

    baseline_mode: str = "default"  # assumed current mode before any Meta/mode update
    persist: bool = True  # save logs under <project>/.acpsession/sessions/


@dataclass
class PermissionConfig:
    """Permission round trip bounds (seconds)."""

    response_timeout: float = 10.0  # user answer -> JSON-RPC response written
    request_timeout: float = 300.0  # agent waits this long before we answer "cancelled"


def _default_tool_limits() -> dict[str, int]:
    return {"Read": 0, "WebFetch": 0, "Bash": 1024, "Grep": 1024, "Glob": 1024}


@dataclass
class ToolOutputConfig:
    """Size limits for storing tool output text on ToolCall entries.

    A limit of 0 means output is never stored for that tool. Output is kept
    only when strictly shorter than the limit.
    """

    default_limit: int = 4096
    limits: dict[str, int] = field(default_factory=_default_tool_limits)

    def limit_for(self, tool_name: str) -> int:
        return self.limits.get(tool_name, self.default_limit)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None


@dataclass
class Config:
    """Root configuration object."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    permissions: PermissionConfig = field(default_factory=PermissionConfig)
    tool_output: ToolOutputConfig = field(default_factory=ToolOutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)
