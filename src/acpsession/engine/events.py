"""Typed events produced by the decoder.

The set is closed: ``SessionEvent`` lists every event the processor knows
how to apply. Events are frozen; all state lives in the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias

from acpsession.session.entries import (
    CommandOption,
    PermissionChoice,
    PlanItem,
    ToolCallStatus,
    ToolKind,
)


@dataclass(frozen=True, slots=True)
class MessageChunk:
    """Assistant message text fragment (delta or cumulative)."""

    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class ThoughtChunk:
    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class UserMessageChunk:
    """User text replayed by the agent, e.g. while loading a session."""

    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class MessageEnd:
    session_id: str


@dataclass(frozen=True, slots=True)
class ToolCallStarted:
    """A ``tool_call`` announcement. ``None`` means the field was not sent.

    Defaults are filled in by the tracker when it creates the entry, so a
    repeated announcement never overwrites what an earlier one established.
    """

    session_id: str
    call_id: str
    tool_name: str | None = None
    title: str | None = None
    tool_kind: ToolKind | None = None
    status: ToolCallStatus | None = None
    raw_input: Any = None
    content: list[dict[str, Any]] | None = None
    output: Any = None


@dataclass(frozen=True, slots=True)
class ToolCallUpdated:
    """Partial tool call update. ``None`` means the field was not sent."""

    session_id: str
    call_id: str
    tool_name: str | None = None
    title: str | None = None
    tool_kind: ToolKind | None = None
    status: ToolCallStatus | None = None
    raw_input: Any = None
    content: list[dict[str, Any]] | None = None
    output: Any = None


@dataclass(frozen=True, slots=True)
class PlanUpdated:
    session_id: str
    items: tuple[PlanItem, ...]


@dataclass(frozen=True, slots=True)
class ModeUpdated:
    session_id: str
    mode_id: str


@dataclass(frozen=True, slots=True)
class CommandsUpdated:
    session_id: str
    commands: tuple[CommandOption, ...]


@dataclass(frozen=True, slots=True)
class AgentError:
    session_id: str
    message: str


@dataclass(frozen=True, slots=True)
class PermissionRequested:
    session_id: str
    request_id: str
    tool_name: str
    description: str
    options: tuple[PermissionChoice, ...]
    tool_call_id: str | None = None


@dataclass(frozen=True, slots=True)
class PermissionExpired:
    """The agent-side wait for a permission answer ran out."""

    session_id: str
    request_id: str


SessionEvent: TypeAlias = (
    MessageChunk
    | ThoughtChunk
    | UserMessageChunk
    | MessageEnd
    | ToolCallStarted
    | ToolCallUpdated
    | PlanUpdated
    | ModeUpdated
    | CommandsUpdated
    | AgentError
    | PermissionRequested
    | PermissionExpired
)
