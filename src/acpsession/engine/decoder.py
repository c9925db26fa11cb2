"""Decode raw ACP payloads into typed session events.

Decoding is pure: it validates a payload, normalizes loosely-typed fields
(status strings, tool kinds, namespaced tool names) and returns one event.
Anything that cannot be routed or understood raises ``DecodeError``; the
caller logs and drops it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from acpsession.engine.events import (
    AgentError,
    CommandsUpdated,
    MessageChunk,
    MessageEnd,
    ModeUpdated,
    PermissionRequested,
    PlanUpdated,
    SessionEvent,
    ThoughtChunk,
    ToolCallStarted,
    ToolCallUpdated,
    UserMessageChunk,
)
from acpsession.errors import DecodeError
from acpsession.session.entries import (
    CommandOption,
    PermissionChoice,
    PlanItem,
    PlanPriority,
    PlanStatus,
    ToolCallStatus,
    ToolKind,
)
from acpsession.types import (
    AvailableCommand,
    PlanItemPayload,
    RequestPermissionParams,
    SessionNotification,
    ToolCallPayload,
)

DEFAULT_TOOL_NAME = "Tool"

_STATUS_ALIASES = {
    "pending": ToolCallStatus.PENDING,
    "in_progress": ToolCallStatus.IN_PROGRESS,
    "inprogress": ToolCallStatus.IN_PROGRESS,
    "running": ToolCallStatus.IN_PROGRESS,
    "completed": ToolCallStatus.COMPLETED,
    "complete": ToolCallStatus.COMPLETED,
    "failed": ToolCallStatus.FAILED,
    "error": ToolCallStatus.FAILED,
}


def clean_tool_name(raw: str) -> str:
    """Strip internal namespacing: ``mcp__acp__Read`` -> ``Read``."""
    return raw.split("__")[-1] or raw


def normalize_status(raw: str | None) -> ToolCallStatus | None:
    """Map a raw status string to ToolCallStatus.

    Returns None when no status was sent; unrecognized strings map to pending.
    """
    if raw is None:
        return None
    key = raw.strip().lower().replace("-", "_").replace(" ", "_")
    return _STATUS_ALIASES.get(key, ToolCallStatus.PENDING)


def normalize_kind(raw: str | None) -> ToolKind | None:
    if raw is None:
        return None
    try:
        return ToolKind(raw.strip().lower())
    except ValueError:
        return ToolKind.OTHER


def _normalize_plan_item(item: PlanItemPayload) -> PlanItem:
    try:
        priority = PlanPriority((item.priority or "medium").lower())
    except ValueError:
        priority = PlanPriority.MEDIUM
    try:
        status = PlanStatus((item.status or "pending").lower())
    except ValueError:
        status = PlanStatus.PENDING
    return PlanItem(content=item.content, priority=priority, status=status)


def _meta_tool_name(meta: dict[str, Any] | None) -> str | None:
    if not meta:
        return None
    claude = meta.get("claudeCode")
    if isinstance(claude, dict):
        name = claude.get("toolName")
        if isinstance(name, str) and name:
            return clean_tool_name(name)
    return None


def content_text(blocks: list[dict[str, Any]] | None) -> str:
    """Join the text of tool call content blocks.

    Handles both wrapped blocks (``{"type": "content", "content": {...}}``)
    and bare text blocks. Diff and terminal blocks contribute nothing.
    """
    if not blocks:
        return ""
    parts: list[str] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "content" and isinstance(block.get("content"), dict):
            block = block["content"]
        if block.get("type") == "text" and isinstance(block.get("text"), str):
            parts.append(block["text"])
    return "\n".join(parts)


def _chunk_text(update: dict[str, Any]) -> str:
    content = update.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, dict) and content.get("type") == "text":
        text = content.get("text")
        return text if isinstance(text, str) else ""
    text = update.get("text")
    return text if isinstance(text, str) else ""


def _tool_output(payload: ToolCallPayload) -> Any:
    if payload.raw_output is not None:
        return payload.raw_output
    text = content_text(payload.content)
    return text or None


def _validate_tool_call(update: dict[str, Any]) -> ToolCallPayload:
    try:
        return ToolCallPayload.model_validate(update)
    except ValidationError as e:
        raise DecodeError(f"Invalid tool call payload: {e}", update) from e


# -----------------------------------------------------------------------------
# Per-discriminant decoders
# -----------------------------------------------------------------------------


def _decode_message_chunk(session_id: str, update: dict[str, Any]) -> SessionEvent:
    return MessageChunk(session_id, _chunk_text(update))


def _decode_thought_chunk(session_id: str, update: dict[str, Any]) -> SessionEvent:
    return ThoughtChunk(session_id, _chunk_text(update))


def _decode_user_chunk(session_id: str, update: dict[str, Any]) -> SessionEvent:
    return UserMessageChunk(session_id, _chunk_text(update))


def _decode_message_end(session_id: str, update: dict[str, Any]) -> SessionEvent:
    return MessageEnd(session_id)


def _decode_tool_call(session_id: str, update: dict[str, Any]) -> SessionEvent:
    payload = _validate_tool_call(update)
    return ToolCallStarted(
        session_id=session_id,
        call_id=payload.tool_call_id,
        tool_name=_meta_tool_name(payload.meta),
        title=payload.title or None,
        tool_kind=normalize_kind(payload.kind),
        status=normalize_status(payload.status),
        raw_input=payload.raw_input,
        content=payload.content,
        output=_tool_output(payload),
    )


def _decode_tool_call_update(session_id: str, update: dict[str, Any]) -> SessionEvent:
    payload = _validate_tool_call(update)
    return ToolCallUpdated(
        session_id=session_id,
        call_id=payload.tool_call_id,
        tool_name=_meta_tool_name(payload.meta),
        title=payload.title,
        tool_kind=normalize_kind(payload.kind),
        status=normalize_status(payload.status),
        raw_input=payload.raw_input,
        content=payload.content,
        output=_tool_output(payload),
    )


def _decode_plan(session_id: str, update: dict[str, Any]) -> SessionEvent:
    raw_items = update.get("entries")
    if raw_items is None:
        plan = update.get("plan")
        raw_items = plan.get("entries") if isinstance(plan, dict) else plan
    if not isinstance(raw_items, list):
        raise DecodeError("Plan update without entries", update)
    try:
        items = tuple(
            _normalize_plan_item(PlanItemPayload.model_validate(i)) for i in raw_items
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid plan entry: {e}", update) from e
    return PlanUpdated(session_id, items)


def _decode_mode(session_id: str, update: dict[str, Any]) -> SessionEvent:
    mode_id = update.get("currentModeId") or update.get("modeId")
    if not isinstance(mode_id, str) or not mode_id:
        raise DecodeError("Mode update without currentModeId", update)
    return ModeUpdated(session_id, mode_id)


def _decode_commands(session_id: str, update: dict[str, Any]) -> SessionEvent:
    raw = update.get("availableCommands")
    if not isinstance(raw, list):
        raise DecodeError("Commands update without availableCommands", update)
    try:
        parsed = [AvailableCommand.model_validate(c) for c in raw]
    except ValidationError as e:
        raise DecodeError(f"Invalid command: {e}", update) from e
    commands = tuple(
        CommandOption(
            name=c.name,
            description=c.description,
            hint=c.input.hint if c.input else None,
        )
        for c in parsed
    )
    return CommandsUpdated(session_id, commands)


def _decode_error(session_id: str, update: dict[str, Any]) -> SessionEvent:
    error = update.get("error")
    if isinstance(error, dict):
        message = str(error.get("message") or error)
    elif error:
        message = str(error)
    else:
        message = "Unknown error"
    return AgentError(session_id, message)


_DECODERS: dict[str, Callable[[str, dict[str, Any]], SessionEvent]] = {
    "agent_message_chunk": _decode_message_chunk,
    "agent_thought_chunk": _decode_thought_chunk,
    "user_message_chunk": _decode_user_chunk,
    "agent_message_end": _decode_message_end,
    "tool_call": _decode_tool_call,
    "tool_call_update": _decode_tool_call_update,
    "plan": _decode_plan,
    "current_mode_update": _decode_mode,
    "available_commands_update": _decode_commands,
    "error": _decode_error,
}


def decode_notification(params: Any) -> SessionEvent:
    """Decode the params of one ``session/update`` notification.

    Raises:
        DecodeError: If the payload has no session id, no update, or an
            unknown ``sessionUpdate`` discriminant.
    """
    if not isinstance(params, dict):
        raise DecodeError("Notification params must be an object", params)

    # Some bridges emit snake_case ids
    if "sessionId" not in params and "session_id" in params:
        params = {**params, "sessionId": params["session_id"]}

    try:
        notification = SessionNotification.model_validate(params)
    except ValidationError as e:
        raise DecodeError(f"Unroutable notification: {e}", params) from e

    update = notification.update
    discriminant = update.get("sessionUpdate")
    decoder = _DECODERS.get(discriminant) if isinstance(discriminant, str) else None
    if decoder is None:
        raise DecodeError(f"Unknown session update: {discriminant!r}", params)
    return decoder(notification.session_id, update)


def decode_permission_request(params: Any, request_id: str) -> PermissionRequested:
    """Decode the params of a ``session/request_permission`` request.

    Args:
        params: Raw JSON-RPC params.
        request_id: Correlation id assigned by the client for this request.
    """
    if not isinstance(params, dict):
        raise DecodeError("Permission request params must be an object", params)
    try:
        request = RequestPermissionParams.model_validate(params)
    except ValidationError as e:
        raise DecodeError(f"Invalid permission request: {e}", params) from e

    tool_call = request.tool_call
    tool_name = (
        _meta_tool_name(tool_call.meta) or tool_call.title or DEFAULT_TOOL_NAME
    )
    description = (
        content_text(tool_call.content) or tool_call.title or f"Tool: {tool_call.tool_call_id}"
    )
    options = tuple(
        PermissionChoice(option_id=o.option_id, label=o.name, kind=o.kind)
        for o in request.options
    )
    return PermissionRequested(
        session_id=request.session_id,
        request_id=request_id,
        tool_name=tool_name,
        description=description,
        options=options,
        tool_call_id=tool_call.tool_call_id,
    )
