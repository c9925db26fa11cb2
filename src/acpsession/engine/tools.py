"""Tool call lifecycle tracking.

A tool call is created once by ``tool_call`` and then refined by any number
of ``tool_call_update`` events carrying the same ``callId``. Updates merge
into the existing entry wherever it sits in the log; an update for a call
that was never created is an error, never a new entry.
"""

from __future__ import annotations

from typing import Any

from acpsession.config import ToolOutputConfig
from acpsession.engine.decoder import DEFAULT_TOOL_NAME, clean_tool_name
from acpsession.engine.events import ToolCallStarted, ToolCallUpdated
from acpsession.errors import UnknownCorrelation
from acpsession.logging import get_logger
from acpsession.session.entries import EntryKind, ToolCallEntry, ToolCallStatus, ToolKind
from acpsession.session.registry import SessionLog, apply_patch

log = get_logger("tools")


class ToolCallTracker:
    """Applies tool call events to a session log."""

    def __init__(self, output_config: ToolOutputConfig | None = None) -> None:
        self._output = output_config or ToolOutputConfig()

    def storable_output(self, tool_name: str, output: Any) -> Any:
        """Return ``output`` if it may be stored for ``tool_name``, else None.

        Text is kept only when shorter than the tool's limit. Structured
        output is measured by its string form.
        """
        if output is None:
            return None
        limit = self._output.limit_for(tool_name)
        size = len(output) if isinstance(output, str) else len(str(output))
        if size >= limit:
            log.debug("Not storing %d chars of %s output (limit %d)", size, tool_name, limit)
            return None
        return output

    def start(self, slog: SessionLog, event: ToolCallStarted) -> ToolCallEntry:
        """Create the entry for a ``tool_call``.

        A repeated ``tool_call`` for a known id is merged as an update, so
        only the fields it actually carries are applied.
        """
        existing = slog.find(EntryKind.TOOL_CALL, event.call_id)
        if existing is not None:
            log.debug("Duplicate tool_call %s treated as update", event.call_id)
            return self.update(
                slog,
                ToolCallUpdated(
                    session_id=event.session_id,
                    call_id=event.call_id,
                    tool_name=event.tool_name,
                    title=event.title,
                    tool_kind=event.tool_kind,
                    status=event.status,
                    raw_input=event.raw_input,
                    content=event.content,
                    output=event.output,
                ),
            )

        tool_name = event.tool_name or clean_tool_name(event.call_id) or DEFAULT_TOOL_NAME
        entry = ToolCallEntry(
            call_id=event.call_id,
            tool_name=tool_name,
            tool_kind=event.tool_kind or ToolKind.OTHER,
            status=event.status or ToolCallStatus.PENDING,
            title=event.title or tool_name,
            raw_input=event.raw_input,
            content=event.content,
            output=self.storable_output(tool_name, event.output),
        )
        slog.append(entry)
        log.debug("Tool call %s started: %s", event.call_id, entry.tool_name)
        return entry

    def update(self, slog: SessionLog, event: ToolCallUpdated) -> ToolCallEntry:
        """Merge the provided fields of ``event`` into the existing entry.

        Status only moves forward; a completed or failed call keeps its
        final status.

        Raises:
            UnknownCorrelation: If no ToolCall entry has ``event.call_id``.
        """
        entry = slog.find(EntryKind.TOOL_CALL, event.call_id)
        if not isinstance(entry, ToolCallEntry):
            raise UnknownCorrelation(slog.session_id, EntryKind.TOOL_CALL.value, event.call_id)

        patch: dict[str, Any] = {}
        if event.tool_name is not None:
            patch["tool_name"] = event.tool_name
        if event.title:
            patch["title"] = event.title
        if event.tool_kind is not None:
            patch["tool_kind"] = event.tool_kind
        if event.raw_input is not None:
            patch["raw_input"] = event.raw_input
        if event.content is not None:
            patch["content"] = event.content
        if event.status is not None:
            if entry.status.can_advance_to(event.status):
                patch["status"] = event.status
            else:
                log.info(
                    "Ignoring %s for tool call %s already %s",
                    event.status.value,
                    event.call_id,
                    entry.status.value,
                )
        if event.output is not None:
            output = self.storable_output(patch.get("tool_name", entry.tool_name), event.output)
            if output is not None:
                patch["output"] = output

        if patch and apply_patch(entry, patch):
            slog.touch(entry)
            if "status" in patch:
                log.debug("Tool call %s -> %s", event.call_id, entry.status.value)
        return entry
