"""Mode, plan and command tracking.

Plans are appended as history. Mode updates only produce an entry when the
mode actually changes. Command lists live in the capabilities cache only.
"""

from __future__ import annotations

from acpsession.engine.events import CommandsUpdated, ModeUpdated, PlanUpdated
from acpsession.logging import get_logger
from acpsession.session.entries import (
    MetaEntry,
    ModeChangeEntry,
    ModelOption,
    ModeOption,
    PlanEntry,
    SessionCapabilities,
)
from acpsession.session.registry import SessionLog
from acpsession.types import NewSessionResponse

log = get_logger("modes")


def _capabilities(slog: SessionLog, baseline_mode: str) -> SessionCapabilities:
    return slog.capabilities or SessionCapabilities(current_mode_id=baseline_mode)


def apply_plan(slog: SessionLog, event: PlanUpdated) -> PlanEntry:
    entry = PlanEntry(items=list(event.items))
    slog.append(entry)
    return entry


def apply_mode(
    slog: SessionLog, event: ModeUpdated, *, baseline_mode: str = "default"
) -> ModeChangeEntry | None:
    """Append a ModeChange if ``event.mode_id`` differs from the current mode.

    Returns:
        The new entry, or None when the mode is unchanged.
    """
    capabilities = _capabilities(slog, baseline_mode)
    previous = capabilities.current_mode_id or baseline_mode
    if event.mode_id == previous:
        log.debug("Mode %s unchanged in %s", previous, slog.session_id)
        return None

    entry = ModeChangeEntry(previous_mode_id=previous, new_mode_id=event.mode_id)
    slog.append(entry)
    capabilities.current_mode_id = event.mode_id
    slog.set_capabilities(capabilities)
    log.info("Mode %s -> %s in %s", previous, event.mode_id, slog.session_id)
    return entry


def apply_commands(
    slog: SessionLog, event: CommandsUpdated, *, baseline_mode: str = "default"
) -> None:
    capabilities = _capabilities(slog, baseline_mode)
    capabilities.available_commands = list(event.commands)
    slog.set_capabilities(capabilities)
    log.debug("%d commands available in %s", len(event.commands), slog.session_id)


def meta_from_response(response: NewSessionResponse, *, baseline_mode: str = "default") -> MetaEntry:
    """Build the Meta entry describing a freshly created or resumed session."""
    modes: list[ModeOption] = []
    current_mode = baseline_mode
    if response.modes:
        modes = [
            ModeOption(id=m.id, name=m.name, description=m.description)
            for m in response.modes.available_modes
        ]
        current_mode = response.modes.current_mode_id or baseline_mode

    models: list[ModelOption] = []
    current_model = None
    if response.models:
        models = [
            ModelOption(model_id=m.model_id, name=m.name, description=m.description)
            for m in response.models.available_models
        ]
        current_model = response.models.current_model_id

    return MetaEntry(
        available_modes=modes,
        available_models=models,
        current_mode_id=current_mode,
        current_model_id=current_model,
    )


def apply_meta(slog: SessionLog, meta: MetaEntry) -> MetaEntry:
    """Append a Meta entry and reset the capabilities cache from it.

    Commands already advertised for the session are carried over, since the
    agent announces them separately.
    """
    previous = slog.capabilities
    if previous and not meta.available_commands:
        meta.available_commands = list(previous.available_commands)
    slog.append(meta)
    slog.set_capabilities(SessionCapabilities.from_meta(meta))
    return meta
