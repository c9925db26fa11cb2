"""Session persistence storage.

Handles saving and loading session logs to/from YAML files in:
  $PROJECT/.acpsession/sessions/<session-id>.yaml

Session files contain:
- session_id: Unique identifier
- name: Human-readable name
- created_at: ISO timestamp
- updated_at: ISO timestamp
- project_path: Project the session belongs to
- entries: Entry records in sequence order (see ``entry_to_record``)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from acpsession.logging import get_logger
from acpsession.session.entries import Entry, entry_from_record, entry_to_record
from acpsession.session.registry import SessionInfo, SessionRegistry

log = get_logger("storage")


@dataclass
class SessionMetadata:
    """Lightweight session metadata for listing."""

    session_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    project_path: str
    entry_count: int


@dataclass
class SessionData:
    """Full session data for persistence."""

    session_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    project_path: str
    entries: list[dict[str, Any]]


def get_sessions_dir(project_path: str) -> Path:
    """Get the sessions directory for a project."""
    return Path(project_path) / ".acpsession" / "sessions"


def ensure_sessions_dir(project_path: str) -> Path:
    sessions_dir = get_sessions_dir(project_path)
    sessions_dir.mkdir(parents=True, exist_ok=True)
    return sessions_dir


def get_session_path(project_path: str, session_id: str) -> Path:
    return get_sessions_dir(project_path) / f"{session_id}.yaml"


def save_session(registry: SessionRegistry, session_id: str) -> Path:
    """Save a registered session to its project's sessions directory.

    Performs atomic write by writing to a temp file first.

    Returns:
        Path to the saved session file.

    Raises:
        UnknownSession: If the session is not registered.
        RuntimeError: If the file could not be written.
    """
    info = registry.get_session(session_id)
    entries = registry.get_entries(session_id)

    sessions_dir = ensure_sessions_dir(info.project_path)
    session_path = sessions_dir / f"{session_id}.yaml"
    temp_path = sessions_dir / f"{session_id}.yaml.tmp"

    data = {
        "session_id": session_id,
        "name": info.name,
        "created_at": datetime.fromtimestamp(info.created_at).isoformat(),
        "updated_at": datetime.fromtimestamp(info.updated_at).isoformat(),
        "project_path": info.project_path,
        "entries": [entry_to_record(e) for e in entries],
    }

    # Atomic write
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

        # On Windows, need to remove existing file before rename
        if session_path.exists():
            session_path.unlink()
        temp_path.rename(session_path)

        log.debug("Saved session %s (%d entries) to %s", session_id, len(entries), session_path)
        return session_path
    except (OSError, yaml.YAMLError) as e:
        if temp_path.exists():
            temp_path.unlink()
        raise RuntimeError(f"Failed to save session: {e}") from e


def _read_yaml(session_path: Path) -> dict[str, Any] | None:
    if not session_path.exists():
        return None
    try:
        with open(session_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        log.warning("Failed to read session file %s: %s", session_path, e)
        return None
    if not isinstance(data, dict) or "session_id" not in data:
        log.warning("Not a session file: %s", session_path)
        return None
    return data


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def load_session_metadata(session_path: Path) -> SessionMetadata | None:
    """Load just the metadata from a session file.

    Returns:
        SessionMetadata, or None if file doesn't exist or is invalid.
    """
    data = _read_yaml(session_path)
    if data is None:
        return None
    try:
        return SessionMetadata(
            session_id=str(data["session_id"]),
            name=data.get("name") or "Untitled",
            created_at=_timestamp(data["created_at"]),
            updated_at=_timestamp(data["updated_at"]),
            project_path=data.get("project_path", ""),
            entry_count=len(data.get("entries") or []),
        )
    except (KeyError, ValueError) as e:
        log.warning("Failed to load session metadata from %s: %s", session_path, e)
        return None


def load_session_data(session_path: Path) -> SessionData | None:
    """Load full session data from a YAML file.

    Returns:
        SessionData, or None if file doesn't exist or is invalid.
    """
    data = _read_yaml(session_path)
    if data is None:
        return None
    try:
        return SessionData(
            session_id=str(data["session_id"]),
            name=data.get("name") or "Untitled",
            created_at=_timestamp(data["created_at"]),
            updated_at=_timestamp(data["updated_at"]),
            project_path=data.get("project_path", ""),
            entries=list(data.get("entries") or []),
        )
    except (KeyError, ValueError) as e:
        log.warning("Failed to load session data from %s: %s", session_path, e)
        return None


def decode_entries(records: list[dict[str, Any]]) -> list[Entry]:
    """Rebuild entries from records, skipping (and logging) malformed ones."""
    entries: list[Entry] = []
    for record in records:
        try:
            entries.append(entry_from_record(record))
        except (ValueError, KeyError, TypeError) as e:
            log.warning("Skipping malformed entry record: %s", e)
    return entries


def restore_session(
    registry: SessionRegistry,
    project_path: str,
    session_id: str,
    *,
    baseline_mode: str | None = None,
) -> SessionInfo | None:
    """Load a saved session into the registry.

    Returns:
        The restored session's info, or None if no valid file exists.
    """
    data = load_session_data(get_session_path(project_path, session_id))
    if data is None:
        return None
    return registry.restore_session(
        data.session_id,
        data.project_path or project_path,
        decode_entries(data.entries),
        name=data.name,
        created_at=data.created_at.timestamp(),
        updated_at=data.updated_at.timestamp(),
        baseline_mode=baseline_mode,
    )


def list_sessions(project_path: str) -> list[SessionMetadata]:
    """List all saved sessions for a project, newest first."""
    sessions_dir = get_sessions_dir(project_path)
    if not sessions_dir.exists():
        return []

    sessions: list[SessionMetadata] = []
    for path in sessions_dir.glob("*.yaml"):
        metadata = load_session_metadata(path)
        if metadata:
            sessions.append(metadata)

    sessions.sort(key=lambda s: s.updated_at, reverse=True)
    return sessions


def delete_session(project_path: str, session_id: str) -> bool:
    """Delete a saved session file.

    Returns:
        True if a file was deleted.
    """
    session_path = get_session_path(project_path, session_id)
    if not session_path.exists():
        return False
    try:
        session_path.unlink()
        log.debug("Deleted session file %s", session_path)
        return True
    except OSError as e:
        log.warning("Failed to delete session %s: %s", session_id, e)
        return False
