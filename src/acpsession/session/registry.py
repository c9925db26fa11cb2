"""Session registry: the authoritative per-session entry logs.

Every mutation of a session's log goes through the registry. Each session
owns a re-entrant lock; ``transaction()`` holds it for the duration of a
read-modify-write so that two trackers (or a tracker and a user command)
can never interleave on the same log. Sessions are independent: the
registry-wide lock only guards the session map itself and is never held
while a log is being mutated.

Readers get deep-copied snapshots. Subscribers are notified after the
session lock has been released, with snapshots of what changed, so a
partially applied mutation is never observable.
"""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from acpsession.errors import UnknownCorrelation, UnknownSession
from acpsession.logging import get_logger
from acpsession.session.entries import (
    CORRELATION_FIELDS,
    Entry,
    EntryKind,
    MetaEntry,
    ModeChangeEntry,
    PermissionRequestEntry,
    SessionCapabilities,
)

log = get_logger("registry")

_IMMUTABLE_FIELDS = frozenset({"seq", "created_at"})


class SessionStatus(str, Enum):
    """Connection/prompt status surfaced to consumers."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    READY = "ready"
    PROMPTING = "prompting"
    ERROR = "error"


class ChangeKind(Enum):
    SESSION_CREATED = "session_created"
    SESSION_DELETED = "session_deleted"
    ENTRY_APPENDED = "entry_appended"
    ENTRY_UPDATED = "entry_updated"
    STATUS_CHANGED = "status_changed"
    PERMISSION_CHANGED = "permission_changed"
    CAPABILITIES_CHANGED = "capabilities_changed"


@dataclass(frozen=True, slots=True)
class RegistryChange:
    """Notification delivered to subscribers after a mutation completes."""

    kind: ChangeKind
    session_id: str
    entry: Entry | None = None
    status: SessionStatus | None = None
    pending_request_id: str | None = None


Listener = Callable[[RegistryChange], None]


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Snapshot of session metadata (no entries)."""

    id: str
    name: str
    project_path: str
    status: SessionStatus
    created_at: float
    updated_at: float
    entry_count: int
    last_error: str | None = None


@dataclass
class _Session:
    id: str
    name: str
    project_path: str
    created_at: float
    updated_at: float
    status: SessionStatus = SessionStatus.READY
    last_error: str | None = None
    entries: list[Entry] = field(default_factory=list)
    capabilities: SessionCapabilities | None = None
    pending_request_id: str | None = None
    next_seq: int = 1
    tail_sealed: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock)

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            name=self.name,
            project_path=self.project_path,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            entry_count=len(self.entries),
            last_error=self.last_error,
        )


class SessionLog:
    """Mutable view of one session, valid only inside ``transaction()``.

    Trackers read and write the log through this object; every change it
    makes is recorded and published once the transaction ends.
    """

    def __init__(self, session: _Session, changes: list[RegistryChange]) -> None:
        self._session = session
        self._changes = changes

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def entries(self) -> Sequence[Entry]:
        return tuple(self._session.entries)

    def last(self) -> Entry | None:
        """The tail entry, the only one eligible for streaming continuation."""
        entries = self._session.entries
        return entries[-1] if entries else None

    @property
    def tail_sealed(self) -> bool:
        """True once the tail's text stream has been closed by a turn boundary."""
        return self._session.tail_sealed

    def seal_tail(self) -> None:
        self._session.tail_sealed = True

    def append(self, entry: Entry) -> Entry:
        """Assign the next sequence id and append ``entry`` to the log."""
        session = self._session
        entry.seq = session.next_seq
        session.next_seq += 1
        session.entries.append(entry)
        session.tail_sealed = False
        session.updated_at = time.time()
        self._changes.append(
            RegistryChange(ChangeKind.ENTRY_APPENDED, session.id, entry=copy.deepcopy(entry))
        )
        return entry

    def touch(self, entry: Entry) -> None:
        """Record an in-place mutation of ``entry``."""
        now = time.time()
        entry.updated_at = now
        self._session.updated_at = now
        self._changes.append(
            RegistryChange(ChangeKind.ENTRY_UPDATED, self._session.id, entry=copy.deepcopy(entry))
        )

    def find_by_seq(self, seq: int) -> Entry | None:
        for entry in self._session.entries:
            if entry.seq == seq:
                return entry
        return None

    def find(self, kind: EntryKind, key: str) -> Entry | None:
        """Locate an entry by correlation id, scanning the whole log."""
        field_name = CORRELATION_FIELDS.get(kind)
        if field_name is None:
            raise ValueError(f"{kind.value} entries have no correlation key")
        for entry in reversed(self._session.entries):
            if entry.kind is kind and getattr(entry, field_name) == key:
                return entry
        return None

    @property
    def capabilities(self) -> SessionCapabilities | None:
        return self._session.capabilities

    def set_capabilities(self, capabilities: SessionCapabilities) -> None:
        self._session.capabilities = capabilities
        self._changes.append(RegistryChange(ChangeKind.CAPABILITIES_CHANGED, self._session.id))

    @property
    def pending_request_id(self) -> str | None:
        return self._session.pending_request_id

    def set_pending(self, request_id: str | None) -> None:
        if self._session.pending_request_id == request_id:
            return
        self._session.pending_request_id = request_id
        self._changes.append(
            RegistryChange(
                ChangeKind.PERMISSION_CHANGED,
                self._session.id,
                pending_request_id=request_id,
            )
        )

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    def set_status(self, status: SessionStatus, error: str | None = None) -> None:
        session = self._session
        if status is SessionStatus.ERROR:
            session.last_error = error
        if session.status is status:
            return
        session.status = status
        self._changes.append(RegistryChange(ChangeKind.STATUS_CHANGED, session.id, status=status))


def apply_patch(entry: Entry, patch: dict[str, Any]) -> bool:
    """Set the fields named in ``patch`` on ``entry``.

    Correlation ids, sequence ids and creation times cannot be patched.

    Returns:
        True if any field actually changed.

    Raises:
        ValueError: If the patch names a field the entry does not have.
    """
    known = {f.name for f in fields(entry)}
    locked = _IMMUTABLE_FIELDS | {CORRELATION_FIELDS.get(entry.kind, "")}
    changed = False
    for name, value in patch.items():
        if name not in known:
            raise ValueError(f"{entry.kind.value} entries have no field {name!r}")
        if name in locked:
            raise ValueError(f"Field {name!r} cannot be patched")
        if getattr(entry, name) != value:
            setattr(entry, name, value)
            changed = True
    return changed


class SessionRegistry:
    """Owns all sessions and their entry logs."""

    def __init__(self) -> None:
        self._sessions: dict[str, _Session] = {}
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    # --- Subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, changes: list[RegistryChange]) -> None:
        for change in changes:
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception as e:
                    log.warning("Registry listener error on %s: %s", change.kind.value, e)

    # --- Session lifecycle ---

    def _get(self, session_id: str) -> _Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create_session(
        self,
        session_id: str,
        project_path: str,
        *,
        name: str | None = None,
        status: SessionStatus = SessionStatus.READY,
    ) -> SessionInfo:
        """Create an empty session.

        Raises:
            ValueError: If a session with this id already exists.
        """
        now = time.time()
        session = _Session(
            id=session_id,
            name=name or "New Chat",
            project_path=project_path,
            created_at=now,
            updated_at=now,
            status=status,
        )
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")
            self._sessions[session_id] = session
        log.debug("Created session %s for %s", session_id, project_path)
        self._publish([RegistryChange(ChangeKind.SESSION_CREATED, session_id)])
        return session.info()

    def restore_session(
        self,
        session_id: str,
        project_path: str,
        entries: Sequence[Entry],
        *,
        name: str | None = None,
        created_at: float | None = None,
        updated_at: float | None = None,
        baseline_mode: str | None = None,
    ) -> SessionInfo:
        """Recreate a session from persisted entries.

        Sequence numbering continues after the highest restored id, the
        capabilities cache is rebuilt from the last Meta entry and any later
        mode changes, and the tail stream is sealed so the next agent turn
        starts a new entry.
        """
        ordered = sorted((copy.deepcopy(e) for e in entries), key=lambda e: e.seq)
        capabilities: SessionCapabilities | None = None
        for entry in ordered:
            if isinstance(entry, MetaEntry):
                capabilities = SessionCapabilities.from_meta(entry)
            elif isinstance(entry, ModeChangeEntry):
                if capabilities is None:
                    capabilities = SessionCapabilities(current_mode_id=baseline_mode)
                capabilities.current_mode_id = entry.new_mode_id

        now = time.time()
        session = _Session(
            id=session_id,
            name=name or "New Chat",
            project_path=project_path,
            created_at=created_at or now,
            updated_at=updated_at or now,
            status=SessionStatus.DISCONNECTED,
            entries=ordered,
            capabilities=capabilities,
            next_seq=(ordered[-1].seq + 1) if ordered else 1,
            tail_sealed=True,
        )
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")
            self._sessions[session_id] = session
        log.debug("Restored session %s with %d entries", session_id, len(ordered))
        self._publish([RegistryChange(ChangeKind.SESSION_CREATED, session_id)])
        return session.info()

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise UnknownSession(session_id)
        log.debug("Deleted session %s", session_id)
        self._publish([RegistryChange(ChangeKind.SESSION_DELETED, session_id)])

    def rename_session(self, session_id: str, name: str) -> None:
        session = self._get(session_id)
        with session.lock:
            session.name = name
            session.updated_at = time.time()

    def list_sessions(self) -> list[SessionInfo]:
        """Snapshot of all sessions, most recently updated first."""
        with self._lock:
            sessions = list(self._sessions.values())
        infos = []
        for session in sessions:
            with session.lock:
                infos.append(session.info())
        infos.sort(key=lambda s: s.updated_at, reverse=True)
        return infos

    # --- Mutation ---

    @contextmanager
    def transaction(self, session_id: str) -> Iterator[SessionLog]:
        """Hold the session's lock and yield a mutable view of its log.

        Changes are published after the lock is released, even when the
        body raises (whatever was applied before the error stays applied).
        """
        session = self._get(session_id)
        changes: list[RegistryChange] = []
        try:
            with session.lock:
                yield SessionLog(session, changes)
        finally:
            if changes:
                self._publish(changes)

    def append_entry(self, session_id: str, entry: Entry) -> Entry:
        """Append ``entry`` and return a snapshot carrying its sequence id."""
        with self.transaction(session_id) as slog:
            slog.append(entry)
            return copy.deepcopy(entry)

    def update_entry_by_id(self, session_id: str, seq: int, patch: dict[str, Any]) -> Entry:
        """Patch the entry with sequence id ``seq``.

        Raises:
            UnknownCorrelation: If no entry has that sequence id.
        """
        with self.transaction(session_id) as slog:
            entry = slog.find_by_seq(seq)
            if entry is None:
                raise UnknownCorrelation(session_id, "entry", str(seq))
            if apply_patch(entry, patch):
                slog.touch(entry)
            return copy.deepcopy(entry)

    def update_entry_by_correlation_key(
        self,
        session_id: str,
        kind: EntryKind,
        key: str,
        patch: dict[str, Any],
    ) -> Entry:
        """Patch the ToolCall or PermissionRequest entry with correlation id ``key``.

        Never creates an entry.

        Raises:
            UnknownCorrelation: If no entry of ``kind`` has that id.
        """
        with self.transaction(session_id) as slog:
            entry = slog.find(kind, key)
            if entry is None:
                raise UnknownCorrelation(session_id, kind.value, key)
            if apply_patch(entry, patch):
                slog.touch(entry)
            return copy.deepcopy(entry)

    def update_entry_by_tool_call_id(
        self, session_id: str, call_id: str, patch: dict[str, Any]
    ) -> Entry:
        return self.update_entry_by_correlation_key(session_id, EntryKind.TOOL_CALL, call_id, patch)

    def update_entry_by_request_id(
        self, session_id: str, request_id: str, patch: dict[str, Any]
    ) -> Entry:
        return self.update_entry_by_correlation_key(
            session_id, EntryKind.PERMISSION_REQUEST, request_id, patch
        )

    def set_status(
        self, session_id: str, status: SessionStatus, error: str | None = None
    ) -> None:
        with self.transaction(session_id) as slog:
            slog.set_status(status, error)

    def seal_stream(self, session_id: str) -> None:
        """Close the tail's text stream (end of an agent turn)."""
        with self.transaction(session_id) as slog:
            slog.seal_tail()

    # --- Reads ---

    def get_entries(self, session_id: str) -> list[Entry]:
        """Atomic snapshot of the session's log."""
        session = self._get(session_id)
        with session.lock:
            return copy.deepcopy(session.entries)

    def get_session(self, session_id: str) -> SessionInfo:
        session = self._get(session_id)
        with session.lock:
            return session.info()

    def get_status(self, session_id: str) -> SessionStatus:
        session = self._get(session_id)
        with session.lock:
            return session.status

    def get_capabilities(self, session_id: str) -> SessionCapabilities | None:
        session = self._get(session_id)
        with session.lock:
            return copy.deepcopy(session.capabilities)

    def get_pending_permission(self, session_id: str) -> PermissionRequestEntry | None:
        """The active unanswered permission request, if any."""
        session = self._get(session_id)
        with session.lock:
            request_id = session.pending_request_id
            if request_id is None:
                return None
            for entry in reversed(session.entries):
                if isinstance(entry, PermissionRequestEntry) and entry.request_id == request_id:
                    return copy.deepcopy(entry)
            return None
