"""Conversation entry model.

A session's log is an ordered list of entries. Each entry variant is a
dataclass with a fixed ``kind`` discriminator; ``Entry`` is the closed union
of all variants. Entries carry a per-session sequence id assigned by the
registry when they are appended, so ordering never depends on clock
resolution.

Entries serialize to flat, storage-neutral records (``entry_to_record``)
that keep the kind, sequence id, timestamps and correlation ids, and can be
rebuilt with ``entry_from_record``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, TypeAlias


class EntryKind(str, Enum):
    """Entry type discriminator."""

    MESSAGE = "message"
    THOUGHT = "thought"
    TOOL_CALL = "tool_call"
    PERMISSION_REQUEST = "permission_request"
    PLAN = "plan"
    MODE_CHANGE = "mode_change"
    META = "meta"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ToolCallStatus(str, Enum):
    """Tool call lifecycle: pending -> in_progress -> completed | failed."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolCallStatus.COMPLETED, ToolCallStatus.FAILED)

    def can_advance_to(self, other: ToolCallStatus) -> bool:
        """True if moving from this status to ``other`` keeps the lifecycle forward."""
        if self.is_terminal:
            return other is self
        return _STATUS_RANK[other] >= _STATUS_RANK[self]


_STATUS_RANK = {
    ToolCallStatus.PENDING: 0,
    ToolCallStatus.IN_PROGRESS: 1,
    ToolCallStatus.COMPLETED: 2,
    ToolCallStatus.FAILED: 2,
}


class ToolKind(str, Enum):
    """Tool category, used by UIs to pick icons."""

    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    EXECUTE = "execute"
    THINK = "think"
    FETCH = "fetch"
    SWITCH_MODE = "switch_mode"
    OTHER = "other"


class PlanPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PlanStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# -----------------------------------------------------------------------------
# Value types nested inside entries
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class PlanItem:
    content: str
    priority: PlanPriority = PlanPriority.MEDIUM
    status: PlanStatus = PlanStatus.PENDING


@dataclass(slots=True)
class PermissionChoice:
    """One answer the user may give to a permission request."""

    option_id: str
    label: str
    kind: str = "allow_once"


@dataclass(slots=True)
class ModeOption:
    id: str
    name: str
    description: str | None = None


@dataclass(slots=True)
class ModelOption:
    model_id: str
    name: str
    description: str | None = None


@dataclass(slots=True)
class CommandOption:
    name: str
    description: str = ""
    hint: str | None = None


# -----------------------------------------------------------------------------
# Entries
# -----------------------------------------------------------------------------


@dataclass(kw_only=True, slots=True)
class BaseEntry:
    """Fields common to every entry.

    ``seq`` is 0 until the registry appends the entry.
    """

    kind: ClassVar[EntryKind]

    seq: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float | None = None


@dataclass(kw_only=True, slots=True)
class MessageEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.MESSAGE

    role: Role
    text: str = ""


@dataclass(kw_only=True, slots=True)
class ThoughtEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.THOUGHT

    text: str = ""


@dataclass(kw_only=True, slots=True)
class ToolCallEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.TOOL_CALL

    call_id: str
    tool_name: str
    tool_kind: ToolKind = ToolKind.OTHER
    status: ToolCallStatus = ToolCallStatus.PENDING
    title: str = ""
    raw_input: Any = None
    content: list[dict[str, Any]] | None = None
    output: Any = None


@dataclass(kw_only=True, slots=True)
class PermissionRequestEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.PERMISSION_REQUEST

    request_id: str
    tool_name: str
    description: str = ""
    options: list[PermissionChoice] = field(default_factory=list)
    tool_call_id: str | None = None
    response_option: str | None = None
    response_time: float | None = None

    @property
    def answered(self) -> bool:
        return self.response_option is not None


@dataclass(kw_only=True, slots=True)
class PlanEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.PLAN

    items: list[PlanItem] = field(default_factory=list)


@dataclass(kw_only=True, slots=True)
class ModeChangeEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.MODE_CHANGE

    previous_mode_id: str
    new_mode_id: str


@dataclass(kw_only=True, slots=True)
class MetaEntry(BaseEntry):
    kind: ClassVar[EntryKind] = EntryKind.META

    available_modes: list[ModeOption] = field(default_factory=list)
    available_models: list[ModelOption] = field(default_factory=list)
    available_commands: list[CommandOption] = field(default_factory=list)
    current_mode_id: str = ""
    current_model_id: str | None = None


Entry: TypeAlias = (
    MessageEntry
    | ThoughtEntry
    | ToolCallEntry
    | PermissionRequestEntry
    | PlanEntry
    | ModeChangeEntry
    | MetaEntry
)

ENTRY_TYPES: dict[EntryKind, type[BaseEntry]] = {
    EntryKind.MESSAGE: MessageEntry,
    EntryKind.THOUGHT: ThoughtEntry,
    EntryKind.TOOL_CALL: ToolCallEntry,
    EntryKind.PERMISSION_REQUEST: PermissionRequestEntry,
    EntryKind.PLAN: PlanEntry,
    EntryKind.MODE_CHANGE: ModeChangeEntry,
    EntryKind.META: MetaEntry,
}

# Field holding the correlation id, for kinds that are updated by id
CORRELATION_FIELDS: dict[EntryKind, str] = {
    EntryKind.TOOL_CALL: "call_id",
    EntryKind.PERMISSION_REQUEST: "request_id",
}


@dataclass(slots=True)
class SessionCapabilities:
    """Last-known Meta fields, kept current by mode and command updates."""

    available_modes: list[ModeOption] = field(default_factory=list)
    available_models: list[ModelOption] = field(default_factory=list)
    available_commands: list[CommandOption] = field(default_factory=list)
    current_mode_id: str | None = None
    current_model_id: str | None = None

    @classmethod
    def from_meta(cls, meta: MetaEntry) -> SessionCapabilities:
        return cls(
            available_modes=list(meta.available_modes),
            available_models=list(meta.available_models),
            available_commands=list(meta.available_commands),
            current_mode_id=meta.current_mode_id or None,
            current_model_id=meta.current_model_id,
        )


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def _plain(value: Any) -> Any:
    """Convert enums and nested value dataclasses to plain data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if hasattr(value, "__dataclass_fields__"):
        return {f.name: _plain(getattr(value, f.name)) for f in fields(value)}
    return value


def entry_to_record(entry: Entry) -> dict[str, Any]:
    """Serialize an entry to a flat record with a ``kind`` field."""
    record: dict[str, Any] = {"kind": entry.kind.value}
    for f in fields(entry):
        record[f.name] = _plain(getattr(entry, f.name))
    return record


def entry_from_record(record: dict[str, Any]) -> Entry:
    """Rebuild an entry from a record produced by ``entry_to_record``.

    Raises:
        ValueError: If the record's kind is unknown or a field is malformed.
    """
    data = dict(record)
    try:
        kind = EntryKind(data.pop("kind"))
    except (KeyError, ValueError) as e:
        raise ValueError(f"Invalid entry kind in record: {record.get('kind')!r}") from e

    if kind is EntryKind.MESSAGE:
        data["role"] = Role(data["role"])
    elif kind is EntryKind.TOOL_CALL:
        data["tool_kind"] = ToolKind(data.get("tool_kind", ToolKind.OTHER.value))
        data["status"] = ToolCallStatus(data.get("status", ToolCallStatus.PENDING.value))
    elif kind is EntryKind.PERMISSION_REQUEST:
        data["options"] = [PermissionChoice(**o) for o in data.get("options") or []]
    elif kind is EntryKind.PLAN:
        data["items"] = [
            PlanItem(
                content=i["content"],
                priority=PlanPriority(i.get("priority", "medium")),
                status=PlanStatus(i.get("status", "pending")),
            )
            for i in data.get("items") or []
        ]
    elif kind is EntryKind.META:
        data["available_modes"] = [ModeOption(**m) for m in data.get("available_modes") or []]
        data["available_models"] = [
            ModelOption(**m) for m in data.get("available_models") or []
        ]
        data["available_commands"] = [
            CommandOption(**c) for c in data.get("available_commands") or []
        ]

    entry_type = ENTRY_TYPES[kind]
    known = {f.name for f in fields(entry_type)}
    try:
        return entry_type(**{k: v for k, v in data.items() if k in known})  # type: ignore[return-value]
    except TypeError as e:
        raise ValueError(f"Malformed {kind.value} record: {e}") from e
