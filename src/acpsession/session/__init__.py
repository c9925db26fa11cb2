"""Session state: typed entry logs owned by the registry."""

from acpsession.session.entries import (
    Entry,
    EntryKind,
    MessageEntry,
    MetaEntry,
    ModeChangeEntry,
    PermissionRequestEntry,
    PlanEntry,
    Role,
    SessionCapabilities,
    ThoughtEntry,
    ToolCallEntry,
    ToolCallStatus,
    ToolKind,
    entry_from_record,
    entry_to_record,
)
from acpsession.session.registry import (
    ChangeKind,
    RegistryChange,
    SessionInfo,
    SessionLog,
    SessionRegistry,
    SessionStatus,
)

__all__ = [
    "ChangeKind",
    "Entry",
    "EntryKind",
    "MessageEntry",
    "MetaEntry",
    "ModeChangeEntry",
    "PermissionRequestEntry",
    "PlanEntry",
    "RegistryChange",
    "Role",
    "SessionCapabilities",
    "SessionInfo",
    "SessionLog",
    "SessionRegistry",
    "SessionStatus",
    "ThoughtEntry",
    "ToolCallEntry",
    "ToolCallStatus",
    "ToolKind",
    "entry_from_record",
    "entry_to_record",
]
