"""acp-session: consistent per-session entry logs for ACP coding agents."""

__version__ = "0.1.0"

# Public API
from acpsession.client import AgentClient
from acpsession.commands import CommandDispatcher
from acpsession.config import Config, get_config, load_config
from acpsession.engine import EventProcessor, PermissionCorrelator, extract_new_content
from acpsession.errors import (
    DecodeError,
    PermissionTimeout,
    SessionEngineError,
    TransportError,
    UnknownCorrelation,
    UnknownSession,
)
from acpsession.session import (
    ChangeKind,
    Entry,
    EntryKind,
    RegistryChange,
    SessionRegistry,
    SessionStatus,
)
from acpsession.transport import AgentConnection, AgentTransport

__all__ = [
    # Main entry points
    "AgentClient",
    "CommandDispatcher",
    "SessionRegistry",
    # Engine
    "EventProcessor",
    "PermissionCorrelator",
    "extract_new_content",
    # Entries and changes
    "ChangeKind",
    "Entry",
    "EntryKind",
    "RegistryChange",
    "SessionStatus",
    # Transport
    "AgentConnection",
    "AgentTransport",
    # Config
    "Config",
    "get_config",
    "load_config",
    # Errors
    "DecodeError",
    "PermissionTimeout",
    "SessionEngineError",
    "TransportError",
    "UnknownCorrelation",
    "UnknownSession",
]
