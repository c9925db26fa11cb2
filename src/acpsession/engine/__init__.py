"""Session engine: decode agent notifications and fold them into entry logs."""

from acpsession.engine.decoder import (
    clean_tool_name,
    decode_notification,
    decode_permission_request,
    normalize_kind,
    normalize_status,
)
from acpsession.engine.events import SessionEvent
from acpsession.engine.merge import extract_new_content
from acpsession.engine.permissions import PermissionCorrelator
from acpsession.engine.processor import EventProcessor
from acpsession.engine.tools import ToolCallTracker

__all__ = [
    "EventProcessor",
    "PermissionCorrelator",
    "SessionEvent",
    "ToolCallTracker",
    "clean_tool_name",
    "decode_notification",
    "decode_permission_request",
    "extract_new_content",
    "normalize_kind",
    "normalize_status",
]
