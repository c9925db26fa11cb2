"""Transport layer: JSON-RPC over an agent's stdio."""

from acpsession.transport.base import AgentTransport
from acpsession.transport.connection import AgentConnection
from acpsession.transport.process import graceful_shutdown, spawn_agent
from acpsession.transport.stdio import JsonRpcMessage, StdioTransport

__all__ = [
    "AgentConnection",
    "AgentTransport",
    "JsonRpcMessage",
    "StdioTransport",
    "graceful_shutdown",
    "spawn_agent",
]
