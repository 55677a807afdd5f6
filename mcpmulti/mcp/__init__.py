"""
MCP client layer for mcp-multi-client.

Spawns stdio tool servers, merges their tool catalogs into one registry and
routes each tool call back to the server that owns it.

    config --> ConnectionManager --> ToolRegistry --> Dispatcher --> server
"""

from mcpmulti.mcp.schema import CapabilityDescriptor, CapabilityResult, SchemaNode
from mcpmulti.mcp.transport import MCPTransport, MCPTransportError
from mcpmulti.mcp.registry import Collision, ToolCollisionError, ToolRegistry
from mcpmulti.mcp.connection import (
    Connection,
    ConnectionManager,
    ConnectionState,
    NoServersConnectedError,
)
from mcpmulti.mcp.dispatcher import Dispatcher

__all__ = [
    "CapabilityDescriptor",
    "CapabilityResult",
    "SchemaNode",
    "MCPTransport",
    "MCPTransportError",
    "Collision",
    "ToolCollisionError",
    "ToolRegistry",
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    "NoServersConnectedError",
    "Dispatcher",
]
