"""
mcp-multi-client - One chat client, many MCP tool servers.

Spawns every tool server named in mcp-servers.json, merges their tools into
a single catalog, and lets a language model call any of them.

Architecture:
- Each server is a subprocess speaking JSON-RPC over stdin/stdout
- Servers are connected concurrently; broken ones are skipped
- Duplicate tool names: the last server to register wins (with a warning)
- Each query gets at most one round of tool calls, run in request order
- Nothing is remembered between queries
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from mcpmulti.core.session import Session
from mcpmulti.core.conversation import ConversationEngine
from mcpmulti.mcp.registry import ToolRegistry
from mcpmulti.mcp.dispatcher import Dispatcher

__all__ = [
    "Session",
    "ConversationEngine",
    "ToolRegistry",
    "Dispatcher",
    "__version__",
]
