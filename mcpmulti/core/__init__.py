"""
mcp-multi-client core module.

Provides the per-query conversation protocol and the session that owns
connections, registry and dispatcher for the process lifetime.
"""

from mcpmulti.core.conversation import ConversationEngine, QueryPhase
from mcpmulti.core.session import Session

__all__ = ["ConversationEngine", "QueryPhase", "Session"]
