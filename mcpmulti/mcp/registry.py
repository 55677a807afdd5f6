"""Tool registry - merges every server's catalog into one name space."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from mcpmulti.mcp.schema import CapabilityDescriptor

logger = logging.getLogger(__name__)


class ToolCollisionError(Exception):
    """Raised in strict mode when two servers advertise the same tool name."""


@dataclass(frozen=True)
class Collision:
    """Record of one tool name taken over by another server."""

    tool_name: str
    previous_server: str
    new_server: str


class ToolRegistry:
    """
    Global mapping from tool name to owning server.

    The most recent registration of a name always wins. When the previous
    owner was a different server a warning is logged and a ``Collision`` is
    recorded; with ``strict=True`` that case raises ``ToolCollisionError``
    instead and the existing owner is kept.

    ``snapshot()`` lists each name once, in registration order, at the
    position of its latest registration.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._tools: Dict[str, CapabilityDescriptor] = {}
        self._owners: Dict[str, str] = {}
        self.collisions: List[Collision] = []
        self._lock = threading.Lock()

    # ── Registration ──────────────────────────────────────────────────────

    def register(self, server_name: str, descriptor: CapabilityDescriptor) -> None:
        """Insert or overwrite the owner of ``descriptor.name``."""
        name = descriptor.name
        if descriptor.server != server_name:
            descriptor = descriptor.model_copy(update={"server": server_name})

        with self._lock:
            previous = self._owners.get(name)
            if previous is not None and previous != server_name:
                if self.strict:
                    raise ToolCollisionError(
                        f"Duplicate tool name {name!r}: provided by {previous!r} and {server_name!r}"
                    )
                logger.warning(
                    "Duplicate tool name found: %r. Provided by %r and now %r. "
                    "The client will use the one from %r.",
                    name,
                    previous,
                    server_name,
                    server_name,
                )
                self.collisions.append(Collision(name, previous, server_name))

            # Re-insert so iteration order follows the latest registration
            self._tools.pop(name, None)
            self._tools[name] = descriptor
            self._owners[name] = server_name

    # ── Lookup ────────────────────────────────────────────────────────────

    def resolve(self, name: str) -> Optional[str]:
        """Return the owning server name, or None if unknown."""
        return self._owners.get(name)

    def get(self, name: str) -> Optional[CapabilityDescriptor]:
        return self._tools.get(name)

    def snapshot(self) -> List[CapabilityDescriptor]:
        """All tools, one per name, in registration order."""
        with self._lock:
            return list(self._tools.values())

    def tools_for(self, server_name: str) -> List[CapabilityDescriptor]:
        return [t for t in self.snapshot() if self._owners.get(t.name) == server_name]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
