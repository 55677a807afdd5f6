"""
Session - Owns everything that lives from startup to shutdown.

A Session wires the connection manager, tool registry, dispatcher and
conversation engine together. Nothing is module-global: construct one,
``start()`` it, ``ask()`` as many queries as needed, then ``close()``.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from mcpmulti.core.conversation import ConversationEngine
from mcpmulti.mcp.connection import ConnectionManager, TransportFactory, default_transport_factory
from mcpmulti.mcp.dispatcher import Dispatcher
from mcpmulti.mcp.registry import ToolRegistry
from mcpmulti.mcp.schema import CapabilityDescriptor
from mcpmulti.validation.config import ClientSettings, MultiClientConfig

if TYPE_CHECKING:
    from mcpmulti.providers.base import Provider

logger = logging.getLogger(__name__)


class Session:
    """
    One client session.

    Example:
        >>> with Session(config, provider) as session:
        ...     session.start()
        ...     print(session.ask("what time is it?"))
    """

    def __init__(
        self,
        config: MultiClientConfig,
        provider: "Provider",
        settings: Optional[ClientSettings] = None,
        transport_factory: TransportFactory = default_transport_factory,
    ):
        self.config = config
        self.settings = settings or ClientSettings()
        self.registry = ToolRegistry(strict=self.settings.strict_tools)
        self.connections = ConnectionManager(
            config.servers,
            self.registry,
            transport_factory=transport_factory,
            handshake_timeout=self.settings.handshake_timeout,
            close_grace=self.settings.close_grace,
        )
        self.dispatcher = Dispatcher(
            self.registry,
            self.connections,
            call_timeout=self.settings.call_timeout,
        )
        self.engine = ConversationEngine(provider, self.registry, self.dispatcher)
        self._started = False
        self._closed = False

    def start(self) -> int:
        """
        Connect every configured server and build the tool registry.

        Returns the number of connected servers. On a fatal startup error
        any server that did connect is closed before the error propagates.
        """
        try:
            count = self.connections.connect_all()
        except Exception:
            self.close()
            raise
        self._started = True
        logger.info("Available tools: %s", ", ".join(t.name for t in self.tools) or "None")
        return count

    def ask(self, query: str) -> str:
        """Answer one query end to end."""
        if not self._started or self._closed:
            raise RuntimeError("Session is not running. Call start() first.")
        return self.engine.process_query(query)

    def close(self) -> None:
        """Close every connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.connections.close_all()

    @property
    def server_names(self) -> List[str]:
        return self.connections.ready_names

    @property
    def tools(self) -> List[CapabilityDescriptor]:
        return self.registry.snapshot()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
