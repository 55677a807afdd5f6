"""Per-server connections and the manager that opens them concurrently."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Callable, Dict, List, Optional

from mcpmulti.mcp.registry import ToolRegistry
from mcpmulti.mcp.schema import CapabilityDescriptor
from mcpmulti.mcp.transport import MCPTransport, MCPTransportError
from mcpmulti.validation.config import ServerSpec

logger = logging.getLogger(__name__)

TransportFactory = Callable[[ServerSpec], MCPTransport]


class NoServersConnectedError(Exception):
    """Raised when not a single configured server reached READY."""


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


def default_transport_factory(spec: ServerSpec) -> MCPTransport:
    return MCPTransport(
        command=spec.command,
        args=list(spec.args),
        env=dict(spec.env),
        detached=spec.detached,
        name=spec.name,
    )


class Connection:
    """
    One tool server: its transport, lifecycle state, and advertised tools.

    ``open()`` runs spawn, handshake and catalog fetch; any failure leaves
    the connection FAILED with ``error`` set and the subprocess stopped.
    """

    def __init__(self, spec: ServerSpec, transport: MCPTransport):
        self.spec = spec
        self.transport = transport
        self.state = ConnectionState.CONNECTING
        self.tools: List[CapabilityDescriptor] = []
        self.error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    def open(self, handshake_timeout: Optional[float] = None, close_grace: float = 5.0) -> "Connection":
        self.state = ConnectionState.CONNECTING
        try:
            self.transport.start()
            self.transport.initialize(timeout=handshake_timeout)
            logger.info("Successfully connected to %r. Fetching tools...", self.name)
            raw_tools = self.transport.list_tools(timeout=handshake_timeout)
            self.tools = [CapabilityDescriptor.from_mcp(raw, self.name) for raw in raw_tools]
        except Exception as e:
            # KeyError/ValidationError from a malformed catalog count as failures too
            self.error = str(e) or type(e).__name__
            self.state = ConnectionState.FAILED
            logger.error("Failed to connect or fetch tools from %r: %s", self.name, self.error)
            self._stop_quietly(close_grace)
            return self

        self.state = ConnectionState.READY
        return self

    def call_tool(self, name: str, arguments: Dict, timeout: Optional[float] = None) -> Dict:
        if not self.is_ready:
            raise MCPTransportError(f"Server {self.name!r} is {self.state.value}")
        return self.transport.call_tool(name, arguments, timeout=timeout)

    def close(self, grace: float = 5.0) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.transport.stop(grace=grace)

    def _stop_quietly(self, grace: float) -> None:
        try:
            self.transport.stop(grace=grace)
        except Exception as e:
            logger.warning("Error stopping %r after failed connect: %s", self.name, e)


class ConnectionManager:
    """
    Opens one connection per configured server and owns them until shutdown.

    Attempts run concurrently; a slow or broken server never delays or
    aborts the others. Once every attempt has settled the tools of the READY
    connections are registered, in the order the attempts finished.
    """

    def __init__(
        self,
        specs: List[ServerSpec],
        registry: ToolRegistry,
        transport_factory: TransportFactory = default_transport_factory,
        handshake_timeout: Optional[float] = 30.0,
        close_grace: float = 5.0,
    ):
        self._specs = list(specs)
        self._registry = registry
        self._transport_factory = transport_factory
        self._handshake_timeout = handshake_timeout
        self._close_grace = close_grace
        self._connections: Dict[str, Connection] = {}
        self._failed: Dict[str, Connection] = {}
        # Filled as attempts start; close_all() reads it even if connect_all() never returned
        self._attempted: List[Connection] = []
        self._attempted_lock = threading.Lock()

    # ── Startup ───────────────────────────────────────────────────────────

    def connect_all(self) -> int:
        """
        Connect to every server and register their tools.

        Returns:
            Number of READY connections.

        Raises:
            NoServersConnectedError: If no server could be connected.
        """
        logger.info("Connecting to MCP servers...")
        settled: List[Connection] = []

        if self._specs:
            with ThreadPoolExecutor(max_workers=len(self._specs), thread_name_prefix="mcp-connect") as pool:
                futures = {pool.submit(self._attempt, spec): spec for spec in self._specs}
                for future in as_completed(futures):
                    settled.append(future.result())

        # Every READY connection is tracked before registration can raise
        for connection in settled:
            if connection.is_ready:
                self._connections[connection.name] = connection
            else:
                self._failed[connection.name] = connection

        for connection in settled:
            if connection.is_ready:
                for tool in connection.tools:
                    self._registry.register(connection.name, tool)
                logger.info(
                    "Server %r tools registered: %s",
                    connection.name,
                    ", ".join(t.name for t in connection.tools) or "None",
                )

        if not self._connections:
            raise NoServersConnectedError("No MCP servers connected successfully.")

        logger.info("Connected to %d server(s).", len(self._connections))
        return len(self._connections)

    def _attempt(self, spec: ServerSpec) -> Connection:
        logger.info("Attempting connection to %r...", spec.name)
        try:
            transport = self._transport_factory(spec)
        except Exception as e:
            connection = Connection(spec, transport=None)
            connection.state = ConnectionState.FAILED
            connection.error = str(e)
            logger.error("Failed to create transport for %r: %s", spec.name, e)
            return connection
        connection = Connection(spec, transport)
        with self._attempted_lock:
            self._attempted.append(connection)
        return connection.open(self._handshake_timeout, self._close_grace)

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[Connection]:
        """Return the READY connection for a server, if any."""
        connection = self._connections.get(name)
        if connection is not None and connection.is_ready:
            return connection
        return None

    @property
    def ready_names(self) -> List[str]:
        return [name for name, c in self._connections.items() if c.is_ready]

    @property
    def failures(self) -> Dict[str, str]:
        """Server name to failure cause for every attempt that failed."""
        return {name: c.error or "unknown error" for name, c in self._failed.items()}

    # ── Shutdown ──────────────────────────────────────────────────────────

    def close_all(self) -> None:
        """Close every connection concurrently; failures are logged only."""
        with self._attempted_lock:
            connections = [c for c in self._attempted if c.is_ready]
        if not connections:
            return

        logger.info("Shutting down client and closing connections...")
        with ThreadPoolExecutor(max_workers=len(connections), thread_name_prefix="mcp-close") as pool:
            futures = {pool.submit(c.close, self._close_grace): c for c in connections}
            for future in as_completed(futures):
                connection = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.error("Error closing connection to %s: %s", connection.name, e)
        logger.info("All connections closed.")
