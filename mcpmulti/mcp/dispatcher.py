"""Dispatcher - routes a tool call to its owning server and normalizes the result."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

from mcpmulti.mcp.connection import ConnectionManager
from mcpmulti.mcp.registry import ToolRegistry
from mcpmulti.mcp.schema import CapabilityResult
from mcpmulti.mcp.transport import MCPTransportError

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Executes tool calls against the server that owns each tool.

    ``invoke()`` never raises: unknown tools, invalid arguments and transport
    failures all come back as a ``CapabilityResult`` with ``is_error`` set.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        connections: ConnectionManager,
        call_timeout: Optional[float] = 60.0,
    ):
        self._registry = registry
        self._connections = connections
        self._call_timeout = call_timeout

    # ── Execution ─────────────────────────────────────────────────────────

    def invoke(self, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> CapabilityResult:
        """
        Execute a tool call on its owning server.

        Parameters
        ----------
        tool_name : tool name as offered to the model
        arguments : dict of parameter values
        """
        arguments = arguments if arguments is not None else {}

        server_name = self._registry.resolve(tool_name)
        connection = self._connections.get(server_name) if server_name else None
        if connection is None:
            logger.error("Cannot find server/client for tool %r", tool_name)
            return CapabilityResult.failure(
                f'Error: Tool "{tool_name}" is not available or its server is disconnected.'
            )

        descriptor = self._registry.get(tool_name)
        if not isinstance(arguments, dict):
            return CapabilityResult.failure(
                f'Error: Invalid arguments for tool "{tool_name}": expected an object'
            )
        if descriptor is not None:
            problems = descriptor.input_schema.validate_value(arguments)
            if problems:
                logger.warning("Rejected call to %r: %s", tool_name, "; ".join(problems))
                return CapabilityResult.failure(
                    f'Error: Invalid arguments for tool "{tool_name}": ' + "; ".join(problems)
                )

        logger.info("Executing tool %s on %r with arguments %r", tool_name, server_name, arguments)
        t0 = time.perf_counter()
        try:
            raw_result = connection.call_tool(tool_name, arguments, timeout=self._call_timeout)
            result = self.normalize(tool_name, raw_result)
        except MCPTransportError as exc:
            logger.error("Error calling tool %r on server %r: %s", tool_name, server_name, exc)
            return CapabilityResult.failure(f"Error executing tool {tool_name}: {exc}")
        except Exception as exc:
            logger.exception("Unexpected failure calling tool %r on server %r", tool_name, server_name)
            return CapabilityResult.failure(f"Error executing tool {tool_name}: {exc}")

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        logger.info("Tool %r executed on server %r in %dms", tool_name, server_name, elapsed_ms)
        return result

    # ── Normalization ─────────────────────────────────────────────────────

    @staticmethod
    def normalize(tool_name: str, raw_result: Dict[str, Any]) -> CapabilityResult:
        """
        Reduce an MCP ``tools/call`` result to a single text.

        The first ``text`` segment wins; otherwise the whole content list is
        serialized; an empty result flagged as an error gets a generic message.
        """
        is_error = raw_result.get("isError") is True or raw_result.get("error") is True
        content = raw_result.get("content")
        output = f"Tool {tool_name} executed."

        if isinstance(content, list) and content:
            text_part = next(
                (part for part in content if isinstance(part, dict) and part.get("type") == "text"),
                None,
            )
            if text_part is not None and isinstance(text_part.get("text"), str):
                output = text_part["text"]
            else:
                output = json.dumps(content)
        elif is_error:
            output = f"Tool {tool_name} reported an error."

        return CapabilityResult(output=output, is_error=is_error)
