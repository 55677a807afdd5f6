"""MCP server communication via stdio subprocess transport."""

from __future__ import annotations

import json
import logging
import os
import queue
import subprocess
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
_EOF = object()


class MCPTransportError(Exception):
    """Raised when MCP transport communication fails."""


class MCPTransport:
    """
    Communicate with an MCP server over stdin/stdout (JSON-RPC).

    Each message is one JSON object per line. A background thread reads
    stdout into a queue so every request can wait with a timeout; lines that
    are not the response to the outstanding request (notifications, stale
    responses after a timeout, log noise) are dropped.

    ``detached`` servers get their own session so terminal signals aimed at
    the client do not reach them, and ``stop()`` never signals them.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        detached: bool = False,
        name: str = "",
    ):
        self.command = command
        self.args = args or []
        self.env = env or {}
        self.detached = detached
        self.name = name or command
        self._process: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Any]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._request_id = 0
        self._lock = threading.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the MCP server subprocess."""
        if self._process and self._process.poll() is None:
            return  # already running

        merged_env = {**os.environ, **self.env}
        try:
            self._process = subprocess.Popen(
                [self.command] + self.args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                env=merged_env,
                start_new_session=self.detached,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise MCPTransportError(f"MCP server command could not be started: {self.command} ({exc})")

        self._lines = queue.Queue()
        self._reader = threading.Thread(
            target=self._read_stdout,
            args=(self._process, self._lines),
            name=f"mcp-reader-{self.name}",
            daemon=True,
        )
        self._reader.start()

    def stop(self, grace: float = 5.0) -> None:
        """
        Ask the server to exit by closing its stdin, then escalate.

        Safe to call repeatedly and on a process that already exited.
        """
        process = self._process
        self._process = None
        if process is None:
            return

        try:
            if process.stdin:
                process.stdin.close()
        except OSError:
            pass

        if process.poll() is not None:
            return

        try:
            process.wait(timeout=grace)
            return
        except subprocess.TimeoutExpired:
            pass

        if self.detached:
            logger.info("Leaving detached server %r (pid %s) running", self.name, process.pid)
            return

        try:
            process.terminate()
            process.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait(timeout=grace)
        except ProcessLookupError:
            pass

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @staticmethod
    def _read_stdout(process: subprocess.Popen, lines: "queue.Queue[Any]") -> None:
        try:
            for raw in iter(process.stdout.readline, b""):
                lines.put(raw)
        except (OSError, ValueError):
            pass
        finally:
            lines.put(_EOF)

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def send(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a JSON-RPC request and return the result."""
        if not self.is_running:
            raise MCPTransportError(f"MCP server {self.name!r} is not running")

        with self._lock:
            self._request_id += 1
            request_id = self._request_id
            request: Dict[str, Any] = {
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
            }
            if params:
                request["params"] = params

            self._write(request)
            response = self._wait_for(request_id, method, timeout)

        if "error" in response:
            err = response["error"]
            if not isinstance(err, dict):
                err = {"message": str(err)}
            code = err.get("code")
            prefix = f"MCP error {code}" if code is not None else "MCP error"
            raise MCPTransportError(f"{prefix}: {err.get('message')}")

        result = response.get("result", {})
        if not isinstance(result, dict):
            raise MCPTransportError(f"Malformed result for {method}: expected an object")
        return result

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        if not self.is_running:
            raise MCPTransportError(f"MCP server {self.name!r} is not running")

        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params:
            message["params"] = params
        with self._lock:
            self._write(message)

    def _write(self, message: Dict[str, Any]) -> None:
        line = json.dumps(message) + "\n"
        process = self._process
        if process is None or process.stdin is None:
            raise MCPTransportError(f"MCP server {self.name!r} is not running")
        try:
            process.stdin.write(line.encode())
            process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise MCPTransportError(f"MCP transport error: {exc}")

    def _wait_for(self, request_id: int, method: str, timeout: Optional[float]) -> Dict[str, Any]:
        while True:
            try:
                raw = self._lines.get(timeout=timeout)
            except queue.Empty:
                raise MCPTransportError(f"Timed out after {timeout}s waiting for {method} response")

            if raw is _EOF:
                # Keep the marker for any later request on this dead channel
                self._lines.put(_EOF)
                raise MCPTransportError("MCP server closed connection (empty response)")

            try:
                message = json.loads(raw.decode())
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.debug("Ignoring non-JSON line from %r: %r", self.name, raw[:200])
                continue

            if not isinstance(message, dict):
                logger.debug("Ignoring non-object message from %r", self.name)
                continue
            if message.get("id") != request_id:
                logger.debug("Ignoring message from %r: %s", self.name, message.get("method") or message.get("id"))
                continue
            return message

    # ── MCP Protocol ──────────────────────────────────────────────────────

    def initialize(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Perform MCP initialize handshake."""
        result = self.send(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": f"mcp-multi-client-{self.name}", "version": "1.0.0"},
            },
            timeout=timeout,
        )
        self.notify("notifications/initialized")
        return result

    def list_tools(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Fetch the tool list from the MCP server."""
        result = self.send("tools/list", timeout=timeout)
        tools = result.get("tools", [])
        if not isinstance(tools, list):
            raise MCPTransportError("Malformed tools/list result: 'tools' is not a list")
        return tools

    def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Call a tool on the MCP server."""
        return self.send("tools/call", {"name": name, "arguments": arguments or {}}, timeout=timeout)
