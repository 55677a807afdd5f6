"""Builders shared by the test modules."""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcpmulti.mcp.schema import CapabilityDescriptor
from mcpmulti.providers.base import ProviderResponse, TextSegment, ToolUseSegment
from mcpmulti.validation.config import ServerSpec

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_mcp_server.py"


def fake_server_spec(name: str, *args: str, detached: bool = False) -> ServerSpec:
    """ServerSpec that launches the fixture server with the current interpreter."""
    return ServerSpec(
        name=name,
        command=sys.executable,
        args=[str(FAKE_SERVER), *args],
        detached=detached,
    )


def descriptor(name: str, server: str, schema: Optional[Dict[str, Any]] = None) -> CapabilityDescriptor:
    raw: Dict[str, Any] = {"name": name, "description": f"{name} tool"}
    if schema is not None:
        raw["inputSchema"] = schema
    return CapabilityDescriptor.from_mcp(raw, server)


def text_response(*texts: str) -> ProviderResponse:
    return ProviderResponse(
        segments=[TextSegment(t) for t in texts],
        model="test-model",
        provider="test",
    )


def tool_response(*calls, text: Optional[str] = None) -> ProviderResponse:
    """calls: (id, name, arguments) tuples, in request order."""
    segments: List = [TextSegment(text)] if text else []
    segments.extend(ToolUseSegment(call_id, name, args) for call_id, name, args in calls)
    return ProviderResponse(
        segments=segments,
        model="test-model",
        provider="test",
        finish_reason="tool_use",
    )
