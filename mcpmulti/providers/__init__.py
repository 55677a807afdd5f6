"""
mcp-multi-client providers module.

This module provides abstractions for tool-capable model backends.
"""

from mcpmulti.providers.base import (
    Provider,
    ProviderFactory,
    ProviderResponse,
    TextSegment,
    ToolUseSegment,
)

__all__ = ["Provider", "ProviderFactory", "ProviderResponse", "TextSegment", "ToolUseSegment"]
