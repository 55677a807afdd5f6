"""
mcp-multi-client validation module.

This module provides configuration loading and schema enforcement.
"""

from mcpmulti.validation.config import (
    ClientSettings,
    ConfigError,
    MultiClientConfig,
    ServerSpec,
    load_config,
)

__all__ = ["ClientSettings", "ConfigError", "MultiClientConfig", "ServerSpec", "load_config"]
