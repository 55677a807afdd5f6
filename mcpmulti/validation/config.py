"""
mcp-multi-client Configuration - Server config loading and validation.

This module provides the models for the ``mcp-servers.json`` document that
names every tool server to launch, plus the client settings used to build
the model backend.

Example document::

    {
      "mcpServers": {
        "simple": {"command": "node", "args": ["build/simpleServer.js"]},
        "clock": {"command": "python", "args": ["clock_server.py"], "detached": true}
      }
    }
"""

import json
import os
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ServerSpec(BaseModel):
    """Launch description for a single tool server."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    command: str
    args: List[str]
    env: Dict[str, str] = Field(default_factory=dict)
    detached: bool = False

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be empty")
        return value


class MultiClientConfig(BaseModel):
    """Complete config file schema."""

    mcpServers: Dict[str, ServerSpec]

    @field_validator("mcpServers")
    @classmethod
    def _at_least_one_server(cls, value: Dict[str, ServerSpec]) -> Dict[str, ServerSpec]:
        if not value:
            raise ValueError("at least one server must be configured")
        return value

    @property
    def servers(self) -> List[ServerSpec]:
        """Server specs in file order, each carrying its config key as name."""
        return [spec.model_copy(update={"name": name}) for name, spec in self.mcpServers.items()]

    @property
    def server_names(self) -> List[str]:
        return list(self.mcpServers.keys())


class ClientSettings(BaseModel):
    """Runtime settings for the client and its model backend."""

    model: str = "claude-sonnet-4-5"
    max_tokens: int = 2048
    temperature: Optional[float] = None
    timeout: int = 120
    handshake_timeout: float = 30.0
    call_timeout: float = 60.0
    close_grace: float = 5.0
    strict_tools: bool = False
    api_keys: Dict[str, str] = Field(default_factory=dict)

    API_KEY_ENV: ClassVar[Dict[str, str]] = {
        "anthropic": "ANTHROPIC_API_KEY",
        "openai": "OPENAI_API_KEY",
        "openrouter": "OPENROUTER_API_KEY",
        "groq": "GROQ_API_KEY",
    }

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientSettings":
        """
        Build settings, taking the model from ``MCP_MULTI_MODEL`` if set.

        Explicit ``overrides`` with a value of ``None`` are ignored so CLI
        options that were not given fall back to the defaults.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        env_model = os.environ.get("MCP_MULTI_MODEL")
        if env_model and "model" not in values:
            values["model"] = env_model
        return cls(**values)

    def get_api_key(self, provider_name: str) -> Optional[str]:
        """
        Get API key for a provider.

        Checks explicit settings first, then environment variables.
        """
        if self.api_keys.get(provider_name):
            return self.api_keys[provider_name]

        env_var = self.API_KEY_ENV.get(provider_name)
        if env_var:
            return os.environ.get(env_var)

        return None

    def require_api_key(self, provider_name: str) -> str:
        """Return the provider credential or raise ``ConfigError``."""
        key = self.get_api_key(provider_name)
        if not key:
            env_var = self.API_KEY_ENV.get(provider_name, f"{provider_name.upper()}_API_KEY")
            raise ConfigError(f"{env_var} is not set (required for provider '{provider_name}')")
        return key


def load_config(path: Path) -> MultiClientConfig:
    """
    Load and validate a server config file.

    Args:
        path: JSON document, or YAML when the suffix is ``.yaml``/``.yml``.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found at \"{path}\"")

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            else:
                raw = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid configuration in {path}: expected an object at top level")

    try:
        return MultiClientConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}")
