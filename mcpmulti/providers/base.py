"""
mcp-multi-client Provider Base - Model backends with tool-use support.

This module defines the interface every model backend implements: take the
ordered conversation messages plus an optional tool list, return ordered
response segments (plain text or tool-use requests). It also provides a
factory that picks the backend from the model name.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, Union

from mcpmulti.core.messages import (
    CapabilityRequest,
    CapabilityResultList,
    ConversationMessage,
    ModelCapabilityRequest,
    ModelText,
    UserText,
)
from mcpmulti.mcp.schema import CapabilityDescriptor
from mcpmulti.validation.config import ClientSettings, ConfigError

logger = logging.getLogger(__name__)


@dataclass
class TextSegment:
    text: str


@dataclass
class ToolUseSegment:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


Segment = Union[TextSegment, ToolUseSegment]


@dataclass
class ProviderResponse:
    """Response from a model backend."""

    segments: List[Segment]
    model: str
    provider: str
    token_usage: int = 0
    finish_reason: str = "stop"

    @property
    def texts(self) -> List[str]:
        return [s.text for s in self.segments if isinstance(s, TextSegment)]

    @property
    def tool_requests(self) -> List[CapabilityRequest]:
        return [
            CapabilityRequest(id=s.id, name=s.name, arguments=s.arguments)
            for s in self.segments
            if isinstance(s, ToolUseSegment)
        ]


class Provider(ABC):
    """
    Abstract base class for model backends.

    All provider implementations must inherit from this class and
    implement the required methods. The credential is checked when the
    provider is built, so a missing key fails at startup, not mid-query.

    Example:
        >>> class EchoProvider(Provider):
        ...     provider_name = "echo"
        ...     def complete(self, messages, tools=None, **kwargs):
        ...         return ProviderResponse([TextSegment("hi")], self.model, "echo")
    """

    def __init__(self, model: str, settings: ClientSettings):
        """
        Initialize the provider.

        Args:
            model: The model identifier, without provider prefix.
            settings: Client settings (token limits, timeouts, credentials).

        Raises:
            ConfigError: If the provider's credential is not available.
        """
        self.model = model
        self.settings = settings
        self.api_key = settings.require_api_key(self.provider_name)

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def complete(
        self,
        messages: List[ConversationMessage],
        tools: Optional[List[CapabilityDescriptor]] = None,
        **kwargs,
    ) -> ProviderResponse:
        """
        Send the conversation and return the model's next turn.

        Args:
            messages: Ordered conversation so far.
            tools: Tools the model may request; None offers none.
            **kwargs: Additional provider-specific parameters.

        Returns:
            ProviderResponse with text and tool-use segments in order.
        """
        pass


class AnthropicProvider(Provider):
    """Anthropic Messages API provider implementation."""

    provider_name = "anthropic"

    def __init__(self, model: str, settings: ClientSettings):
        super().__init__(model, settings)
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic

            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.settings.timeout)
        return self._client

    def complete(
        self,
        messages: List[ConversationMessage],
        tools: Optional[List[CapabilityDescriptor]] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Generate the next turn using the Anthropic API."""
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": kwargs.get("max_tokens", self.settings.max_tokens),
            "messages": self.convert_messages(messages),
        }
        temperature = kwargs.get("temperature", self.settings.temperature)
        if temperature is not None:
            request["temperature"] = temperature

        if tools:
            request["tools"] = [t.to_tool_param() for t in tools]
        else:
            used = _requested_tool_names(messages)
            if used:
                # tool_use/tool_result blocks are only accepted alongside tool
                # definitions; declare the ones already used and forbid new calls
                request["tools"] = [
                    {"name": name, "description": name, "input_schema": {"type": "object"}}
                    for name in used
                ]
                request["tool_choice"] = {"type": "none"}

        response = self._get_client().messages.create(**request)

        segments: List[Segment] = []
        for block in response.content:
            if block.type == "text":
                segments.append(TextSegment(block.text))
            elif block.type == "tool_use":
                segments.append(ToolUseSegment(block.id, block.name, dict(block.input or {})))

        return ProviderResponse(
            segments=segments,
            model=response.model,
            provider=self.provider_name,
            token_usage=response.usage.input_tokens + response.usage.output_tokens,
            finish_reason=response.stop_reason or "stop",
        )

    @staticmethod
    def convert_messages(messages: List[ConversationMessage]) -> List[Dict[str, Any]]:
        """Map conversation messages to Messages API params."""
        converted: List[Dict[str, Any]] = []

        def assistant_blocks() -> List[Dict[str, Any]]:
            if not converted or converted[-1]["role"] != "assistant":
                converted.append({"role": "assistant", "content": []})
            return converted[-1]["content"]

        for message in messages:
            if isinstance(message, UserText):
                converted.append({"role": "user", "content": message.text})
            elif isinstance(message, ModelText):
                assistant_blocks().append({"type": "text", "text": message.text})
            elif isinstance(message, ModelCapabilityRequest):
                assistant_blocks().extend(
                    {"type": "tool_use", "id": r.id, "name": r.name, "input": r.arguments}
                    for r in message.requests
                )
            elif isinstance(message, CapabilityResultList):
                converted.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": r.id,
                            "content": r.output,
                            "is_error": r.is_error,
                        }
                        for r in message.results
                    ],
                })
        return converted


class OpenAICompatibleProvider(Provider):
    """
    Base for providers that expose an OpenAI-compatible chat completions API.

    Subclasses only need to set _base_url and provider_name.
    Uses httpx so no extra packages are required.
    """

    _base_url: str = ""

    def complete(
        self,
        messages: List[ConversationMessage],
        tools: Optional[List[CapabilityDescriptor]] = None,
        **kwargs,
    ) -> ProviderResponse:
        import httpx

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self.convert_messages(messages),
            "max_tokens": kwargs.get("max_tokens", self.settings.max_tokens),
        }
        temperature = kwargs.get("temperature", self.settings.temperature)
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.input_schema.to_json(),
                    },
                }
                for t in tools
            ]

        response = httpx.post(
            f"{self._base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=self.settings.timeout,
        )
        response.raise_for_status()
        data = response.json()

        choice = data["choices"][0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}

        segments: List[Segment] = []
        if message.get("content"):
            segments.append(TextSegment(message["content"]))
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            segments.append(ToolUseSegment(
                id=call.get("id", ""),
                name=function.get("name", ""),
                arguments=_parse_arguments(function.get("arguments")),
            ))

        return ProviderResponse(
            segments=segments,
            model=data.get("model", self.model),
            provider=self.provider_name,
            token_usage=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason") or "stop",
        )

    @staticmethod
    def convert_messages(messages: List[ConversationMessage]) -> List[Dict[str, Any]]:
        """Map conversation messages to chat-completions messages."""
        converted: List[Dict[str, Any]] = []

        def assistant_message() -> Dict[str, Any]:
            if not converted or converted[-1]["role"] != "assistant":
                converted.append({"role": "assistant", "content": None})
            return converted[-1]

        for message in messages:
            if isinstance(message, UserText):
                converted.append({"role": "user", "content": message.text})
            elif isinstance(message, ModelText):
                current = assistant_message()
                current["content"] = "\n".join(filter(None, [current["content"], message.text]))
            elif isinstance(message, ModelCapabilityRequest):
                assistant_message().setdefault("tool_calls", []).extend(
                    {
                        "id": r.id,
                        "type": "function",
                        "function": {"name": r.name, "arguments": json.dumps(r.arguments)},
                    }
                    for r in message.requests
                )
            elif isinstance(message, CapabilityResultList):
                converted.extend(
                    {"role": "tool", "tool_call_id": r.id, "content": r.output}
                    for r in message.results
                )
        return converted


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI chat completions."""

    _base_url = "https://api.openai.com/v1"
    provider_name = "openai"


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter - unified API for 100+ open and commercial models."""

    _base_url = "https://openrouter.ai/api/v1"
    provider_name = "openrouter"


class GroqProvider(OpenAICompatibleProvider):
    """Groq - ultra-fast inference for open models."""

    _base_url = "https://api.groq.com/openai/v1"
    provider_name = "groq"


def _requested_tool_names(messages: List[ConversationMessage]) -> List[str]:
    names: List[str] = []
    for message in messages:
        if isinstance(message, ModelCapabilityRequest):
            for request in message.requests:
                if request.name not in names:
                    names.append(request.name)
    return names


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Model sent tool arguments that are not valid JSON: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ProviderFactory:
    """Factory for creating provider instances."""

    _providers: Dict[str, Type[Provider]] = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "openrouter": OpenRouterProvider,
        "groq": GroqProvider,
    }

    @classmethod
    def create(cls, model: str, settings: ClientSettings) -> Provider:
        """
        Create a provider instance for the given model.

        Args:
            model: Model identifier (e.g., "openai/gpt-4o" or "claude-sonnet-4-5").
            settings: Client settings.

        Returns:
            Provider instance.

        Raises:
            ConfigError: If the provider is unknown or its credential is missing.
        """
        if "/" in model:
            provider_name, model_name = model.split("/", 1)
        else:
            provider_name = cls._infer_provider(model)
            model_name = model

        if provider_name not in cls._providers:
            raise ConfigError(f"Unknown provider: {provider_name}")

        provider_class = cls._providers[provider_name]
        return provider_class(model=model_name, settings=settings)

    @classmethod
    def _infer_provider(cls, model: str) -> str:
        """Infer the provider from the model name."""
        model_lower = model.lower()

        if model_lower.startswith("claude"):
            return "anthropic"
        elif model_lower.startswith(("gpt", "o1", "o3", "o4")):
            return "openai"
        elif model_lower.startswith(("llama", "deepseek", "gemma")):
            return "groq"

        return "openrouter"

    @classmethod
    def available_providers(cls) -> List[str]:
        """Get list of available provider names."""
        return list(cls._providers.keys())
