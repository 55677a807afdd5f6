"""Tests for the model backends and the provider factory."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from mcpmulti.core.messages import (
    CapabilityRequest,
    CapabilityResultEntry,
    CapabilityResultList,
    ModelCapabilityRequest,
    ModelText,
    UserText,
)
from mcpmulti.providers.base import (
    AnthropicProvider,
    GroqProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderFactory,
    TextSegment,
    ToolUseSegment,
)
from mcpmulti.validation.config import ClientSettings, ConfigError

from helpers import descriptor


ECHO_SCHEMA = {
    "type": "object",
    "properties": {"message": {"type": "string"}},
    "required": ["message"],
}


def tool_round():
    return [
        UserText("what time is it?"),
        ModelText("Checking."),
        ModelCapabilityRequest([
            CapabilityRequest("t1", "TIME", {}),
            CapabilityRequest("t2", "ECHO", {"message": "hi"}),
        ]),
        CapabilityResultList([
            CapabilityResultEntry("t1", "12:00"),
            CapabilityResultEntry("t2", "boom", is_error=True),
        ]),
    ]


@pytest.fixture
def settings():
    return ClientSettings(
        api_keys={"anthropic": "a-key", "openai": "o-key", "openrouter": "r-key", "groq": "g-key"},
        max_tokens=512,
    )


class TestAnthropicProvider:
    def test_convert_messages(self):
        converted = AnthropicProvider.convert_messages(tool_round())

        assert converted == [
            {"role": "user", "content": "what time is it?"},
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "Checking."},
                    {"type": "tool_use", "id": "t1", "name": "TIME", "input": {}},
                    {"type": "tool_use", "id": "t2", "name": "ECHO", "input": {"message": "hi"}},
                ],
            },
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "t1", "content": "12:00", "is_error": False},
                    {"type": "tool_result", "tool_use_id": "t2", "content": "boom", "is_error": True},
                ],
            },
        ]

    def _response(self, *blocks, stop_reason="end_turn"):
        return SimpleNamespace(
            content=list(blocks),
            model="claude-test",
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
            stop_reason=stop_reason,
        )

    def test_complete_parses_segments_in_order(self, settings):
        provider = AnthropicProvider("claude-test", settings)
        client = MagicMock()
        client.messages.create.return_value = self._response(
            SimpleNamespace(type="text", text="Let me look."),
            SimpleNamespace(type="tool_use", id="t1", name="ECHO", input={"message": "hi"}),
            stop_reason="tool_use",
        )

        with patch("anthropic.Anthropic", return_value=client) as anthropic_cls:
            response = provider.complete([UserText("hi")], tools=[descriptor("ECHO", "echo", ECHO_SCHEMA)])

        anthropic_cls.assert_called_once_with(api_key="a-key", timeout=settings.timeout)
        assert response.segments == [
            TextSegment("Let me look."),
            ToolUseSegment("t1", "ECHO", {"message": "hi"}),
        ]
        assert response.token_usage == 15
        assert response.finish_reason == "tool_use"

        request = client.messages.create.call_args.kwargs
        assert request["max_tokens"] == 512
        assert request["tools"] == [
            {"name": "ECHO", "description": "ECHO tool", "input_schema": ECHO_SCHEMA}
        ]
        assert "tool_choice" not in request
        assert "temperature" not in request

    def test_final_call_declares_used_tools_and_forbids_calls(self, settings):
        provider = AnthropicProvider("claude-test", settings)
        provider._client = MagicMock()
        provider._client.messages.create.return_value = self._response(
            SimpleNamespace(type="text", text="It is noon.")
        )

        response = provider.complete(tool_round(), tools=None)

        request = provider._client.messages.create.call_args.kwargs
        assert [t["name"] for t in request["tools"]] == ["TIME", "ECHO"]
        assert request["tool_choice"] == {"type": "none"}
        assert response.texts == ["It is noon."]

    def test_no_tools_and_no_history_sends_no_tools(self, settings):
        provider = AnthropicProvider("claude-test", settings)
        provider._client = MagicMock()
        provider._client.messages.create.return_value = self._response()

        provider.complete([UserText("hi")])

        assert "tools" not in provider._client.messages.create.call_args.kwargs


class TestOpenAICompatibleProvider:
    def test_convert_messages(self):
        converted = OpenAICompatibleProvider.convert_messages(tool_round())

        assert converted[0] == {"role": "user", "content": "what time is it?"}
        assistant = converted[1]
        assert assistant["role"] == "assistant"
        assert assistant["content"] == "Checking."
        assert [c["function"]["name"] for c in assistant["tool_calls"]] == ["TIME", "ECHO"]
        assert json.loads(assistant["tool_calls"][1]["function"]["arguments"]) == {"message": "hi"}
        assert converted[2:] == [
            {"role": "tool", "tool_call_id": "t1", "content": "12:00"},
            {"role": "tool", "tool_call_id": "t2", "content": "boom"},
        ]

    def test_assistant_without_text_has_null_content(self):
        converted = OpenAICompatibleProvider.convert_messages([
            UserText("hi"),
            ModelCapabilityRequest([CapabilityRequest("t1", "TIME", {})]),
        ])

        assert converted[1]["content"] is None

    def test_complete_posts_and_parses(self, settings):
        provider = OpenAIProvider("gpt-test", settings)
        http_response = MagicMock()
        http_response.json.return_value = {
            "model": "gpt-test",
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "c1",
                        "type": "function",
                        "function": {"name": "ECHO", "arguments": "{\"message\": \"hi\"}"},
                    }],
                },
            }],
            "usage": {"total_tokens": 42},
        }

        with patch("httpx.post", return_value=http_response) as post:
            response = provider.complete([UserText("hi")], tools=[descriptor("ECHO", "echo", ECHO_SCHEMA)])

        url = post.call_args.args[0]
        assert url == "https://api.openai.com/v1/chat/completions"
        kwargs = post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer o-key"
        assert kwargs["json"]["tools"][0]["function"]["parameters"] == ECHO_SCHEMA
        assert response.segments == [ToolUseSegment("c1", "ECHO", {"message": "hi"})]
        assert response.token_usage == 42
        assert response.finish_reason == "tool_calls"

    def test_final_call_sends_no_tools(self, settings):
        provider = GroqProvider("llama-test", settings)
        http_response = MagicMock()
        http_response.json.return_value = {
            "choices": [{"message": {"content": "done"}, "finish_reason": "stop"}],
        }

        with patch("httpx.post", return_value=http_response) as post:
            response = provider.complete(tool_round(), tools=None)

        assert "tools" not in post.call_args.kwargs["json"]
        assert post.call_args.args[0].startswith("https://api.groq.com/")
        assert response.texts == ["done"]

    def test_bad_argument_json_becomes_empty_object(self, settings):
        provider = OpenRouterProvider("some/model", settings)
        http_response = MagicMock()
        http_response.json.return_value = {
            "choices": [{
                "message": {
                    "tool_calls": [{"id": "c1", "function": {"name": "TIME", "arguments": "{not json"}}],
                },
            }],
        }

        with patch("httpx.post", return_value=http_response):
            response = provider.complete([UserText("hi")])

        assert response.tool_requests[0].arguments == {}


class TestProviderFactory:
    @pytest.mark.parametrize("model,expected", [
        ("claude-sonnet-4-5", AnthropicProvider),
        ("gpt-4o", OpenAIProvider),
        ("o3-mini", OpenAIProvider),
        ("llama-3.3-70b", GroqProvider),
        ("mistral-large", OpenRouterProvider),
    ])
    def test_infers_provider(self, settings, model, expected):
        provider = ProviderFactory.create(model, settings)

        assert type(provider) is expected
        assert provider.model == model

    def test_explicit_prefix(self, settings):
        provider = ProviderFactory.create("openrouter/anthropic/claude-3", settings)

        assert isinstance(provider, OpenRouterProvider)
        assert provider.model == "anthropic/claude-3"

    def test_unknown_provider(self, settings):
        with pytest.raises(ConfigError, match="Unknown provider"):
            ProviderFactory.create("nowhere/model", settings)

    def test_missing_credential_fails_at_construction(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            ProviderFactory.create("claude-sonnet-4-5", ClientSettings())

    def test_credential_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")

        provider = ProviderFactory.create("gpt-4o", ClientSettings())

        assert provider.api_key == "from-env"

    def test_available_providers(self):
        assert set(ProviderFactory.available_providers()) >= {"anthropic", "openai", "openrouter", "groq"}
