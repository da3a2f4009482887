"""
Unit tests for ChatModel.

Tests cover:
- Call arguments passed to LiteLLM (model route, options, tools)
- Response parsing (text, tool calls, usage, metadata)
- Mapping of provider failures and timeouts to error kinds
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from pathways.errors import ModelInvocationError, ModelTimeoutError
from pathways.llm.handle import ChatModel
from pathways.llm.messages import SystemTurn, UserTurn
from pathways.llm.models import ModelReply


# ---------------------------------------------------------------------------
# Helpers for building mock LiteLLM responses
# ---------------------------------------------------------------------------

def _make_text_response(text: str, model: str = "openai/gpt-4o-mini") -> MagicMock:
    """Build a mock LiteLLM response that contains only text (no tool calls)."""
    choice = MagicMock()
    choice.message.content = text
    choice.message.tool_calls = None
    choice.finish_reason = "stop"

    response = MagicMock()
    response.choices = [choice]
    response.model = model
    response.usage.prompt_tokens = 100
    response.usage.completion_tokens = 50
    return response


def _make_tool_call_response(
    tool_name: str,
    arguments: dict | str,
    tool_call_id: str = "call_123",
) -> MagicMock:
    """Build a mock LiteLLM response that requests a tool call."""
    tool_call = MagicMock()
    tool_call.id = tool_call_id
    tool_call.function.name = tool_name
    tool_call.function.arguments = arguments if isinstance(arguments, str) else json.dumps(arguments)
    tool_call.type = "function"

    choice = MagicMock()
    choice.message.content = None
    choice.message.tool_calls = [tool_call]
    choice.finish_reason = "tool_calls"

    response = MagicMock()
    response.choices = [choice]
    response.model = "ollama_chat/llama3.1"
    response.usage.prompt_tokens = 80
    response.usage.completion_tokens = 20
    return response


WEATHER_TOOL = {
    "type": "function",
    "function": {
        "name": "current_weather",
        "description": "Get the weather for a given location",
        "parameters": {"type": "object", "properties": {"location": {"type": "string"}}},
    },
}


@pytest.fixture
def model():
    return ChatModel(
        provider="openai",
        model="gpt-4o-mini",
        api_key="test-api-key",
        api_base="https://api.openai.com/v1",
        temperature=0.2,
        max_tokens=512,
    )


class TestCallArguments:
    """What gets passed to acompletion()."""

    @pytest.mark.asyncio
    async def test_model_string_uses_route(self):
        handle = ChatModel(provider="ollama", model="llama3.1", route="ollama_chat")
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")) as mock_call:
            await handle.ainvoke([UserTurn(content="hi")])

        assert mock_call.call_args.kwargs["model"] == "ollama_chat/llama3.1"

    @pytest.mark.asyncio
    async def test_passes_options(self, model):
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")) as mock_call:
            await model.ainvoke([UserTurn(content="hi")])

        kwargs = mock_call.call_args.kwargs
        assert kwargs["api_key"] == "test-api-key"
        assert kwargs["api_base"] == "https://api.openai.com/v1"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_omits_unset_options(self):
        handle = ChatModel(provider="ollama", model="llama3.1")
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")) as mock_call:
            await handle.ainvoke([UserTurn(content="hi")])

        kwargs = mock_call.call_args.kwargs
        for key in ("api_key", "api_base", "temperature", "max_tokens", "tools"):
            assert key not in kwargs

    @pytest.mark.asyncio
    async def test_renders_turns(self, model):
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")) as mock_call:
            await model.ainvoke([SystemTurn(content="be brief"), UserTurn(content="hi")])

        assert mock_call.call_args.kwargs["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_bound_tools_are_sent(self, model):
        bound = model.bind_tools([WEATHER_TOOL])
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")) as mock_call:
            await bound.ainvoke([UserTurn(content="weather?")])

        kwargs = mock_call.call_args.kwargs
        assert kwargs["tools"] == [WEATHER_TOOL]
        assert kwargs["parallel_tool_calls"] is False

    def test_bind_tools_leaves_original_untouched(self, model):
        bound = model.bind_tools([WEATHER_TOOL])
        assert model.tools is None
        assert bound.tools == [WEATHER_TOOL]
        assert bound.litellm_model == model.litellm_model


class TestResponseParsing:
    """Conversion of LiteLLM responses into ModelReply."""

    @pytest.mark.asyncio
    async def test_text_reply(self, model):
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("4")):
            reply = await model.ainvoke([UserTurn(content="What's 2+2?")])

        assert isinstance(reply, ModelReply)
        assert reply.content == "4"
        assert reply.tool_calls == []
        assert not reply.failed

    @pytest.mark.asyncio
    async def test_usage_and_metadata(self, model):
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("4")):
            reply = await model.ainvoke([UserTurn(content="hi")])

        assert reply.usage_metadata.input_tokens == 100
        assert reply.usage_metadata.output_tokens == 50
        assert reply.usage_metadata.total_tokens == 150
        assert reply.response_metadata["model"] == "openai/gpt-4o-mini"
        assert reply.response_metadata["finish_reason"] == "stop"

    @pytest.mark.asyncio
    async def test_tool_call_reply(self, model):
        response = _make_tool_call_response("current_weather", {"location": "Paris"})
        with patch("pathways.llm.handle.acompletion", return_value=response):
            reply = await model.ainvoke([UserTurn(content="weather in Paris?")])

        assert reply.content == ""
        assert len(reply.tool_calls) == 1
        call = reply.tool_calls[0]
        assert call.id == "call_123"
        assert call.name == "current_weather"
        assert call.args == {"location": "Paris"}
        assert call.type == "function"

    @pytest.mark.asyncio
    async def test_unparseable_arguments_become_empty(self, model):
        response = _make_tool_call_response("current_weather", "{not json")
        with patch("pathways.llm.handle.acompletion", return_value=response):
            reply = await model.ainvoke([UserTurn(content="weather?")])

        assert reply.tool_calls[0].args == {}


class TestErrorMapping:
    """Provider failures surface as typed errors."""

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_invocation_error(self, model):
        with patch("pathways.llm.handle.acompletion", side_effect=Exception("API rate limit exceeded")):
            with pytest.raises(ModelInvocationError, match="LLM API call failed") as exc_info:
                await model.ainvoke([UserTurn(content="hi")])

        assert exc_info.value.kind == "model_invocation_error"
        assert str(exc_info.value.cause) == "API rate limit exceeded"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(**kwargs):
            await asyncio.sleep(5)
            return _make_text_response("too late")

        handle = ChatModel(provider="openai", model="gpt-4o-mini", timeout=0.01)
        with patch("pathways.llm.handle.acompletion", side_effect=slow):
            with pytest.raises(ModelTimeoutError) as exc_info:
                await handle.ainvoke([UserTurn(content="hi")])

        assert exc_info.value.kind == "timeout"
        assert isinstance(exc_info.value, ModelInvocationError)

    @pytest.mark.asyncio
    async def test_zero_timeout_means_no_limit(self):
        handle = ChatModel(provider="openai", model="gpt-4o-mini", timeout=0)
        with patch("pathways.llm.handle.acompletion", return_value=_make_text_response("ok")):
            reply = await handle.ainvoke([UserTurn(content="hi")])
        assert reply.content == "ok"


class TestMalformedResponses:
    """Responses that cannot be parsed surface as invocation errors."""

    @pytest.mark.asyncio
    async def test_empty_choices(self, model):
        response = SimpleNamespace(choices=[], usage=None, model="openai/gpt-4o-mini")
        with patch("pathways.llm.handle.acompletion", return_value=response):
            with pytest.raises(ModelInvocationError, match="Malformed response") as exc_info:
                await model.ainvoke([UserTurn(content="hi")])

        assert isinstance(exc_info.value.cause, IndexError)

    @pytest.mark.asyncio
    async def test_choice_without_message(self, model):
        response = SimpleNamespace(choices=[SimpleNamespace(finish_reason="stop")], usage=None)
        with patch("pathways.llm.handle.acompletion", return_value=response):
            with pytest.raises(ModelInvocationError):
                await model.ainvoke([UserTurn(content="hi")])

    @pytest.mark.asyncio
    async def test_tool_call_without_name(self, model):
        response = _make_tool_call_response("current_weather", {"location": "Paris"})
        response.choices[0].message.tool_calls[0].function.name = None
        with patch("pathways.llm.handle.acompletion", return_value=response):
            with pytest.raises(ModelInvocationError) as exc_info:
                await model.ainvoke([UserTurn(content="weather?")])

        assert exc_info.value.kind == "model_invocation_error"
