"""
Invocable chat model handles.

A ChatModel wraps one (provider, model) pair behind LiteLLM's acompletion(),
so the rest of the system never sees a provider SDK. Handles are cheap,
immutable value objects: bind_tools() returns a new handle with tool
schemas attached for a single call and leaves the original untouched.

Design decisions:
- Provider failures are raised as ModelInvocationError, never swallowed
  here. Whether to degrade is the caller's decision (ToolRunner.decide and
  ChatSession both degrade to an apology).
- The per-call timeout wraps the whole provider call with asyncio.wait_for,
  which cancels the in-flight request when it fires.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

from litellm import acompletion
from pydantic import ValidationError

from pathways.config.logging import get_logger
from pathways.errors import ModelInvocationError, ModelTimeoutError
from pathways.history.models import ToolCallRequest
from pathways.llm.messages import ModelMessage
from pathways.llm.models import ModelReply, TokenUsage

logger = get_logger(__name__)


class ChatModel:
    """
    Handle for one model of one provider.

    Args:
        provider: Provider name, e.g. "openai" or "ollama"
        model: Model name as the provider knows it, e.g. "gpt-4o-mini"
        route: LiteLLM route prefix for the provider
        api_key: Provider API key (None for keyless providers such as Ollama)
        api_base: Provider base URL
        temperature: Sampling temperature (provider default when None)
        max_tokens: Response token limit (provider default when None)
        timeout: Seconds before the call is abandoned (no limit when None or 0)
    """

    def __init__(
        self,
        provider: str,
        model: str,
        route: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        tools: list[dict[str, Any]] | None = None,
        parallel_tool_calls: bool = False,
    ):
        self.provider = provider
        self.model = model
        self._route = route or provider
        self._api_key = api_key
        self._api_base = api_base
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout or None
        self._tools = tools
        self._parallel_tool_calls = parallel_tool_calls

    def __repr__(self) -> str:
        bound = f", tools={len(self._tools)}" if self._tools else ""
        return f"ChatModel({self.provider}/{self.model}{bound})"

    @property
    def litellm_model(self) -> str:
        """The model string LiteLLM routes on, e.g. 'ollama_chat/llama3.1'."""
        return f"{self._route}/{self.model}"

    @property
    def tools(self) -> list[dict[str, Any]] | None:
        return self._tools

    def bind_tools(
        self,
        tools: Sequence[dict[str, Any]],
        parallel_tool_calls: bool = False,
    ) -> ChatModel:
        """Return a copy of this handle that offers tools to the model."""
        return ChatModel(
            provider=self.provider,
            model=self.model,
            route=self._route,
            api_key=self._api_key,
            api_base=self._api_base,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            timeout=self._timeout,
            tools=list(tools),
            parallel_tool_calls=parallel_tool_calls,
        )

    def _call_kwargs(self, messages: Sequence[ModelMessage | dict[str, Any]]) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self.litellm_model,
            "messages": [m if isinstance(m, dict) else m.to_provider() for m in messages],
        }
        if self._api_key:
            call_kwargs["api_key"] = self._api_key
        if self._api_base:
            call_kwargs["api_base"] = self._api_base
        if self._temperature is not None:
            call_kwargs["temperature"] = self._temperature
        if self._max_tokens is not None:
            call_kwargs["max_tokens"] = self._max_tokens
        if self._tools:
            call_kwargs["tools"] = self._tools
            call_kwargs["parallel_tool_calls"] = self._parallel_tool_calls
            # Not every provider accepts parallel_tool_calls
            call_kwargs["drop_params"] = True
        return call_kwargs

    async def ainvoke(self, messages: Sequence[ModelMessage | dict[str, Any]]) -> ModelReply:
        """
        Send messages to the model and return its reply.

        Args:
            messages: Model turns (or already rendered provider dicts)

        Returns:
            ModelReply with content, tool calls, metadata and usage

        Raises:
            ModelTimeoutError: If the call exceeded the configured timeout
            ModelInvocationError: If the provider call failed for any other reason
                or its response could not be parsed
        """
        call_kwargs = self._call_kwargs(messages)
        logger.debug(
            f"Invoking {self.litellm_model} with {len(call_kwargs['messages'])} message(s)"
            + (f" and {len(self._tools)} tool(s)" if self._tools else "")
        )

        try:
            if self._timeout:
                response = await asyncio.wait_for(acompletion(**call_kwargs), timeout=self._timeout)
            else:
                response = await acompletion(**call_kwargs)
        except asyncio.TimeoutError as e:
            raise ModelTimeoutError(
                f"{self.litellm_model} did not answer within {self._timeout}s", cause=e
            ) from e
        except Exception as e:
            raise ModelInvocationError(f"LLM API call failed: {e}", cause=e) from e

        try:
            return _parse_response(response)
        except (AttributeError, IndexError, KeyError, TypeError, ValidationError) as e:
            raise ModelInvocationError(
                f"Malformed response from {self.litellm_model}: {e}", cause=e
            ) from e


def _parse_response(response: Any) -> ModelReply:
    choice = response.choices[0]
    message = choice.message

    usage = None
    raw_usage = getattr(response, "usage", None)
    if raw_usage is not None:
        usage = TokenUsage(
            input_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
        )

    return ModelReply(
        content=message.content or "",
        tool_calls=[_parse_tool_call(tc) for tc in (message.tool_calls or [])],
        response_metadata={
            "model": getattr(response, "model", None),
            "finish_reason": getattr(choice, "finish_reason", None),
        },
        usage_metadata=usage,
    )


def _parse_tool_call(tool_call: Any) -> ToolCallRequest:
    """Convert a provider tool call; arguments arrive as a JSON string."""
    raw_args = tool_call.function.arguments
    if isinstance(raw_args, dict):
        args = raw_args
    else:
        try:
            args = json.loads(raw_args or "{}")
        except (TypeError, ValueError):
            logger.warning(f"Tool call '{tool_call.function.name}' had unparseable arguments: {raw_args!r}")
            args = {}
        if not isinstance(args, dict):
            args = {}

    fields: dict[str, Any] = {"name": tool_call.function.name, "args": args}
    if getattr(tool_call, "id", None):
        fields["id"] = tool_call.id
    if getattr(tool_call, "type", None) in ("tool_call", "function"):
        fields["type"] = tool_call.type
    return ToolCallRequest(**fields)
