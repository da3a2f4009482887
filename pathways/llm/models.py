"""
Response models for model invocations.

ModelReply is what every ChatModel.ainvoke() returns, whatever the
provider: the text, any tool calls, and the provider's metadata and token
usage passed through.
"""

from typing import Any

from pydantic import BaseModel, Field, computed_field

from pathways.history.models import ToolCallRequest


class TokenUsage(BaseModel):
    """Token counts reported by the provider for one call."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ModelReply(BaseModel):
    """
    The result of a single model call.

    Attributes:
        content: Reply text ("" when the model only requested tools)
        tool_calls: Tool calls requested by the model, in the order given
        response_metadata: Provider metadata (model name, finish reason, ...)
        usage_metadata: Token usage, when the provider reports it
        error: Set when this reply is a stand-in for a failed call
    """

    content: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    response_metadata: dict[str, Any] = Field(default_factory=dict)
    usage_metadata: TokenUsage | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None
