"""
Base types for tool integrations.

An integration is described by a ToolDescriptor: a name, a description, a
pydantic params model (rendered to JSON schema for the caller model) and an
async handler. Descriptors are collected once into an immutable
ToolRegistry that lives for the whole process.

Example::

    class EchoParams(ToolParams):
        text: str = Field(description="Text to echo back")

    async def echo(args: dict[str, Any]) -> ToolOutput:
        return ToolOutput(content=args["text"])

    registry = ToolRegistry([
        ToolDescriptor(name="echo", description="Echo text", params_model=EchoParams, func=echo),
    ])
"""

from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field

from pathways.history.models import ToolCallRequest, utc_now

# The task handed to the runner is the tool call the model requested.
ToolInvocationRequest = ToolCallRequest


class IntegrationStatus(str, Enum):
    """Lifecycle status of a tool invocation."""

    SUBMITTED = "submitted"
    QUEUED = "queued"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    FATAL = "fatal"


class ToolParams(BaseModel):
    """
    Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is generated via
    model_json_schema() for the caller model's tool definitions.
    """


class ToolOutput(BaseModel):
    """
    What an integration handler returns.

    Handlers may also return a plain mapping with the same keys
    (status, content, attachments, metadata); the runner validates it
    into a ToolOutput.
    """

    status: IntegrationStatus = IntegrationStatus.COMPLETED
    content: str
    attachments: list[Any] | None = None
    metadata: dict[str, Any] | None = None


class IntegrationInfo(BaseModel):
    """Which integration produced a result, and how it was called."""

    id: str
    name: str
    description: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    passed_arguments: dict[str, Any] | None = None


class ToolInvocationResult(BaseModel):
    """Uniform result of one tool call, successful or not."""

    status: IntegrationStatus
    content: str
    attachments: list[Any] | None = None
    metadata: dict[str, Any] | None = None
    timestamp: str = Field(default_factory=utc_now)
    integration: IntegrationInfo


ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolOutput | Mapping[str, Any]]]


@dataclass(frozen=True)
class ToolDescriptor:
    """A registered integration."""

    name: str
    description: str
    func: ToolHandler
    params_model: type[ToolParams] | None = None

    def json_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments."""
        if self.params_model is None:
            return {"type": "object", "properties": {}}
        return self.params_model.model_json_schema()

    def to_openai_tool(self) -> dict[str, Any]:
        """Tool definition in the OpenAI function format LiteLLM expects."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }


class ToolRegistry(Mapping[str, ToolDescriptor]):
    """
    Read-only catalog of integrations, keyed by name.

    Built once from a sequence of descriptors; there is no way to add or
    remove tools afterwards.

    Raises:
        ValueError: If two descriptors share a name
    """

    def __init__(self, descriptors: Sequence[ToolDescriptor] = ()):
        tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in tools:
                raise ValueError(f"Duplicate tool name: {descriptor.name!r}")
            tools[descriptor.name] = descriptor
        self._tools = MappingProxyType(tools)

    def __getitem__(self, name: str) -> ToolDescriptor:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """OpenAI-format tool definitions for every registered tool."""
        return [t.to_openai_tool() for t in self._tools.values()]
