"""
Role-tagged messages sent to a model.

A model call takes a sequence of UserTurn | SystemTurn | ToolTurn |
AssistantTurn. Each variant renders itself to the OpenAI-style dict that
LiteLLM expects via to_provider().
"""

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from pathways.history.models import ToolCallRequest


class UserTurn(BaseModel):
    role: Literal["user"] = "user"
    content: str

    def to_provider(self) -> dict[str, Any]:
        return {"role": "user", "content": self.content}


class SystemTurn(BaseModel):
    role: Literal["system"] = "system"
    content: str

    def to_provider(self) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


class ToolTurn(BaseModel):
    """Output of one tool call, tagged with the id of the call that produced it."""

    role: Literal["tool"] = "tool"
    tool_call_id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    content: str

    def to_provider(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "content": self.content,
        }


class AssistantTurn(BaseModel):
    """A model reply, optionally carrying the tool calls it requested."""

    role: Literal["assistant"] = "assistant"
    content: str
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)

    def to_provider(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.args),
                    },
                }
                for call in self.tool_calls
            ]
        return message


ModelMessage = Annotated[
    UserTurn | SystemTurn | ToolTurn | AssistantTurn,
    Field(discriminator="role"),
]
