"""Convert persisted messages into the turns a model call expects."""

from collections.abc import Sequence
from typing import Any

from pathways.history.models import Message, Role
from pathways.llm.messages import (
    AssistantTurn,
    ModelMessage,
    SystemTurn,
    ToolTurn,
    UserTurn,
)


def transform_message(message: Message) -> ModelMessage:
    """
    Map one message to its model turn.

    Anything that is not user, system or tool is treated as an assistant
    reply. Unknown stored roles never get here: decoding already turned
    them into user messages.
    """
    match message.role:
        case Role.USER:
            return UserTurn(content=message.content)
        case Role.SYSTEM:
            return SystemTurn(content=message.content)
        case Role.TOOL:
            called = message.tool_called
            return ToolTurn(
                tool_call_id=message.id,
                name=called.name if called else "unknown",
                args=dict(called.args) if called else {},
                content=message.content,
            )
        case _:
            return AssistantTurn(content=message.content, tool_calls=list(message.tools or []))


def transform(messages: Sequence[Message]) -> list[ModelMessage]:
    """Map messages to model turns, one for one and in order."""
    return [transform_message(m) for m in messages]


def to_provider_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Transform messages and render them for the provider."""
    return [turn.to_provider() for turn in transform(messages)]
