"""
Model invocation layer.

Wraps LLM providers (OpenAI, OpenRouter, local Ollama) behind LiteLLM so
that the session controller only ever deals with an invocable handle per
provider/model pair:

    ProviderRegistry.handle(provider, model)  →  ChatModel
                                                    ↓
    ChatModel.bind_tools(schemas).ainvoke(turns)  →  ModelReply

Handles are shared across conversations and created once per pair.
"""

from pathways.llm.handle import ChatModel
from pathways.llm.messages import AssistantTurn, ModelMessage, SystemTurn, ToolTurn, UserTurn
from pathways.llm.models import ModelReply, TokenUsage
from pathways.llm.providers import Provider, ProviderRegistry

__all__ = [
    "AssistantTurn",
    "ChatModel",
    "ModelMessage",
    "ModelReply",
    "Provider",
    "ProviderRegistry",
    "SystemTurn",
    "TokenUsage",
    "ToolTurn",
    "UserTurn",
]
