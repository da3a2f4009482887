"""
Conversation history layer.

Persists messages per conversation in a byte-addressable key/value backend
and turns them into the role-tagged turns a model call expects.
"""

from pathways.history.backends import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from pathways.history.models import Message, MessageUser, Role, ToolCalled, ToolCallRequest
from pathways.history.store import ConversationStore

__all__ = [
    "ConversationStore",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "Message",
    "MessageUser",
    "Role",
    "ToolCallRequest",
    "ToolCalled",
]
