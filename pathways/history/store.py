"""
Per-conversation message history on top of a key/value backend.

Every message of a conversation is stored under ``<conversationId>:<messageId>``.
There is no conversation record: a conversation exists once one of its
messages is stored and is gone once all of them are deleted.
"""

from collections.abc import Sequence

from pathways.config.logging import get_logger
from pathways.history.backends import KeyValueStore
from pathways.history.models import Message

logger = get_logger(__name__)


class ConversationStore:
    """
    Message history of a single conversation.

    Reads always come back sorted by ascending timestamp, whatever order
    the backend returns keys in. Writes are last-write-wins per message id
    and nothing here is transactional: a message added while clear() runs
    may or may not survive. Backend I/O errors propagate to the caller.

    Args:
        backend: Shared key/value backend
        conversation_id: Conversation namespace for every key

    Example:
        >>> history = ConversationStore(InMemoryKeyValueStore(), "conv-1")
        >>> await history.add(Message(role=Role.USER, content="hi"))
        >>> [m.content for m in await history.get_all()]
        ['hi']
    """

    def __init__(self, backend: KeyValueStore, conversation_id: str):
        self._backend = backend
        self.conversation_id = conversation_id

    @property
    def prefix(self) -> str:
        return f"{self.conversation_id}:"

    def _key(self, message_id: str) -> str:
        return f"{self.prefix}{message_id}"

    async def get(self, ids: str | Sequence[str]) -> list[Message]:
        """
        Fetch messages by id, sorted ascending by timestamp.

        Ids with no stored value are skipped. Malformed records are decoded
        with defaults rather than raising.
        """
        if isinstance(ids, str):
            ids = [ids]
        if not ids:
            return []

        records = await self._backend.mget([self._key(i) for i in ids])
        messages = [Message.from_record(raw) for raw in records if raw is not None]
        return sorted(messages, key=lambda m: m.sort_key)

    async def all_keys(self) -> list[str]:
        """Every storage key in this conversation's namespace."""
        return [key async for key in self._backend.yield_keys(self.prefix)]

    async def get_all(self) -> list[Message]:
        """Every message of the conversation, oldest first."""
        keys = await self.all_keys()
        return await self.get([key.removeprefix(self.prefix) for key in keys])

    async def add(self, messages: Message | Sequence[Message]) -> None:
        """
        Persist one or more messages, overwriting any with the same id.

        Raises:
            ValueError: If a message has an empty id (it would be stored
                under the bare conversation prefix and read back as "0")
        """
        if isinstance(messages, Message):
            messages = [messages]
        if not messages:
            return
        if any(not m.id for m in messages):
            raise ValueError(f"Cannot store a message with an empty id in {self.conversation_id}")

        await self._backend.mset([(self._key(m.id), m.to_record()) for m in messages])
        logger.debug(f"Stored {len(messages)} message(s) in {self.conversation_id}")

    async def clear(self) -> None:
        """Delete every message currently stored for the conversation."""
        keys = await self.all_keys()
        if keys:
            await self._backend.mdelete(keys)
        logger.info(f"Cleared {len(keys)} message(s) from {self.conversation_id}")
