"""
Process-wide services.

AppContext builds the shared pieces once at startup (history backend,
model handles, tool registry, turn locks) and hands out ChatSessions wired
to them. It replaces module-level singletons: everything a session needs is
passed in explicitly.

Example::

    async with AppContext.from_settings(get_settings()) as app:
        session = app.create_session("conv-1")
        answer = await session.send(Message(role=Role.USER, content="Hi"))
"""

from __future__ import annotations

from collections.abc import Sequence

from pathways.config.logging import get_logger
from pathways.config.settings import Settings
from pathways.history.backends import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from pathways.history.store import ConversationStore
from pathways.llm.providers import ProviderRegistry
from pathways.session.chat import ChatSession, TurnLocks
from pathways.tools import ToolDescriptor, ToolRegistry, ToolRunner, default_integrations

logger = get_logger(__name__)


def create_backend(settings: Settings) -> KeyValueStore:
    """Build the history backend selected in settings."""
    if settings.store.backend == "file":
        return FileKeyValueStore(settings.store.path)
    return InMemoryKeyValueStore()


class AppContext:
    """
    Shared services for every conversation in the process.

    Args:
        backend: Key/value backend for history
        providers: Model handle pool
        tools: Integrations offered to the caller model
        serialize_turns: Run turns of the same conversation one at a time
    """

    def __init__(
        self,
        backend: KeyValueStore,
        providers: ProviderRegistry,
        tools: ToolRegistry,
        serialize_turns: bool = True,
    ):
        self.backend = backend
        self.providers = providers
        self.tools = tools
        self.turn_locks = TurnLocks() if serialize_turns else None
        self._initialized = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        integrations: Sequence[ToolDescriptor] | None = None,
    ) -> AppContext:
        """
        Build the context from settings.

        Args:
            settings: Application settings
            integrations: Tools to register (the built-in catalog when None)
        """
        return cls(
            backend=create_backend(settings),
            providers=ProviderRegistry.from_settings(settings),
            tools=ToolRegistry(default_integrations() if integrations is None else integrations),
            serialize_turns=settings.session.serialize_turns,
        )

    async def initialize(self) -> None:
        """Open the history backend."""
        if self._initialized:
            return
        await self.backend.initialize()
        self._initialized = True
        logger.info(
            f"Pathways ready: backend={type(self.backend).__name__}, "
            f"tools={', '.join(self.tools.names) or 'none'}"
        )

    async def close(self) -> None:
        """Close the history backend."""
        if not self._initialized:
            return
        await self.backend.close()
        self._initialized = False

    async def __aenter__(self):
        """Async context manager entry - initialize shared services."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - close shared services."""
        await self.close()
        return False

    def history(self, conversation_id: str) -> ConversationStore:
        """Message store for one conversation."""
        conversation_id = conversation_id.strip()
        if not conversation_id:
            raise ValueError("Conversation id cannot be empty")
        return ConversationStore(self.backend, conversation_id)

    def create_session(self, conversation_id: str) -> ChatSession:
        """
        Build a ChatSession for a conversation.

        Raises:
            ValueError: If the conversation id is blank or a configured
                provider is unknown
        """
        history = self.history(conversation_id)
        runner = ToolRunner(self.tools, self.providers.caller())
        lock = (
            self.turn_locks.for_conversation(history.conversation_id)
            if self.turn_locks is not None
            else None
        )
        return ChatSession(
            history=history,
            runner=runner,
            primary=self.providers.primary(),
            online=self.providers.online(),
            turn_lock=lock,
        )
