"""
Chat session controller.

One ChatSession serves one conversation. Each call to send() is a turn:

    load history → append + persist the new message(s)
                 → caller model decides tools (ToolRunner.decide)
                 → no tools:  primary model answers over the full context
                 → tools:     ToolRunner.run, then the online model answers
                              from the tool output under a moderation
                              instruction
                 → persist the assistant reply → Answer

Design decisions:
- The incoming message is persisted before any model is called, so a turn
  is on record even if generation fails afterwards.
- Model failures never escape send(). They are replaced by a fixed apology
  and reported through DegradedAnswer, so callers can tell the difference
  without parsing text. Store errors do propagate.
- The session keeps no state between turns; history is reloaded from the
  store every time.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from pathways.config.logging import get_logger
from pathways.errors import ModelInvocationError
from pathways.history.models import Message, Role, ToolCalled, ToolCallRequest, new_id
from pathways.history.store import ConversationStore
from pathways.history.transform import transform
from pathways.llm.handle import ChatModel
from pathways.llm.messages import ModelMessage, SystemTurn
from pathways.llm.models import ModelReply, TokenUsage
from pathways.prompts import APOLOGY, MODERATION_INSTRUCTION
from pathways.tools.base import ToolInvocationResult
from pathways.tools.runner import ToolRunner

logger = get_logger(__name__)

REPLY_ID_SUFFIX = "-response"


class Answer(BaseModel):
    """
    The outcome of a turn.

    Attributes:
        content: Text shown to the user
        message_id: Id under which the assistant reply was stored
        task_results: Tool results, when the turn ran tools
        response_metadata: Provider metadata of the answering call
        usage_metadata: Token usage of the answering call
    """

    content: str
    message_id: str
    task_results: list[ToolInvocationResult] | None = None
    response_metadata: dict[str, Any] = Field(default_factory=dict)
    usage_metadata: TokenUsage | None = None

    @property
    def degraded(self) -> bool:
        return False


class DegradedAnswer(Answer):
    """An answer produced after a model call in the turn failed."""

    cause: str

    @property
    def degraded(self) -> bool:
        return True


class TurnLocks:
    """
    One asyncio.Lock per conversation id.

    Locks are held weakly: once no turn is running or waiting for a
    conversation, its lock is dropped.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_conversation(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock


class ChatSession:
    """
    Runs turns of one conversation.

    Args:
        history: Message store of the conversation
        runner: Tool decision and execution
        primary: Model that answers turns that need no tools
        online: Model that answers from tool output (defaults to primary)
        turn_lock: When given, turns of this conversation run one at a time
    """

    def __init__(
        self,
        history: ConversationStore,
        runner: ToolRunner,
        primary: ChatModel,
        online: ChatModel | None = None,
        turn_lock: asyncio.Lock | None = None,
    ):
        self.history = history
        self._runner = runner
        self._primary = primary
        self._online = online or primary
        self._turn_lock = turn_lock

    @property
    def conversation_id(self) -> str:
        return self.history.conversation_id

    async def send(self, messages: Message | Sequence[Message]) -> Answer:
        """
        Run one turn.

        Args:
            messages: The new message, or several sent together. Messages
                with an empty id are given a fresh one before they are stored.

        Returns:
            Answer, or DegradedAnswer when a model call failed along the way

        Raises:
            ValueError: If no message was given
        """
        if isinstance(messages, Message):
            messages = [messages]
        incoming = [m if m.id else m.model_copy(update={"id": new_id()}) for m in messages]
        if not incoming:
            raise ValueError("send() needs at least one message")

        if self._turn_lock is None:
            return await self._turn(incoming)
        async with self._turn_lock:
            return await self._turn(incoming)

    async def _turn(self, incoming: list[Message]) -> Answer:
        context = await self.history.get_all() + incoming
        await self.history.add(incoming)
        logger.info(f"Turn in {self.conversation_id}: {len(context)} message(s) in context")

        causes: list[str] = []

        decision = await self._runner.decide(context)
        if decision.chat_completion.failed:
            causes.append(f"decide: {decision.chat_completion.error}")

        task_results: list[ToolInvocationResult] | None = None
        if not decision.tasks:
            reply = await self._invoke(self._primary, transform(context))
        else:
            task_results = await self._runner.run(decision.tasks)
            turns = self._grounding_turns(context, decision.tasks, task_results)
            reply = await self._invoke(self._online, turns)

        if reply.failed:
            causes.append(f"answer: {reply.error}")

        assistant = Message(
            id=self._reply_id(incoming),
            role=Role.ASSISTANT,
            content=reply.content,
        )
        await self.history.add(assistant)

        fields: dict[str, Any] = {
            "content": reply.content,
            "message_id": assistant.id,
            "task_results": task_results,
            "response_metadata": reply.response_metadata,
            "usage_metadata": reply.usage_metadata,
        }
        if causes:
            logger.warning(f"Turn in {self.conversation_id} degraded ({'; '.join(causes)})")
            return DegradedAnswer(**fields, cause="; ".join(causes))
        return Answer(**fields)

    @staticmethod
    def _grounding_turns(
        context: list[Message],
        tasks: list[ToolCallRequest],
        results: list[ToolInvocationResult],
    ) -> list[ModelMessage]:
        """Context plus the tool round, behind the moderation instruction."""
        tool_round = [Message(role=Role.ASSISTANT, content="", tools=tasks)]
        tool_round += [
            Message(
                id=task.id,
                role=Role.TOOL,
                content=result.content,
                tool_called=ToolCalled(name=task.name, args=task.args),
            )
            for task, result in zip(tasks, results)
        ]
        return [SystemTurn(content=MODERATION_INSTRUCTION), *transform(context + tool_round)]

    async def _invoke(self, model: ChatModel, turns: list[ModelMessage]) -> ModelReply:
        try:
            return await model.ainvoke(turns)
        except ModelInvocationError as e:
            logger.error(f"Answer generation failed on {model!r}: {e}", exc_info=True)
            return ModelReply(content=APOLOGY, error=e.kind)

    @staticmethod
    def _reply_id(incoming: list[Message]) -> str:
        return f"{incoming[-1].id}{REPLY_ID_SUFFIX}"
