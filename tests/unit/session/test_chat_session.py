"""
Unit tests for ChatSession.

Tests cover:
- Direct answers (no tools) and what gets persisted
- Tool turns answered by the online model under the moderation instruction
- Fatal results for unknown tools
- Degraded answers when a model call fails
- Reply ids and per-conversation turn serialization
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pathways.errors import ModelInvocationError, ModelTimeoutError
from pathways.history.backends import InMemoryKeyValueStore
from pathways.history.models import Message, Role, ToolCallRequest
from pathways.history.store import ConversationStore
from pathways.llm.handle import ChatModel
from pathways.llm.messages import AssistantTurn, SystemTurn, ToolTurn, UserTurn
from pathways.llm.models import ModelReply, TokenUsage
from pathways.prompts import APOLOGY, MODERATION_INSTRUCTION
from pathways.session.chat import Answer, ChatSession, DegradedAnswer, TurnLocks
from pathways.tools.base import (
    IntegrationStatus,
    ToolDescriptor,
    ToolOutput,
    ToolRegistry,
)
from pathways.tools.runner import ToolRunner
from pathways.tools.weather import CurrentWeatherParams


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _model(*replies, error=None) -> MagicMock:
    """Mock ChatModel answering with *replies* in order, or raising error."""
    model = MagicMock()
    if error is not None:
        model.ainvoke = AsyncMock(side_effect=error)
    else:
        model.ainvoke = AsyncMock(side_effect=list(replies))
    model.bind_tools.return_value = model
    return model


def _user(content: str, msg_id: str = "msg-1", timestamp: str = "2024-05-01T10:00:00+00:00") -> Message:
    return Message(id=msg_id, role=Role.USER, timestamp=timestamp, content=content)


async def fake_weather(args):
    return ToolOutput(content=f"The weather in {args['location']} is currently 21°C and sunny.")


WEATHER = ToolDescriptor(
    name="current_weather",
    description="Get the weather for a given location",
    params_model=CurrentWeatherParams,
    func=fake_weather,
)

PARIS_CALL = ToolCallRequest(id="call_1", name="current_weather", args={"location": "Paris"})


@pytest.fixture
def history():
    return ConversationStore(InMemoryKeyValueStore(), "conv-1")


def _session(history, caller, primary, online=None, tools=(WEATHER,), turn_lock=None) -> ChatSession:
    runner = ToolRunner(ToolRegistry(list(tools)), caller)
    return ChatSession(history, runner, primary, online=online, turn_lock=turn_lock)


# ---------------------------------------------------------------------------
# Test Classes
# ---------------------------------------------------------------------------

class TestDirectAnswer:
    """Turns where the caller model requests no tools."""

    @pytest.mark.asyncio
    async def test_answer_and_history(self, history):
        caller = _model(ModelReply(content=""))
        primary = _model(ModelReply(content="4", usage_metadata=TokenUsage(input_tokens=12, output_tokens=1)))
        session = _session(history, caller, primary)

        answer = await session.send(_user("What's 2+2?"))

        assert isinstance(answer, Answer)
        assert not answer.degraded
        assert answer.content == "4"
        assert answer.task_results is None
        assert answer.usage_metadata.total_tokens == 13

        stored = await history.get_all()
        assert len(stored) == 2
        assert [m.role for m in stored] == [Role.USER, Role.ASSISTANT]
        assert stored[1].content == "4"

    @pytest.mark.asyncio
    async def test_primary_sees_full_context_without_instruction(self, history):
        await history.add(Message(
            id="old", role=Role.USER, timestamp="2024-05-01T09:00:00+00:00", content="Hi"
        ))
        caller = _model(ModelReply())
        primary = _model(ModelReply(content="4"))

        await _session(history, caller, primary).send(_user("What's 2+2?"))

        turns = primary.ainvoke.call_args.args[0]
        assert [t.content for t in turns] == ["Hi", "What's 2+2?"]
        assert not any(isinstance(t, SystemTurn) for t in turns)

    @pytest.mark.asyncio
    async def test_reply_id_derived_from_last_input(self, history):
        session = _session(history, _model(ModelReply()), _model(ModelReply(content="ok")))

        answer = await session.send([
            _user("first", msg_id="a"),
            _user("second", msg_id="b", timestamp="2024-05-01T10:00:01+00:00"),
        ])

        assert answer.message_id == "b-response"
        assert [m.id for m in await history.get_all()] == ["a", "b", "b-response"]

    @pytest.mark.asyncio
    async def test_empty_incoming_id_replaced(self, history):
        session = _session(history, _model(ModelReply()), _model(ModelReply(content="ok")))

        answer = await session.send(_user("hi", msg_id=""))

        stored = await history.get_all()
        assert stored[0].id
        assert stored[0].id != "0"
        assert answer.message_id == f"{stored[0].id}-response"
        assert [m.id for m in stored] == [stored[0].id, answer.message_id]

    @pytest.mark.asyncio
    async def test_send_requires_a_message(self, history):
        session = _session(history, _model(), _model())
        with pytest.raises(ValueError):
            await session.send([])


class TestToolTurn:
    """Turns where the caller model requests integrations."""

    @pytest.mark.asyncio
    async def test_weather_question(self, history):
        caller = _model(ModelReply(tool_calls=[PARIS_CALL]))
        primary = _model()
        online = _model(ModelReply(content="It's 21°C and sunny in Paris."))
        session = _session(history, caller, primary, online=online)

        answer = await session.send(_user("What's the weather in Paris?"))

        assert answer.content == "It's 21°C and sunny in Paris."
        assert len(answer.task_results) == 1
        assert answer.task_results[0].status == IntegrationStatus.COMPLETED
        assert answer.task_results[0].integration.name == "current_weather"
        primary.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_grounding_turns(self, history):
        caller = _model(ModelReply(tool_calls=[PARIS_CALL]))
        online = _model(ModelReply(content="Sunny."))
        await _session(history, caller, _model(), online=online).send(_user("Weather in Paris?"))

        turns = online.ainvoke.call_args.args[0]
        assert isinstance(turns[0], SystemTurn)
        assert turns[0].content == MODERATION_INSTRUCTION
        assert isinstance(turns[1], UserTurn)
        assert isinstance(turns[2], AssistantTurn)
        assert turns[2].tool_calls == [PARIS_CALL]
        assert isinstance(turns[3], ToolTurn)
        assert turns[3].tool_call_id == "call_1"
        assert turns[3].name == "current_weather"
        assert turns[3].args == {"location": "Paris"}
        assert "21°C and sunny" in turns[3].content

    @pytest.mark.asyncio
    async def test_online_falls_back_to_primary(self, history):
        caller = _model(ModelReply(tool_calls=[PARIS_CALL]))
        primary = _model(ModelReply(content="Sunny."))
        answer = await _session(history, caller, primary).send(_user("Weather in Paris?"))

        assert answer.content == "Sunny."
        assert isinstance(primary.ainvoke.call_args.args[0][0], SystemTurn)

    @pytest.mark.asyncio
    async def test_tool_round_is_not_persisted(self, history):
        caller = _model(ModelReply(tool_calls=[PARIS_CALL]))
        online = _model(ModelReply(content="Sunny."))
        await _session(history, caller, _model(), online=online).send(_user("Weather in Paris?"))

        stored = await history.get_all()
        assert [m.role for m in stored] == [Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_mapping_returning_tool(self, history):
        async def plain_weather(args):
            return {"status": "completed", "content": "sunny"}

        tool = ToolDescriptor(name="w", description="Weather", func=plain_weather)
        caller = _model(ModelReply(tool_calls=[ToolCallRequest(name="w")]))
        online = _model(ModelReply(content="It's sunny."))
        answer = await _session(history, caller, _model(), online=online, tools=(tool,)).send(_user("Weather?"))

        assert answer.task_results[0].status == IntegrationStatus.COMPLETED
        assert answer.task_results[0].content == "sunny"
        assert answer.content == "It's sunny."

    @pytest.mark.asyncio
    async def test_unknown_tool_is_fatal_result(self, history):
        caller = _model(ModelReply(tool_calls=[ToolCallRequest(name="nonexistent")]))
        online = _model(ModelReply(content="I'm sorry, but I couldn't find that information."))
        answer = await _session(history, caller, _model(), online=online).send(_user("Do the thing"))

        assert len(answer.task_results) == 1
        assert answer.task_results[0].status == IntegrationStatus.FATAL
        assert answer.task_results[0].metadata["error"] == "tool_not_found"
        assert not answer.degraded


class TestDegradedAnswers:
    """Model failures are turned into an apology, never raised."""

    @pytest.mark.asyncio
    async def test_primary_failure(self, history):
        caller = _model(ModelReply())
        primary = _model(error=ModelInvocationError("LLM API call failed: 503"))
        answer = await _session(history, caller, primary).send(_user("What's 2+2?"))

        assert isinstance(answer, DegradedAnswer)
        assert answer.degraded
        assert answer.content == APOLOGY
        assert answer.cause == "answer: model_invocation_error"

    @pytest.mark.asyncio
    async def test_incoming_and_apology_persisted(self, history):
        caller = _model(ModelReply())
        primary = _model(error=ModelTimeoutError("too slow"))
        await _session(history, caller, primary).send(_user("What's 2+2?"))

        stored = await history.get_all()
        assert [m.content for m in stored] == ["What's 2+2?", APOLOGY]

    @pytest.mark.asyncio
    async def test_caller_failure_falls_back_to_direct_answer(self, history):
        caller = _model(error=ModelInvocationError("connection refused"))
        primary = _model(ModelReply(content="4"))
        answer = await _session(history, caller, primary).send(_user("What's 2+2?"))

        assert answer.content == "4"
        assert answer.degraded
        assert answer.cause == "decide: model_invocation_error"

    @pytest.mark.asyncio
    async def test_every_failure_recorded(self, history):
        caller = _model(error=ModelInvocationError("down"))
        primary = _model(error=ModelTimeoutError("too slow"))
        answer = await _session(history, caller, primary).send(_user("hi"))

        assert answer.cause == "decide: model_invocation_error; answer: timeout"

    @pytest.mark.asyncio
    async def test_malformed_provider_response(self, history):
        caller = ChatModel(provider="ollama", model="llama3.1", route="ollama_chat")
        primary = ChatModel(provider="openai", model="gpt-4o-mini")
        empty = SimpleNamespace(choices=[], usage=None, model="x")

        with patch("pathways.llm.handle.acompletion", AsyncMock(return_value=empty)):
            answer = await _session(history, caller, primary).send(_user("hi"))

        assert answer.content == APOLOGY
        assert answer.cause == "decide: model_invocation_error; answer: model_invocation_error"
        assert [m.content for m in await history.get_all()] == ["hi", APOLOGY]

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self):
        backend = AsyncMock()
        backend.yield_keys = MagicMock(side_effect=ConnectionError("store down"))
        history = ConversationStore(backend, "conv-1")
        session = _session(history, _model(ModelReply()), _model(ModelReply(content="4")))

        with pytest.raises(ConnectionError):
            await session.send(_user("hi"))


class TestTurnLocks:
    """Per-conversation serialization."""

    def test_same_lock_per_conversation(self):
        locks = TurnLocks()
        lock = locks.for_conversation("conv-1")
        assert locks.for_conversation("conv-1") is lock
        assert locks.for_conversation("conv-2") is not lock

    @pytest.mark.asyncio
    async def test_turns_do_not_interleave(self, history):
        events = []

        async def slow_answer(turns):
            events.append(("start", turns[-1].content))
            await asyncio.sleep(0.01)
            events.append(("end", turns[-1].content))
            return ModelReply(content="ok")

        caller = _model(ModelReply(), ModelReply())
        primary = MagicMock()
        primary.ainvoke = AsyncMock(side_effect=slow_answer)
        lock = TurnLocks().for_conversation("conv-1")
        session = _session(history, caller, primary, turn_lock=lock)

        await asyncio.gather(
            session.send(_user("one", msg_id="1")),
            session.send(_user("two", msg_id="2", timestamp="2024-05-01T10:00:01+00:00")),
        )

        assert events == [("start", "one"), ("end", "one"), ("start", "two"), ("end", "two")]

    @pytest.mark.asyncio
    async def test_second_turn_sees_first_reply(self, history):
        seen = []

        async def answer(turns):
            seen.append([t.content for t in turns])
            return ModelReply(content=f"reply {len(seen)}")

        caller = _model(ModelReply(), ModelReply())
        primary = MagicMock()
        primary.ainvoke = AsyncMock(side_effect=answer)
        lock = TurnLocks().for_conversation("conv-1")
        session = _session(history, caller, primary, turn_lock=lock)

        await asyncio.gather(
            session.send(_user("one", msg_id="1")),
            session.send(_user("two", msg_id="2", timestamp="2024-05-01T10:00:01+00:00")),
        )

        assert "reply 1" in seen[1]
