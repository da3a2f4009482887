"""
Tool decision and execution.

ToolRunner asks the caller model which integrations a turn needs
(decide), then runs them one after another (run). Both halves turn
failures into data instead of exceptions:

- decide(): a failed caller-model call becomes an apology reply and zero
  tasks, so the turn carries on as a direct answer.
- invoke_call(): an unknown tool or a handler that raised becomes a
  result with status "fatal"; sibling calls in the batch still run.

Calls are never run concurrently. Integrations may depend on each other's
side effects, and the grounding model reads the results as if they had been
computed in order.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from pydantic import BaseModel, Field

from pathways.config.logging import get_logger
from pathways.errors import ModelInvocationError, ToolExecutionError, ToolNotFound
from pathways.history.models import Message, ToolCallRequest
from pathways.history.transform import transform
from pathways.llm.handle import ChatModel
from pathways.llm.models import ModelReply
from pathways.prompts import APOLOGY
from pathways.tools.base import (
    IntegrationInfo,
    IntegrationStatus,
    ToolInvocationResult,
    ToolOutput,
    ToolRegistry,
)

logger = get_logger(__name__)

NOT_FOUND_CONTENT = "Integration not found"
FAILED_CONTENT = "Integration failed"


class Decision(BaseModel):
    """Outcome of asking the caller model which tools to run."""

    chat_completion: ModelReply
    tasks: list[ToolCallRequest] = Field(default_factory=list)


class ToolRunner:
    """
    Runs integrations from a static registry on behalf of a caller model.

    Args:
        registry: Integrations available to the caller model
        caller_model: Model that decides which integrations to call
    """

    def __init__(self, registry: ToolRegistry, caller_model: ChatModel):
        self._registry = registry
        self._caller_model = caller_model

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(self, requests: Sequence[ToolCallRequest]) -> list[ToolInvocationResult]:
        """
        Execute requests sequentially, in input order.

        Returns:
            One result per request; result[i] belongs to requests[i]
        """
        results: list[ToolInvocationResult] = []
        for request in requests:
            results.append(await self.invoke_call(request))
        return results

    async def invoke_call(self, request: ToolCallRequest) -> ToolInvocationResult:
        """Look up one integration by name and run it."""
        descriptor = self._registry.get(request.name)
        if descriptor is None:
            logger.warning(f"Tool '{request.name}' requested but not registered")
            return ToolInvocationResult(
                status=IntegrationStatus.FATAL,
                content=NOT_FOUND_CONTENT,
                metadata={
                    "name": request.name,
                    "args": request.args,
                    "error": ToolNotFound.kind,
                },
                integration=IntegrationInfo(
                    id=request.id,
                    name="unknown",
                    description="unknown",
                    arguments={},
                    passed_arguments=request.args,
                ),
            )

        integration = IntegrationInfo(
            id=request.id,
            name=descriptor.name,
            description=descriptor.description,
            arguments=descriptor.json_schema(),
            passed_arguments=request.args,
        )

        logger.info(f"Tool '{request.name}' called with {request.args}")
        t0 = time.monotonic()

        try:
            if descriptor.params_model is not None:
                args = descriptor.params_model(**request.args).model_dump()
            else:
                args = dict(request.args)
            output = ToolOutput.model_validate(await descriptor.func(args))
        except Exception as e:
            elapsed = time.monotonic() - t0
            logger.exception(f"Tool '{request.name}' failed in {elapsed:.2f}s")
            error = ToolExecutionError(f"Tool '{request.name}' failed: {e}", cause=e)
            return ToolInvocationResult(
                status=IntegrationStatus.FATAL,
                content=FAILED_CONTENT,
                metadata={"error": error.kind, "detail": str(error)},
                integration=integration,
            )

        elapsed = time.monotonic() - t0
        logger.info(f"Tool '{request.name}' finished with status {output.status.value} in {elapsed:.2f}s")

        return ToolInvocationResult(
            status=output.status,
            content=output.content,
            attachments=output.attachments,
            metadata=output.metadata,
            integration=integration,
        )

    async def decide(self, history: Sequence[Message]) -> Decision:
        """
        Ask the caller model whether the conversation needs integrations.

        Requested tools are deduplicated by name (first request wins).
        Names that are not registered stay in the task list so that run()
        reports them as fatal results instead of losing them.

        Returns:
            Decision with the caller model's reply and the tasks to run
        """
        if not self._registry:
            return Decision(chat_completion=ModelReply())

        model = self._caller_model.bind_tools(self._registry.schemas(), parallel_tool_calls=False)

        try:
            reply = await model.ainvoke(transform(history))
        except ModelInvocationError as e:
            logger.error(f"Tool decision failed on {model!r}: {e}", exc_info=True)
            return Decision(chat_completion=ModelReply(content=APOLOGY, error=e.kind))

        tasks: list[ToolCallRequest] = []
        seen: set[str] = set()
        for call in reply.tool_calls:
            if call.name in seen:
                continue
            seen.add(call.name)
            if call.name not in self._registry:
                # Kept so run() reports it as a fatal result
                logger.warning(f"Caller model requested unknown tool '{call.name}'")
            tasks.append(call)

        if tasks:
            logger.info(f"Caller model requested {len(tasks)} tool(s): {', '.join(t.name for t in tasks)}")
        return Decision(chat_completion=reply, tasks=tasks)
