"""
Error kinds used across the orchestration pipeline.

Only persistence errors are allowed to reach the caller of
ChatSession.send(). The others are recovered where they happen and kept
around as the recorded cause of a degraded answer or a fatal task result.
"""


class PathwaysError(Exception):
    """Base class for all Pathways errors."""

    kind = "error"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ToolNotFound(PathwaysError):
    """A model requested an integration that is not in the registry."""

    kind = "tool_not_found"


class ToolExecutionError(PathwaysError):
    """An integration handler raised while running."""

    kind = "tool_execution_error"


class ModelInvocationError(PathwaysError):
    """The model provider call failed (network, auth, rate limit, ...)."""

    kind = "model_invocation_error"


class ModelTimeoutError(ModelInvocationError):
    """The model provider call did not finish within the configured timeout."""

    kind = "timeout"


class MalformedStoredMessage(PathwaysError):
    """A stored record could not be decoded as a message."""

    kind = "malformed_stored_message"
