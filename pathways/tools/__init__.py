"""
Tool Integration Layer.

Integrations are registered once at startup in an immutable ToolRegistry.
A caller model picks which of them a turn needs, and ToolRunner executes
them one at a time, turning every outcome into a ToolInvocationResult.
"""

from pathways.tools.base import (
    IntegrationInfo,
    IntegrationStatus,
    ToolDescriptor,
    ToolInvocationRequest,
    ToolInvocationResult,
    ToolOutput,
    ToolParams,
    ToolRegistry,
)
from pathways.tools.runner import Decision, ToolRunner
from pathways.tools.weather import CURRENT_WEATHER


def default_integrations() -> list[ToolDescriptor]:
    """The integrations that ship with Pathways."""
    return [CURRENT_WEATHER]


__all__ = [
    "CURRENT_WEATHER",
    "Decision",
    "IntegrationInfo",
    "IntegrationStatus",
    "ToolDescriptor",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "ToolOutput",
    "ToolParams",
    "ToolRegistry",
    "ToolRunner",
    "default_integrations",
]
