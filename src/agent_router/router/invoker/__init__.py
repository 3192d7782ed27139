"""Agent invoker implementations."""

from agent_router.router.invoker.base import AgentInvoker, InvocationRequest, InvocationResult
from agent_router.router.invoker.command import CommandAgentInvoker

__all__ = [
    "AgentInvoker",
    "CommandAgentInvoker",
    "InvocationRequest",
    "InvocationResult",
]
