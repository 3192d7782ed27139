"""Invoker interface for agent execution."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from agent_router.router.models import Task, Tier, TransportSpec


@dataclass(slots=True)
class InvocationRequest:
    """Inputs required to run one agent attempt."""

    agent_id: str
    tier: Tier
    transport: TransportSpec
    task: Task
    timeout_seconds: float
    cancel_event: threading.Event = field(default_factory=threading.Event)


@dataclass(slots=True)
class InvocationResult:
    """Agent output with the cost it reports, if any."""

    output: str
    cost_usd: float | None = None
    latency_ms: int | None = None


class AgentInvoker(Protocol):
    """Protocol implemented by agent transports."""

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        """Run one attempt; raise AgentInvocationError on failure."""
