"""Test doubles shared across test modules."""

from __future__ import annotations

import threading
from collections.abc import Callable

from agent_router.router.errors import AgentInvocationError
from agent_router.router.invoker.base import InvocationRequest, InvocationResult
from agent_router.router.models import AgentConfig, ErrorKind, Tier, TransportSpec

Behaviour = InvocationResult | Exception | Callable[[InvocationRequest], InvocationResult]


def make_agent(agent_id: str, tier: Tier, *specializations: str) -> AgentConfig:
    return AgentConfig(
        agent_id=agent_id,
        specializations=frozenset(specializations),
        cost_tier=tier,
        transport=TransportSpec(kind="command", target=f"run-{agent_id} {{prompt}}"),
    )


class FakeInvoker:
    """Scripted invoker: each agent consumes its behaviours in order.

    An agent with no script left succeeds with a default output.
    """

    def __init__(self, script: dict[str, list[Behaviour]] | None = None) -> None:
        self.script = {agent_id: list(items) for agent_id, items in (script or {}).items()}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        with self._lock:
            self.calls.append(request.agent_id)
            queue = self.script.get(request.agent_id)
            behaviour = queue.pop(0) if queue else None
        if behaviour is None:
            return InvocationResult(output=f"{request.agent_id} done: {request.task.description}")
        if isinstance(behaviour, Exception):
            raise behaviour
        if callable(behaviour):
            return behaviour(request)
        return behaviour


def fail_with(kind: ErrorKind) -> AgentInvocationError:
    return AgentInvocationError(f"scripted {kind.value}", error_kind=kind)


def wait_for_cancel(request: InvocationRequest) -> InvocationResult:
    """Block like a hung agent until the coordinator gives up on the attempt."""

    request.cancel_event.wait(timeout=10)
    return InvocationResult(output="late result")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
