"""Typed errors surfaced by the routing pipeline."""

from __future__ import annotations

from collections.abc import Iterable

from agent_router.router.models import AttemptFailure, ErrorKind, Tier


class RouterError(RuntimeError):
    """Base class for routing and execution errors."""


class ConfigurationError(RouterError):
    """Malformed catalog, keyword table, or settings."""


class DuplicateAgentError(ConfigurationError):
    """Agent id registered twice."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent already registered: {agent_id!r}")
        self.agent_id = agent_id


class UnknownAgentError(RouterError, KeyError):
    """Agent id is not present in the registry."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Unknown agent: {agent_id!r}")
        self.agent_id = agent_id

    def __str__(self) -> str:
        return str(self.args[0])


class BudgetExceededError(RouterError):
    """Reservation rejected because it would overspend the daily cap."""

    def __init__(self, *, requested_usd: float, spent_usd: float, limit_usd: float) -> None:
        super().__init__(
            f"Reservation of ${requested_usd:.4f} rejected: "
            f"spent=${spent_usd:.4f} limit=${limit_usd:.4f}",
        )
        self.requested_usd = requested_usd
        self.spent_usd = spent_usd
        self.limit_usd = limit_usd


class InvalidReservationError(RouterError):
    """Token is unknown or was already committed/released."""


class NoAvailableAgentError(RouterError):
    """No agent can take the task.

    ``reason`` is ``"capability"`` when nothing matches at any allowed tier and
    ``"budget"`` when matching agents exist but none fits the remaining budget.
    """

    CAPABILITY = "capability"
    BUDGET = "budget"

    def __init__(
        self,
        *,
        reason: str,
        tags: Iterable[str],
        tier: Tier,
        rejected_agents: tuple[str, ...] = (),
    ) -> None:
        self.reason = reason
        self.tags = tuple(sorted(tags))
        self.tier = tier
        self.rejected_agents = rejected_agents
        if reason == self.BUDGET:
            message = (
                "No agent fits the remaining budget "
                f"(tier<={tier.value}, tags={list(self.tags)}, rejected={list(rejected_agents)})"
            )
        else:
            message = f"No available agent for tags={list(self.tags)} at tier<={tier.value}"
        super().__init__(message)


class AgentInvocationError(RouterError):
    """Transport-level failure from one agent attempt."""

    def __init__(self, message: str, *, error_kind: ErrorKind) -> None:
        super().__init__(message)
        self.error_kind = error_kind


class AllAgentsExhaustedError(RouterError):
    """Every plan entry failed."""

    def __init__(self, *, task_id: str, failures: tuple[AttemptFailure, ...]) -> None:
        summary = ", ".join(f"{item.agent_id}={item.error_kind.value}" for item in failures)
        super().__init__(f"All agents exhausted for task {task_id}: {summary or 'no attempts'}")
        self.task_id = task_id
        self.failures = failures


class DeadlineExceededError(RouterError):
    """Task-level deadline passed before an attempt succeeded."""

    def __init__(self, *, task_id: str, failures: tuple[AttemptFailure, ...]) -> None:
        super().__init__(
            f"Deadline exceeded for task {task_id} after {len(failures)} attempt(s)",
        )
        self.task_id = task_id
        self.failures = failures
