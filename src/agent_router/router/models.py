"""Domain models for task classification, routing, and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import uuid4


class Tier(str, Enum):
    """Cost/capability bucket, declared from cheapest to most expensive."""

    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        """Position in the cost ordering (0 is cheapest)."""

        return TIER_ORDER.index(self)

    def cheaper(self) -> Tier | None:
        """Next cheaper tier, or None for the cheapest one."""

        if self.rank == 0:
            return None
        return TIER_ORDER[self.rank - 1]


TIER_ORDER: tuple[Tier, ...] = (Tier.BUDGET, Tier.STANDARD, Tier.PREMIUM)


class AlertLevel(str, Enum):
    """Budget ledger alert levels."""

    OK = "ok"
    WARNING = "warning"
    EXHAUSTED = "exhausted"


class ErrorKind(str, Enum):
    """Normalized per-attempt failure kinds."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    UNREACHABLE = "unreachable"
    BUDGET_REJECTED = "budget_rejected"
    ABANDONED = "abandoned"


@dataclass(frozen=True, slots=True)
class TransportSpec:
    """How the external invoker reaches an agent."""

    kind: str
    target: str
    auth_ref: str | None = None


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Load-time agent descriptor from the catalog."""

    agent_id: str
    specializations: frozenset[str]
    cost_tier: Tier
    transport: TransportSpec
    description: str = ""


@dataclass(frozen=True, slots=True)
class AgentSnapshot:
    """Point-in-time view of an agent and its rolling statistics."""

    config: AgentConfig
    success_rate: float
    average_latency_ms: float
    outcomes_recorded: int
    consecutive_failures: int
    available: bool
    disabled_until: float | None

    @property
    def agent_id(self) -> str:
        return self.config.agent_id

    @property
    def cost_tier(self) -> Tier:
        return self.config.cost_tier

    @property
    def specializations(self) -> frozenset[str]:
        return self.config.specializations


@dataclass(slots=True)
class Task:
    """Unit of work submitted to the router."""

    description: str
    domain_hints: tuple[str, ...] = ()
    max_cost_usd: float | None = None
    task_id: str = field(default_factory=lambda: uuid4().hex)
    complexity_hint: int | None = None
    file_count: int = 1
    requires_compliance_review: bool = False
    affects_multiple_services: bool = False
    has_security_implications: bool = False
    allow_general_fallback: bool | None = None
    deadline_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class Classification:
    """Structured result of analyzing one task."""

    complexity_score: int
    domain_tags: frozenset[str]
    recommended_tier: Tier
    task_type: str = "general"
    unrecognized_hints: tuple[str, ...] = ()
    reasoning: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReservationToken:
    """Handle for one tentative budget deduction."""

    token_id: str
    amount_usd: float
    day: date


@dataclass(frozen=True, slots=True)
class BudgetSnapshot:
    """Readable ledger state for CLI and reports."""

    day: date
    daily_spent_usd: float
    daily_limit_usd: float
    per_task_limit_usd: float
    remaining_usd: float
    pending_reservations: int
    alert_level: AlertLevel


@dataclass(frozen=True, slots=True)
class PlanEntry:
    """One agent in an execution plan."""

    agent_id: str
    tier: Tier
    expected_cost_usd: float


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Ordered primary + fallback agents for one task."""

    task_id: str
    classification: Classification
    entries: tuple[PlanEntry, ...]
    reservation: ReservationToken
    degraded_from: Tier | None = None

    @property
    def primary(self) -> PlanEntry:
        return self.entries[0]

    @property
    def fallbacks(self) -> tuple[PlanEntry, ...]:
        return self.entries[1:]


@dataclass(frozen=True, slots=True)
class AttemptFailure:
    """Why one plan entry did not produce a result."""

    agent_id: str
    error_kind: ErrorKind
    message: str


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Successful task outcome returned to the caller."""

    task_id: str
    agent_used: str
    cost_usd: float
    output: str
    latency_ms: int
    classification: Classification
    failures: tuple[AttemptFailure, ...] = ()


@dataclass(frozen=True, slots=True)
class MetricsRecord:
    """Append-only record of one agent attempt."""

    task_id: str
    agent_id: str
    cost_usd: float
    duration_ms: int
    success: bool
    timestamp: datetime
    error_kind: ErrorKind | None = None


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """Routing decision log entry."""

    timestamp: datetime
    task_id: str
    task_summary: str
    primary_agent: str
    tier: Tier
    expected_cost_usd: float
    fallbacks: tuple[str, ...]
    reasoning: str
