"""Append-only attempt metrics, routing decision log, and usage reports."""

from __future__ import annotations

import logging
import threading
from collections import Counter, defaultdict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from agent_router.router.models import MetricsRecord, RoutingDecision, Tier

logger = logging.getLogger(__name__)

DECISION_LOG_SIZE = 100
LOW_SUCCESS_RATE = 0.80
PREMIUM_COST_SHARE_MAX = 0.50
UNDERUTILIZATION_SHARE = 0.05
UNDERUTILIZATION_MIN_TASKS = 10
OVERUTILIZATION_SHARE = 0.60
DAYS_PER_MONTH = 30


class MetricsSink(Protocol):
    """Durable destination for appended records."""

    def append(self, record: MetricsRecord) -> None:
        """Persist one record."""

    def append_decision(self, decision: RoutingDecision) -> None:
        """Persist one routing decision."""


class MetricsStore:
    """Thread-safe append-only record of every attempt.

    Readers either take a full `records()` copy or follow the feed with
    `feed(offset)`, passing back the number of records already consumed.
    """

    def __init__(self, *, sink: MetricsSink | None = None) -> None:
        self._sink = sink
        self._lock = threading.Lock()
        self._records: list[MetricsRecord] = []
        self._decisions: deque[RoutingDecision] = deque(maxlen=DECISION_LOG_SIZE)
        self._listeners: list[Callable[[MetricsRecord], None]] = []

    def append(self, record: MetricsRecord) -> None:
        with self._lock:
            self._records.append(record)
            listeners = list(self._listeners)
        if self._sink is not None:
            try:
                self._sink.append(record)
            except Exception:
                logger.exception(
                    "Failed to persist metrics record: task=%s agent=%s",
                    record.task_id,
                    record.agent_id,
                )
        for listener in listeners:
            try:
                listener(record)
            except Exception:
                logger.exception("Metrics listener failed: task=%s", record.task_id)

    def records(self) -> tuple[MetricsRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def feed(self, offset: int = 0) -> tuple[MetricsRecord, ...]:
        """Records appended after the first `offset` ones."""

        with self._lock:
            return tuple(self._records[max(0, offset) :])

    def subscribe(self, listener: Callable[[MetricsRecord], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def record_decision(self, decision: RoutingDecision) -> None:
        with self._lock:
            self._decisions.append(decision)
        if self._sink is not None:
            try:
                self._sink.append_decision(decision)
            except Exception:
                logger.exception("Failed to persist routing decision: task=%s", decision.task_id)

    def decisions(self) -> tuple[RoutingDecision, ...]:
        with self._lock:
            return tuple(self._decisions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass(slots=True)
class AgentUsageMetric:
    """Usage and cost for one agent over a record window."""

    agent_id: str
    attempts: int
    successes: int
    cost_usd: float
    usage_share: float
    cost_share: float
    mean_duration_ms: float

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.successes / self.attempts


@dataclass(slots=True)
class Recommendation:
    """Routing tuning suggestion derived from a metrics summary."""

    kind: str
    agent_id: str
    issue: str
    suggestion: str


@dataclass(slots=True)
class MetricsSummary:
    """Aggregated view used by stats commands and reports."""

    total_attempts: int
    total_tasks: int
    succeeded_tasks: int
    total_cost_usd: float
    projected_monthly_cost_usd: float
    agents: list[AgentUsageMetric]
    error_kind_counts: dict[str, int]
    decision_tier_counts: dict[str, int]


def build_metrics_summary(
    records: Iterable[MetricsRecord],
    decisions: Iterable[RoutingDecision] = (),
) -> MetricsSummary:
    """Aggregate attempt records into per-agent usage and cost shares."""

    attempts = Counter[str]()
    successes = Counter[str]()
    costs: dict[str, float] = defaultdict(float)
    durations: dict[str, int] = defaultdict(int)
    error_kinds = Counter[str]()
    task_ids: set[str] = set()
    succeeded_task_ids: set[str] = set()
    days: set[object] = set()

    for record in records:
        attempts[record.agent_id] += 1
        durations[record.agent_id] += record.duration_ms
        task_ids.add(record.task_id)
        days.add(record.timestamp.date())
        if record.success:
            successes[record.agent_id] += 1
            costs[record.agent_id] += record.cost_usd
            succeeded_task_ids.add(record.task_id)
        elif record.error_kind is not None:
            error_kinds[record.error_kind.value] += 1

    total_attempts = sum(attempts.values())
    total_cost = sum(costs.values())
    agents = [
        AgentUsageMetric(
            agent_id=agent_id,
            attempts=count,
            successes=successes[agent_id],
            cost_usd=costs[agent_id],
            usage_share=count / total_attempts if total_attempts else 0.0,
            cost_share=costs[agent_id] / total_cost if total_cost else 0.0,
            mean_duration_ms=durations[agent_id] / count,
        )
        for agent_id, count in sorted(attempts.items())
    ]

    decision_tiers = Counter[str](decision.tier.value for decision in decisions)
    daily_cost = total_cost / len(days) if days else 0.0

    return MetricsSummary(
        total_attempts=total_attempts,
        total_tasks=len(task_ids),
        succeeded_tasks=len(succeeded_task_ids),
        total_cost_usd=total_cost,
        projected_monthly_cost_usd=daily_cost * DAYS_PER_MONTH,
        agents=agents,
        error_kind_counts=dict(error_kinds),
        decision_tier_counts=dict(decision_tiers),
    )


def build_recommendations(
    summary: MetricsSummary,
    *,
    agent_tiers: dict[str, Tier] | None = None,
) -> list[Recommendation]:
    """Derive tuning suggestions from usage, cost, and success patterns."""

    recommendations: list[Recommendation] = []
    tiers = agent_tiers or {}
    for item in summary.agents:
        if item.success_rate < LOW_SUCCESS_RATE:
            recommendations.append(
                Recommendation(
                    kind="performance",
                    agent_id=item.agent_id,
                    issue=f"Low success rate ({item.success_rate:.0%})",
                    suggestion="Route fewer tasks here or raise its tier's keyword breakpoints",
                ),
            )
        if tiers.get(item.agent_id) == Tier.PREMIUM and item.cost_share > PREMIUM_COST_SHARE_MAX:
            recommendations.append(
                Recommendation(
                    kind="cost",
                    agent_id=item.agent_id,
                    issue=f"High cost contribution ({item.cost_share:.0%})",
                    suggestion="Review classification so only complex tasks reach premium agents",
                ),
            )
        if (
            summary.total_attempts > UNDERUTILIZATION_MIN_TASKS
            and item.usage_share < UNDERUTILIZATION_SHARE
        ):
            recommendations.append(
                Recommendation(
                    kind="underutilization",
                    agent_id=item.agent_id,
                    issue=f"Low usage ({item.usage_share:.0%})",
                    suggestion="Review agent specializations or routing keywords",
                ),
            )
        if item.usage_share > OVERUTILIZATION_SHARE:
            recommendations.append(
                Recommendation(
                    kind="overutilization",
                    agent_id=item.agent_id,
                    issue=f"High usage ({item.usage_share:.0%})",
                    suggestion="Consider adding agents with similar specializations",
                ),
            )
    return recommendations


def render_stats_lines(
    *,
    summary: MetricsSummary,
    recommendations: list[Recommendation] | None = None,
) -> list[str]:
    """Render operator-facing metrics lines for CLI output."""

    lines = [
        "Agent router metrics",
        (
            f"Attempts: {summary.total_attempts} tasks={summary.total_tasks} "
            f"succeeded={summary.succeeded_tasks}"
        ),
        (
            f"Cost: total=${summary.total_cost_usd:.4f} "
            f"projected_monthly=${summary.projected_monthly_cost_usd:.2f}"
        ),
    ]
    if summary.agents:
        lines.append("Per-agent usage:")
        for item in summary.agents:
            lines.append(
                "  "
                f"agent={item.agent_id} attempts={item.attempts} "
                f"success_rate={item.success_rate:.3f} "
                f"usage={item.usage_share:.1%} cost=${item.cost_usd:.4f} "
                f"cost_share={item.cost_share:.1%} "
                f"mean_duration_ms={item.mean_duration_ms:.0f}",
            )
    else:
        lines.append("Per-agent usage: none")

    lines.append("Error kinds: " + (_fmt_key_value(summary.error_kind_counts) or "none"))
    lines.append(
        "Routing decisions by tier: " + (_fmt_key_value(summary.decision_tier_counts) or "none"),
    )
    if recommendations:
        lines.append("Recommendations:")
        for item in recommendations:
            lines.append(f"  [{item.kind}] {item.agent_id}: {item.issue}. {item.suggestion}")
    return lines


def _fmt_key_value(values: dict[str, int]) -> str:
    return " ".join(f"{key}={values[key]}" for key in sorted(values))
