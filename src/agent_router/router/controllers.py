"""Controllers for agent router CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from agent_router.config import Settings
from agent_router.router.catalog import load_catalog
from agent_router.router.classifier import DEFAULT_KEYWORD_TABLE, classify
from agent_router.router.errors import AllAgentsExhaustedError, DeadlineExceededError, RouterError
from agent_router.router.metrics import (
    build_metrics_summary,
    build_recommendations,
    render_stats_lines,
)
from agent_router.router.models import (
    BudgetSnapshot,
    Classification,
    ExecutionPlan,
    Task,
    TaskResult,
)
from agent_router.router.repository import MetricsRepository
from agent_router.router.services import TaskRouterService


@dataclass(slots=True)
class TaskOptions:
    """Task fields collected from CLI options."""

    description: str
    domain_hints: tuple[str, ...] = ()
    max_cost_usd: float | None = None
    complexity_hint: int | None = None
    file_count: int = 1
    requires_compliance_review: bool = False
    affects_multiple_services: bool = False
    has_security_implications: bool = False
    deadline_seconds: float | None = None

    def to_task(self) -> Task:
        return Task(
            description=self.description,
            domain_hints=self.domain_hints,
            max_cost_usd=self.max_cost_usd,
            complexity_hint=self.complexity_hint,
            file_count=self.file_count,
            requires_compliance_review=self.requires_compliance_review,
            affects_multiple_services=self.affects_multiple_services,
            has_security_implications=self.has_security_implications,
            deadline_seconds=self.deadline_seconds,
        )


@dataclass(slots=True)
class ClassifyCommand:
    """CLI input for dry classification."""

    catalog_path: Path | None
    task: TaskOptions


@dataclass(slots=True)
class PlanCommand:
    """CLI input for plan preview."""

    catalog_path: Path | None
    metrics_db_path: Path | None
    task: TaskOptions


@dataclass(slots=True)
class RunCommand:
    """CLI input for routing and executing one or more tasks."""

    catalog_path: Path | None
    metrics_db_path: Path | None
    tasks: tuple[TaskOptions, ...]


@dataclass(slots=True)
class AgentsCommand:
    """CLI input for catalog listing."""

    catalog_path: Path | None


@dataclass(slots=True)
class StatsCommand:
    """CLI input for persisted metrics report."""

    catalog_path: Path | None
    metrics_db_path: Path | None
    hours: int


@dataclass(slots=True)
class RunResult:
    """Execution report to render in CLI."""

    lines: list[str]
    success: bool


class RouterCliController:
    """Coordinates classification, planning, execution, and reporting commands."""

    def classify(self, command: ClassifyCommand) -> list[str]:
        settings = Settings.from_env(catalog_path=command.catalog_path)
        keyword_table = (
            load_catalog(settings.catalog_path).keyword_table
            if settings.catalog_path.exists()
            else DEFAULT_KEYWORD_TABLE
        )
        classification = classify(command.task.to_task(), keyword_table=keyword_table)
        return _classification_lines(classification)

    def plan(self, command: PlanCommand) -> list[str]:
        settings = Settings.from_env(
            catalog_path=command.catalog_path,
            metrics_db_path=command.metrics_db_path,
        )
        with _service(settings) as service:
            plan = service.plan_only(command.task.to_task())
            budget = service.budget()
        return [
            *_classification_lines(plan.classification),
            *_plan_lines(plan),
            _budget_line(budget),
        ]

    def run(self, command: RunCommand) -> RunResult:
        """Route and execute tasks; several tasks run in parallel."""

        settings = Settings.from_env(
            catalog_path=command.catalog_path,
            metrics_db_path=command.metrics_db_path,
        )
        tasks = [options.to_task() for options in command.tasks]
        with _service(settings) as service:
            if len(tasks) == 1:
                try:
                    outcomes: list[TaskResult | RouterError] = [service.submit(tasks[0])]
                except RouterError as error:
                    outcomes = [error]
            else:
                outcomes = service.submit_many(tasks)
            budget = service.budget()

        lines: list[str] = []
        success = True
        for task, outcome in zip(tasks, outcomes, strict=True):
            if isinstance(outcome, TaskResult):
                lines.extend(_result_lines(outcome))
            else:
                success = False
                lines.extend(_error_lines(task, outcome))
        lines.append(_budget_line(budget))
        return RunResult(lines=lines, success=success)

    def agents(self, command: AgentsCommand) -> list[str]:
        settings = Settings.from_env(catalog_path=command.catalog_path)
        catalog = load_catalog(settings.catalog_path)
        lines = [f"Agents: {len(catalog.agents)} catalog={settings.catalog_path}"]
        for agent in sorted(catalog.agents, key=lambda item: (item.cost_tier.rank, item.agent_id)):
            lines.append(
                "  "
                f"{agent.agent_id}: tier={agent.cost_tier.value} "
                f"specializations={','.join(sorted(agent.specializations)) or '-'} "
                f"transport={agent.transport.kind}",
            )
            if agent.description:
                lines.append(f"    {agent.description}")
        return lines

    def stats(self, command: StatsCommand) -> list[str]:
        """Show usage, cost, and tuning recommendations from persisted metrics."""

        settings = Settings.from_env(
            catalog_path=command.catalog_path,
            metrics_db_path=command.metrics_db_path,
        )
        if settings.metrics_db_path is None:
            return [
                "Metrics persistence is disabled.",
                "Set AGENT_ROUTER_METRICS_DB_PATH or pass --metrics-db to record attempts.",
            ]
        cutoff = datetime.now(tz=UTC) - timedelta(hours=max(1, command.hours))
        with _repository(settings.metrics_db_path) as repository:
            records = repository.list_records(since=cutoff)
            decisions = repository.list_decisions(since=cutoff)

        agent_tiers = None
        if settings.catalog_path.exists():
            catalog = load_catalog(settings.catalog_path)
            agent_tiers = {agent.agent_id: agent.cost_tier for agent in catalog.agents}
        summary = build_metrics_summary(records, decisions=decisions)
        recommendations = build_recommendations(summary, agent_tiers=agent_tiers)
        return [
            f"Window: last {command.hours}h",
            *render_stats_lines(summary=summary, recommendations=recommendations),
        ]


def _classification_lines(classification: Classification) -> list[str]:
    lines = [
        "Classification: "
        f"score={classification.complexity_score} "
        f"tier={classification.recommended_tier.value} "
        f"type={classification.task_type} "
        f"tags={','.join(sorted(classification.domain_tags))}",
    ]
    if classification.unrecognized_hints:
        lines.append(f"Unrecognized hints: {', '.join(classification.unrecognized_hints)}")
    lines.extend(f"  {reason}" for reason in classification.reasoning)
    return lines


def _plan_lines(plan: ExecutionPlan) -> list[str]:
    lines = [f"Plan for task {plan.task_id}:"]
    if plan.degraded_from is not None:
        lines.append(f"  degraded from tier {plan.degraded_from.value}")
    for position, entry in enumerate(plan.entries, start=1):
        role = "primary" if position == 1 else "fallback"
        lines.append(
            "  "
            f"{position}. {entry.agent_id} ({role}) tier={entry.tier.value} "
            f"expected_cost=${entry.expected_cost_usd:.4f}",
        )
    return lines


def _result_lines(result: TaskResult) -> list[str]:
    lines = [
        "Task succeeded: "
        f"task_id={result.task_id} agent={result.agent_used} "
        f"cost=${result.cost_usd:.4f} latency_ms={result.latency_ms} "
        f"tier={result.classification.recommended_tier.value}",
    ]
    lines.extend(
        f"  failed attempt: {failure.agent_id} {failure.error_kind.value}: {failure.message}"
        for failure in result.failures
    )
    lines.append(result.output)
    return lines


def _error_lines(task: Task, error: RouterError) -> list[str]:
    lines = [f"Task failed: task_id={task.task_id} error={type(error).__name__}: {error}"]
    if isinstance(error, (AllAgentsExhaustedError, DeadlineExceededError)):
        lines.extend(
            f"  {failure.agent_id}: {failure.error_kind.value}: {failure.message}"
            for failure in error.failures
        )
    return lines


def _budget_line(budget: BudgetSnapshot) -> str:
    return (
        "Budget: "
        f"day={budget.day.isoformat()} spent=${budget.daily_spent_usd:.4f} "
        f"limit=${budget.daily_limit_usd:.4f} remaining=${budget.remaining_usd:.4f} "
        f"alert={budget.alert_level.value}"
    )


@contextmanager
def _service(settings: Settings) -> Iterator[TaskRouterService]:
    service = TaskRouterService.from_settings(settings)
    try:
        yield service
    finally:
        service.close()


@contextmanager
def _repository(db_path: Path) -> Iterator[MetricsRepository]:
    repository = MetricsRepository(db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
