"""Use-case service wiring registry, ledger, router, and coordinator together."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from agent_router.config import Settings
from agent_router.router.budget import BudgetLedger
from agent_router.router.catalog import load_catalog
from agent_router.router.coordinator import ExecutionCoordinator
from agent_router.router.errors import RouterError
from agent_router.router.invoker import AgentInvoker, CommandAgentInvoker
from agent_router.router.metrics import MetricsStore
from agent_router.router.models import (
    AgentSnapshot,
    BudgetSnapshot,
    Classification,
    ExecutionPlan,
    Task,
    TaskResult,
)
from agent_router.router.registry import AgentRegistry
from agent_router.router.repository import MetricsRepository
from agent_router.router.routing import Router

logger = logging.getLogger(__name__)


class TaskRouterService:
    """Single entry point for submitting tasks.

    Owns the worker pool and, when persistence is configured, the metrics
    repository; call `close()` (or use it as a context manager) when done.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: AgentRegistry,
        ledger: BudgetLedger,
        metrics: MetricsStore,
        router: Router,
        coordinator: ExecutionCoordinator,
        repository: MetricsRepository | None = None,
        max_workers: int = 8,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.metrics = metrics
        self.router = router
        self.coordinator = coordinator
        self.repository = repository
        self.max_workers = max_workers

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        invoker: AgentInvoker | None = None,
    ) -> TaskRouterService:
        """Build the full pipeline from settings and the agent catalog."""

        settings.validate()
        catalog = load_catalog(settings.catalog_path)

        registry = AgentRegistry(
            ema_alpha=settings.registry.ema_alpha,
            success_rate_floor=settings.registry.success_rate_floor,
            min_outcomes=settings.registry.min_outcomes,
            cooldown_seconds=settings.registry.cooldown_seconds,
        )
        registry.register_all(catalog.agents)

        ledger = BudgetLedger(
            daily_limit_usd=settings.budget.daily_limit_usd,
            per_task_limit_usd=settings.budget.per_task_limit_usd,
            alert_threshold_ratio=settings.budget.alert_threshold_ratio,
        )

        repository: MetricsRepository | None = None
        if settings.metrics_db_path is not None:
            repository = MetricsRepository(settings.metrics_db_path)
            repository.init_schema()
            already_spent = repository.spent_on(ledger.snapshot().day)
            if already_spent > 0:
                ledger.seed_spent(already_spent)
                logger.info("Restored today's spend from metrics: $%.4f", already_spent)

        metrics = MetricsStore(sink=repository)
        router = Router(
            registry=registry,
            ledger=ledger,
            plan_size=settings.routing.plan_size,
            allow_general_fallback=settings.routing.allow_general_fallback,
            keyword_table=catalog.keyword_table,
            tier_costs=settings.budget.tier_costs,
            metrics=metrics,
        )
        coordinator = ExecutionCoordinator(
            registry=registry,
            ledger=ledger,
            metrics=metrics,
            invoker=invoker or CommandAgentInvoker(),
            attempt_timeout_seconds=settings.execution.attempt_timeout_seconds,
            max_workers=settings.execution.max_workers,
        )
        logger.info(
            "Agent router ready: agents=%d daily_limit=$%.2f per_task_limit=$%.2f",
            len(registry),
            settings.budget.daily_limit_usd,
            settings.budget.per_task_limit_usd,
        )
        return cls(
            registry=registry,
            ledger=ledger,
            metrics=metrics,
            router=router,
            coordinator=coordinator,
            repository=repository,
            max_workers=settings.execution.max_workers,
        )

    def classify(self, task: Task) -> Classification:
        return self.router.classify(task)

    def plan_only(self, task: Task) -> ExecutionPlan:
        """Build a plan without running it; its reservation is returned at once."""

        plan = self.router.plan(task)
        self.router.release_plan(plan)
        return plan

    def submit(self, task: Task) -> TaskResult:
        """Route and execute one task."""

        plan = self.router.plan(task)
        return self.coordinator.execute(plan, task)

    def submit_many(self, tasks: Sequence[Task]) -> list[TaskResult | RouterError]:
        """Run tasks in parallel; results keep the input order.

        Routing and execution errors are returned in place of the task result
        so one failed task does not hide the others.
        """

        if not tasks:
            return []
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(tasks)),
            thread_name_prefix="task",
        ) as executor:
            futures = [executor.submit(self.submit, task) for task in tasks]
            results: list[TaskResult | RouterError] = []
            for task, future in zip(tasks, futures, strict=True):
                try:
                    results.append(future.result())
                except RouterError as error:
                    logger.warning("Task %s failed: %s", task.task_id, error)
                    results.append(error)
        return results

    def agents(self) -> list[AgentSnapshot]:
        return self.registry.snapshot()

    def budget(self) -> BudgetSnapshot:
        return self.ledger.snapshot()

    def close(self) -> None:
        """Close worker pool and DB resources."""

        self.coordinator.close()
        if self.repository is not None:
            self.repository.close()

    def __enter__(self) -> TaskRouterService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
