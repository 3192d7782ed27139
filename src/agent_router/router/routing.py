"""Execution plan construction from classification, registry, and ledger state."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from agent_router.router.budget import BudgetLedger
from agent_router.router.classifier import DEFAULT_KEYWORD_TABLE, classify
from agent_router.router.errors import BudgetExceededError, NoAvailableAgentError
from agent_router.router.metrics import MetricsStore
from agent_router.router.models import (
    AgentSnapshot,
    Classification,
    ExecutionPlan,
    PlanEntry,
    ReservationToken,
    RoutingDecision,
    Task,
    Tier,
)
from agent_router.router.pricing import tier_cost
from agent_router.router.registry import AgentRegistry
from agent_router.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_PLAN_SIZE = 3
TASK_SUMMARY_CHARS = 100


class Router:
    """Builds one immutable primary + fallback plan per task.

    Routing never escalates above the recommended tier: when nothing matches
    there, the search degrades to cheaper tiers, and when the budget rejects
    an agent the next (cheaper) candidate is reserved instead.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: AgentRegistry,
        ledger: BudgetLedger,
        plan_size: int = DEFAULT_PLAN_SIZE,
        allow_general_fallback: bool = True,
        keyword_table: Mapping[str, frozenset[str]] = DEFAULT_KEYWORD_TABLE,
        tier_costs: dict[Tier, float] | None = None,
        metrics: MetricsStore | None = None,
    ) -> None:
        if plan_size < 1:
            raise ValueError(f"plan_size must be >= 1: {plan_size}")
        self.registry = registry
        self.ledger = ledger
        self.plan_size = plan_size
        self.allow_general_fallback = allow_general_fallback
        self.keyword_table = keyword_table
        self.tier_costs = tier_costs
        self.metrics = metrics

    def classify(self, task: Task) -> Classification:
        return classify(task, keyword_table=self.keyword_table)

    def plan(self, task: Task) -> ExecutionPlan:
        """Classify, select candidates, and reserve the primary's cost."""

        classification = self.classify(task)
        allow_general = (
            self.allow_general_fallback
            if task.allow_general_fallback is None
            else task.allow_general_fallback
        )
        pool, plan_tier = self._candidate_pool(
            classification=classification,
            allow_general=allow_general,
        )
        if not pool:
            logger.error(
                "No capable agent: task=%s tags=%s tier<=%s",
                task.task_id,
                sorted(classification.domain_tags),
                classification.recommended_tier.value,
            )
            raise NoAvailableAgentError(
                reason=NoAvailableAgentError.CAPABILITY,
                tags=classification.domain_tags,
                tier=classification.recommended_tier,
            )

        ceiling = (
            task.max_cost_usd if task.max_cost_usd is not None else self.ledger.per_task_limit_usd
        )
        affordable = [agent for agent in pool if self._cost(agent.cost_tier) <= ceiling]
        primary_index, reservation, rejected = self._reserve_primary(affordable)
        if reservation is None:
            rejected = tuple(agent.agent_id for agent in pool)
            logger.error(
                "No agent fits the budget: task=%s ceiling=$%.4f spent=$%.4f limit=$%.4f",
                task.task_id,
                ceiling,
                self.ledger.daily_spent_usd,
                self.ledger.daily_limit_usd,
            )
            raise NoAvailableAgentError(
                reason=NoAvailableAgentError.BUDGET,
                tags=classification.domain_tags,
                tier=classification.recommended_tier,
                rejected_agents=rejected,
            )

        selected = affordable[primary_index : primary_index + self.plan_size]
        plan = ExecutionPlan(
            task_id=task.task_id,
            classification=classification,
            entries=tuple(
                PlanEntry(
                    agent_id=agent.agent_id,
                    tier=agent.cost_tier,
                    expected_cost_usd=self._cost(agent.cost_tier),
                )
                for agent in selected
            ),
            reservation=reservation,
            degraded_from=(
                classification.recommended_tier
                if plan_tier != classification.recommended_tier
                else None
            ),
        )
        self._log_decision(task=task, plan=plan, budget_rejected=rejected)
        return plan

    def release_plan(self, plan: ExecutionPlan) -> None:
        """Return the primary reservation of a plan that will not be executed."""

        self.ledger.release(plan.reservation)

    def _candidate_pool(
        self,
        *,
        classification: Classification,
        allow_general: bool,
    ) -> tuple[list[AgentSnapshot], Tier | None]:
        pool: list[AgentSnapshot] = []
        plan_tier: Tier | None = None
        tier: Tier | None = classification.recommended_tier
        while tier is not None:
            candidates = self.registry.find_candidates(
                classification.domain_tags,
                tier,
                allow_general=allow_general,
            )
            if candidates and plan_tier is None:
                plan_tier = tier
            elif not candidates and plan_tier is None:
                logger.warning(
                    "No candidates at tier=%s for tags=%s; degrading",
                    tier.value,
                    sorted(classification.domain_tags),
                )
            pool.extend(candidates)
            tier = tier.cheaper()
        return pool, plan_tier

    def _reserve_primary(
        self,
        candidates: list[AgentSnapshot],
    ) -> tuple[int, ReservationToken | None, tuple[str, ...]]:
        rejected: list[str] = []
        for index, agent in enumerate(candidates):
            try:
                token = self.ledger.reserve(self._cost(agent.cost_tier))
            except BudgetExceededError as error:
                logger.warning("Budget rejected agent %s: %s", agent.agent_id, error)
                rejected.append(agent.agent_id)
                continue
            return index, token, tuple(rejected)
        return -1, None, tuple(rejected)

    def _cost(self, tier: Tier) -> float:
        return tier_cost(tier, self.tier_costs)

    def _log_decision(
        self,
        *,
        task: Task,
        plan: ExecutionPlan,
        budget_rejected: tuple[str, ...],
    ) -> None:
        classification = plan.classification
        reasoning = "; ".join(classification.reasoning)
        if plan.degraded_from is not None:
            reasoning += f"; degraded from {plan.degraded_from.value}"
        if budget_rejected:
            reasoning += f"; budget rejected {list(budget_rejected)}"
        logger.info(
            "Routed task=%s primary=%s tier=%s cost=$%.4f fallbacks=%s (%s)",
            task.task_id,
            plan.primary.agent_id,
            plan.primary.tier.value,
            plan.primary.expected_cost_usd,
            [entry.agent_id for entry in plan.fallbacks],
            reasoning,
        )
        if self.metrics is None:
            return
        self.metrics.record_decision(
            RoutingDecision(
                timestamp=utc_now(),
                task_id=task.task_id,
                task_summary=task.description[:TASK_SUMMARY_CHARS],
                primary_agent=plan.primary.agent_id,
                tier=plan.primary.tier,
                expected_cost_usd=plan.primary.expected_cost_usd,
                fallbacks=tuple(entry.agent_id for entry in plan.fallbacks),
                reasoning=reasoning,
            ),
        )
