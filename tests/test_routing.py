from __future__ import annotations

import allure
import pytest

from agent_router.router.budget import BudgetLedger
from agent_router.router.errors import NoAvailableAgentError
from agent_router.router.metrics import MetricsStore
from agent_router.router.models import AgentConfig, Task, Tier
from agent_router.router.registry import AgentRegistry
from agent_router.router.routing import Router
from support import make_agent

pytestmark = [
    allure.epic("Routing"),
    allure.feature("Plan Construction"),
]


def _router(
    agents: list[AgentConfig],
    *,
    daily_limit_usd: float = 10.0,
    per_task_limit_usd: float = 1.0,
    allow_general_fallback: bool = True,
    plan_size: int = 3,
) -> Router:
    registry = AgentRegistry()
    registry.register_all(agents)
    return Router(
        registry=registry,
        ledger=BudgetLedger(
            daily_limit_usd=daily_limit_usd,
            per_task_limit_usd=per_task_limit_usd,
        ),
        plan_size=plan_size,
        allow_general_fallback=allow_general_fallback,
        metrics=MetricsStore(),
    )


def _task(tier_score: int, *hints: str, **kwargs: object) -> Task:
    return Task(
        description="handle request",
        domain_hints=hints,
        complexity_hint=tier_score,
        **kwargs,  # type: ignore[arg-type]
    )


def test_plan_picks_best_agent_at_recommended_tier_and_reserves_its_cost() -> None:
    router = _router(
        [
            make_agent("sec-budget", Tier.BUDGET, "security"),
            make_agent("sec-standard", Tier.STANDARD, "security"),
        ],
    )

    plan = router.plan(_task(5, "security"))

    assert plan.primary.agent_id == "sec-standard"
    assert plan.primary.expected_cost_usd == pytest.approx(0.10)
    assert [entry.agent_id for entry in plan.fallbacks] == ["sec-budget"]
    assert plan.degraded_from is None
    assert router.ledger.daily_spent_usd == pytest.approx(0.10)

    router.release_plan(plan)
    assert router.ledger.daily_spent_usd == 0.0


def test_plan_never_escalates_above_recommended_tier() -> None:
    router = _router([make_agent("sec-premium", Tier.PREMIUM, "security")])

    with pytest.raises(NoAvailableAgentError) as error:
        router.plan(_task(2, "security"))

    assert error.value.reason == NoAvailableAgentError.CAPABILITY
    assert router.ledger.daily_spent_usd == 0.0


def test_plan_degrades_to_cheaper_tier_when_nothing_matches() -> None:
    router = _router(
        [
            make_agent("sec-budget", Tier.BUDGET, "security"),
            make_agent("docs-premium", Tier.PREMIUM, "documentation"),
        ],
    )

    plan = router.plan(_task(9, "security"))

    assert plan.primary.agent_id == "sec-budget"
    assert plan.primary.tier == Tier.BUDGET
    assert plan.degraded_from == Tier.PREMIUM
    assert all(entry.tier.rank <= Tier.PREMIUM.rank for entry in plan.entries)


def test_plan_entries_are_distinct_and_capped_at_plan_size() -> None:
    router = _router(
        [make_agent(f"sec-{index}", Tier.STANDARD, "security") for index in range(5)],
        plan_size=3,
    )

    plan = router.plan(_task(5, "security"))

    agent_ids = [entry.agent_id for entry in plan.entries]
    assert len(agent_ids) == 3
    assert len(set(agent_ids)) == 3


def test_budget_substitutes_cheaper_agent_when_primary_rejected() -> None:
    router = _router(
        [
            make_agent("comp-premium", Tier.PREMIUM, "compliance"),
            make_agent("comp-budget", Tier.BUDGET, "compliance"),
        ],
        daily_limit_usd=0.30,
    )
    router.ledger.reserve(0.20)

    plan = router.plan(_task(9, "compliance"))

    assert plan.primary.agent_id == "comp-budget"
    assert router.ledger.daily_spent_usd == pytest.approx(0.25)
    decision = router.metrics.decisions()[-1]
    assert "budget rejected ['comp-premium']" in decision.reasoning


def test_budget_exhaustion_is_distinguished_from_capability_gap() -> None:
    router = _router(
        [make_agent("comp-budget", Tier.BUDGET, "compliance")],
        daily_limit_usd=0.04,
    )

    with pytest.raises(NoAvailableAgentError) as error:
        router.plan(_task(1, "compliance"))

    assert error.value.reason == NoAvailableAgentError.BUDGET
    assert error.value.rejected_agents == ("comp-budget",)


def test_task_ceiling_filters_expensive_agents() -> None:
    router = _router(
        [
            make_agent("comp-premium", Tier.PREMIUM, "compliance"),
            make_agent("comp-budget", Tier.BUDGET, "compliance"),
        ],
    )

    plan = router.plan(_task(9, "compliance", max_cost_usd=0.06))

    assert [entry.agent_id for entry in plan.entries] == ["comp-budget"]


def test_security_task_without_general_fallback_fails_when_specialists_are_down() -> None:
    router = _router(
        [
            make_agent("sec-a", Tier.BUDGET, "security"),
            make_agent("sec-b", Tier.BUDGET, "security"),
            make_agent("generalist", Tier.BUDGET, "general"),
        ],
        allow_general_fallback=False,
    )
    router.registry.set_available("sec-a", False)
    router.registry.set_available("sec-b", False)

    with pytest.raises(NoAvailableAgentError) as error:
        router.plan(Task(description="review encryption of stored PII"))

    assert error.value.reason == NoAvailableAgentError.CAPABILITY
    assert error.value.tags == ("security",)


def test_general_fallback_can_be_enabled_per_task() -> None:
    router = _router(
        [
            make_agent("sec-a", Tier.BUDGET, "security"),
            make_agent("generalist", Tier.BUDGET, "general"),
        ],
        allow_general_fallback=False,
    )
    router.registry.set_available("sec-a", False)

    plan = router.plan(
        Task(description="review encryption of stored PII", allow_general_fallback=True),
    )

    assert plan.primary.agent_id == "generalist"


def test_plan_records_routing_decision() -> None:
    router = _router([make_agent("sec-budget", Tier.BUDGET, "security")])
    task = _task(2, "security")

    plan = router.plan(task)

    decisions = router.metrics.decisions()
    assert len(decisions) == 1
    assert decisions[0].task_id == task.task_id
    assert decisions[0].primary_agent == plan.primary.agent_id
    assert decisions[0].task_summary == "handle request"


def test_tier_order_runs_cheapest_first() -> None:
    assert Tier.PREMIUM.cheaper() == Tier.STANDARD
    assert Tier.STANDARD.cheaper() == Tier.BUDGET
    assert Tier.BUDGET.cheaper() is None
    assert Tier.BUDGET.rank < Tier.STANDARD.rank < Tier.PREMIUM.rank
