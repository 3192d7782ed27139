from __future__ import annotations

import threading

import allure
import pytest

from agent_router.router.errors import DuplicateAgentError, UnknownAgentError
from agent_router.router.models import Tier
from agent_router.router.registry import AgentRegistry
from support import FakeClock, make_agent

pytestmark = [
    allure.epic("Routing"),
    allure.feature("Agent Registry"),
]


def _registry(clock: FakeClock | None = None) -> AgentRegistry:
    if clock is None:
        return AgentRegistry(ema_alpha=0.2, success_rate_floor=0.5, min_outcomes=5)
    return AgentRegistry(
        ema_alpha=0.2,
        success_rate_floor=0.5,
        min_outcomes=5,
        cooldown_seconds=600,
        clock=clock,
    )


def test_register_rejects_duplicate_ids() -> None:
    registry = _registry()
    registry.register(make_agent("a", Tier.BUDGET, "security"))

    with pytest.raises(DuplicateAgentError):
        registry.register(make_agent("a", Tier.PREMIUM, "compliance"))


def test_unknown_agent_raises_typed_error() -> None:
    registry = _registry()

    with pytest.raises(UnknownAgentError) as error:
        registry.record_outcome("ghost", True, 10)
    assert error.value.agent_id == "ghost"
    assert isinstance(error.value, KeyError)


def test_find_candidates_filters_by_tier_and_tags() -> None:
    registry = _registry()
    registry.register_all(
        [
            make_agent("sec-budget", Tier.BUDGET, "security"),
            make_agent("sec-premium", Tier.PREMIUM, "security"),
            make_agent("docs-budget", Tier.BUDGET, "documentation"),
        ],
    )

    candidates = registry.find_candidates({"security"}, Tier.BUDGET)

    assert [item.agent_id for item in candidates] == ["sec-budget"]


def test_find_candidates_orders_by_match_then_success_then_latency_then_id() -> None:
    registry = _registry()
    registry.register_all(
        [
            make_agent("one-tag", Tier.STANDARD, "security"),
            make_agent("two-tags", Tier.STANDARD, "security", "compliance"),
            make_agent("slow", Tier.STANDARD, "security"),
            make_agent("flaky", Tier.STANDARD, "security"),
            make_agent("also-one-tag", Tier.STANDARD, "security"),
        ],
    )
    registry.record_outcome("one-tag", True, 100)
    registry.record_outcome("also-one-tag", True, 100)
    registry.record_outcome("slow", True, 900)
    registry.record_outcome("flaky", False, 50)

    candidates = registry.find_candidates({"security", "compliance"}, Tier.STANDARD)

    assert [item.agent_id for item in candidates] == [
        "two-tags",
        "also-one-tag",
        "one-tag",
        "slow",
        "flaky",
    ]


def test_general_agents_only_when_allowed() -> None:
    registry = _registry()
    registry.register(make_agent("generalist", Tier.BUDGET, "general"))

    assert registry.find_candidates({"security"}, Tier.BUDGET) == []
    assert [
        item.agent_id
        for item in registry.find_candidates({"security"}, Tier.BUDGET, allow_general=True)
    ] == ["generalist"]


def test_record_outcome_updates_rolling_averages() -> None:
    registry = _registry()
    registry.register(make_agent("a", Tier.BUDGET, "security"))

    first = registry.record_outcome("a", False, 100)
    second = registry.record_outcome("a", True, 200)

    assert first.success_rate == pytest.approx(0.8)
    assert first.average_latency_ms == pytest.approx(100.0)
    assert first.consecutive_failures == 1
    assert second.success_rate == pytest.approx(0.84)
    assert second.average_latency_ms == pytest.approx(120.0)
    assert second.consecutive_failures == 0
    assert second.outcomes_recorded == 2


def test_circuit_opens_after_min_outcomes_and_reopens_after_cooldown(
    fake_clock: FakeClock,
) -> None:
    registry = _registry(fake_clock)
    registry.register(make_agent("a", Tier.BUDGET, "security"))

    for _ in range(4):
        registry.record_outcome("a", False, 10)
    assert registry.get("a").available

    tripped = registry.record_outcome("a", False, 10)
    assert not tripped.available
    assert registry.find_candidates({"security"}, Tier.BUDGET) == []

    fake_clock.advance(599)
    assert not registry.get("a").available

    fake_clock.advance(1)
    reopened = registry.find_candidates({"security"}, Tier.BUDGET)
    assert [item.agent_id for item in reopened] == ["a"]
    assert reopened[0].success_rate == pytest.approx(tripped.success_rate)

    # still below the floor, so one more failure trips it again
    registry.record_outcome("a", False, 10)
    assert not registry.get("a").available


def test_success_never_trips_the_circuit(fake_clock: FakeClock) -> None:
    registry = AgentRegistry(success_rate_floor=1.0, min_outcomes=1, clock=fake_clock)
    registry.register(make_agent("a", Tier.BUDGET, "security"))

    registry.record_outcome("a", True, 10)

    assert registry.get("a").available


def test_set_available_toggles_agent() -> None:
    registry = _registry()
    registry.register(make_agent("a", Tier.BUDGET, "security"))

    registry.set_available("a", False)
    assert registry.find_candidates({"security"}, Tier.BUDGET) == []

    registry.set_available("a", True)
    assert len(registry.find_candidates({"security"}, Tier.BUDGET)) == 1


def test_concurrent_outcomes_are_not_lost() -> None:
    registry = AgentRegistry(min_outcomes=10_000)
    registry.register(make_agent("a", Tier.BUDGET, "security"))
    registry.register(make_agent("b", Tier.BUDGET, "security"))

    def _record(agent_id: str) -> None:
        for index in range(200):
            registry.record_outcome(agent_id, index % 2 == 0, 10)

    threads = [threading.Thread(target=_record, args=(agent_id,)) for agent_id in "abab"]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshots = {item.agent_id: item for item in registry.snapshot()}
    assert snapshots["a"].outcomes_recorded == 400
    assert snapshots["b"].outcomes_recorded == 400
    assert 0.0 <= snapshots["a"].success_rate <= 1.0
