from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_router.config import ExecutionSettings, RegistrySettings, RoutingSettings, Settings
from agent_router.router.models import Tier

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_defaults_without_environment(monkeypatch) -> None:
    for name in (
        "AGENT_ROUTER_CATALOG_PATH",
        "AGENT_ROUTER_METRICS_DB_PATH",
        "AGENT_ROUTER_DAILY_LIMIT_USD",
        "AGENT_ROUTER_TIER_COSTS",
        "AGENT_ROUTER_ALLOW_GENERAL_FALLBACK",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.catalog_path == Path("agents.json")
    assert settings.metrics_db_path is None
    assert settings.budget.daily_limit_usd == 10.0
    assert settings.budget.tier_costs[Tier.PREMIUM] == pytest.approx(0.25)
    assert settings.routing.allow_general_fallback is True
    assert settings.registry.cooldown_seconds == 600.0
    settings.validate()


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_ROUTER_CATALOG_PATH", str(tmp_path / "catalog.json"))
    monkeypatch.setenv("AGENT_ROUTER_METRICS_DB_PATH", str(tmp_path / "metrics.db"))
    monkeypatch.setenv("AGENT_ROUTER_DAILY_LIMIT_USD", "2.5")
    monkeypatch.setenv("AGENT_ROUTER_PER_TASK_LIMIT_USD", "0.4")
    monkeypatch.setenv("AGENT_ROUTER_TIER_COSTS", "premium:0.30")
    monkeypatch.setenv("AGENT_ROUTER_MIN_OUTCOMES", "3")
    monkeypatch.setenv("AGENT_ROUTER_PLAN_SIZE", "2")
    monkeypatch.setenv("AGENT_ROUTER_ALLOW_GENERAL_FALLBACK", "off")
    monkeypatch.setenv("AGENT_ROUTER_ATTEMPT_TIMEOUT_SECONDS", "12.5")

    settings = Settings.from_env()

    assert settings.catalog_path == tmp_path / "catalog.json"
    assert settings.metrics_db_path == tmp_path / "metrics.db"
    assert settings.budget.daily_limit_usd == 2.5
    assert settings.budget.per_task_limit_usd == 0.4
    assert settings.budget.tier_costs[Tier.PREMIUM] == pytest.approx(0.30)
    assert settings.registry.min_outcomes == 3
    assert settings.routing.plan_size == 2
    assert settings.routing.allow_general_fallback is False
    assert settings.execution.attempt_timeout_seconds == 12.5


def test_explicit_paths_win_over_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_ROUTER_CATALOG_PATH", "from-env.json")

    settings = Settings.from_env(catalog_path=tmp_path / "cli.json")

    assert settings.catalog_path == tmp_path / "cli.json"


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_ROUTER_ALLOW_GENERAL_FALLBACK", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(registry=RegistrySettings(ema_alpha=0.0)), "EMA_ALPHA"),
        (Settings(registry=RegistrySettings(success_rate_floor=1.5)), "SUCCESS_RATE_FLOOR"),
        (Settings(routing=RoutingSettings(plan_size=0)), "PLAN_SIZE"),
        (Settings(execution=ExecutionSettings(attempt_timeout_seconds=0)), "ATTEMPT_TIMEOUT"),
        (Settings(execution=ExecutionSettings(max_workers=0)), "MAX_WORKERS"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()
