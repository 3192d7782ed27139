"""Runtime configuration for the agent router."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from agent_router.router.models import Tier
from agent_router.router.pricing import DEFAULT_TIER_COSTS, parse_tier_costs


@dataclass(slots=True)
class RegistrySettings:
    """Rolling statistics and circuit breaker settings."""

    ema_alpha: float = 0.2
    success_rate_floor: float = 0.5
    min_outcomes: int = 5
    cooldown_seconds: float = 600.0


@dataclass(slots=True)
class BudgetSettings:
    """Spend limits."""

    daily_limit_usd: float = 10.0
    per_task_limit_usd: float = 1.0
    alert_threshold_ratio: float = 0.8
    tier_costs: dict[Tier, float] = field(default_factory=lambda: dict(DEFAULT_TIER_COSTS))


@dataclass(slots=True)
class RoutingSettings:
    """Plan construction settings."""

    plan_size: int = 3
    allow_general_fallback: bool = True


@dataclass(slots=True)
class ExecutionSettings:
    """Attempt execution settings."""

    attempt_timeout_seconds: float = 30.0
    max_workers: int = 8


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    catalog_path: Path = Path("agents.json")
    metrics_db_path: Path | None = None
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)

    @classmethod
    def from_env(
        cls,
        catalog_path: Path | None = None,
        metrics_db_path: Path | None = None,
    ) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        metrics_db_env = os.getenv("AGENT_ROUTER_METRICS_DB_PATH", "").strip()
        return cls(
            catalog_path=catalog_path
            or Path(os.getenv("AGENT_ROUTER_CATALOG_PATH", "agents.json")),
            metrics_db_path=metrics_db_path or (Path(metrics_db_env) if metrics_db_env else None),
            registry=RegistrySettings(
                ema_alpha=float(os.getenv("AGENT_ROUTER_EMA_ALPHA", "0.2")),
                success_rate_floor=float(os.getenv("AGENT_ROUTER_SUCCESS_RATE_FLOOR", "0.5")),
                min_outcomes=int(os.getenv("AGENT_ROUTER_MIN_OUTCOMES", "5")),
                cooldown_seconds=float(os.getenv("AGENT_ROUTER_COOLDOWN_SECONDS", "600")),
            ),
            budget=BudgetSettings(
                daily_limit_usd=float(os.getenv("AGENT_ROUTER_DAILY_LIMIT_USD", "10.0")),
                per_task_limit_usd=float(os.getenv("AGENT_ROUTER_PER_TASK_LIMIT_USD", "1.0")),
                alert_threshold_ratio=float(
                    os.getenv("AGENT_ROUTER_ALERT_THRESHOLD_RATIO", "0.8"),
                ),
                tier_costs=parse_tier_costs(os.getenv("AGENT_ROUTER_TIER_COSTS", "")),
            ),
            routing=RoutingSettings(
                plan_size=int(os.getenv("AGENT_ROUTER_PLAN_SIZE", "3")),
                allow_general_fallback=_env_bool(
                    "AGENT_ROUTER_ALLOW_GENERAL_FALLBACK",
                    default=True,
                ),
            ),
            execution=ExecutionSettings(
                attempt_timeout_seconds=float(
                    os.getenv("AGENT_ROUTER_ATTEMPT_TIMEOUT_SECONDS", "30"),
                ),
                max_workers=int(os.getenv("AGENT_ROUTER_MAX_WORKERS", "8")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on out-of-range values."""

        if not 0 < self.registry.ema_alpha <= 1:
            raise ValueError("AGENT_ROUTER_EMA_ALPHA must be in (0, 1].")
        if not 0 <= self.registry.success_rate_floor <= 1:
            raise ValueError("AGENT_ROUTER_SUCCESS_RATE_FLOOR must be in [0, 1].")
        if self.registry.min_outcomes < 1:
            raise ValueError("AGENT_ROUTER_MIN_OUTCOMES must be >= 1.")
        if self.registry.cooldown_seconds < 0:
            raise ValueError("AGENT_ROUTER_COOLDOWN_SECONDS must be >= 0.")
        if self.budget.daily_limit_usd < 0:
            raise ValueError("AGENT_ROUTER_DAILY_LIMIT_USD must be >= 0.")
        if self.budget.per_task_limit_usd < 0:
            raise ValueError("AGENT_ROUTER_PER_TASK_LIMIT_USD must be >= 0.")
        if not 0 < self.budget.alert_threshold_ratio <= 1:
            raise ValueError("AGENT_ROUTER_ALERT_THRESHOLD_RATIO must be in (0, 1].")
        if self.routing.plan_size < 1:
            raise ValueError("AGENT_ROUTER_PLAN_SIZE must be >= 1.")
        if self.execution.attempt_timeout_seconds <= 0:
            raise ValueError("AGENT_ROUTER_ATTEMPT_TIMEOUT_SECONDS must be > 0.")
        if self.execution.max_workers < 1:
            raise ValueError("AGENT_ROUTER_MAX_WORKERS must be >= 1.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
