"""Per-tier task cost configuration."""

from __future__ import annotations

from agent_router.router.models import Tier

DEFAULT_TIER_COSTS: dict[Tier, float] = {
    Tier.BUDGET: 0.05,
    Tier.STANDARD: 0.10,
    Tier.PREMIUM: 0.25,
}

USD_SCALE = 1_000_000


def to_micro_usd(amount_usd: float) -> int:
    """Convert USD to integer micro-dollars."""

    return round(amount_usd * USD_SCALE)


def from_micro_usd(amount: int) -> float:
    return amount / USD_SCALE


def tier_cost(tier: Tier, tier_costs: dict[Tier, float] | None = None) -> float:
    """Configured cost-per-task for one tier."""

    costs = tier_costs if tier_costs is not None else DEFAULT_TIER_COSTS
    return costs.get(tier, DEFAULT_TIER_COSTS[tier])


def parse_tier_costs(raw: str) -> dict[Tier, float]:
    """Parse `AGENT_ROUTER_TIER_COSTS` mapping.

    Format:
    - `tier:cost_usd`
    - multiple entries separated by `,`
    - tiers not listed keep their defaults
    """

    parsed = dict(DEFAULT_TIER_COSTS)
    if not raw.strip():
        return parsed

    for entry in raw.split(","):
        value = entry.strip()
        if not value:
            continue
        parts = [part.strip() for part in value.split(":")]
        if len(parts) != 2:
            raise ValueError(
                f"Invalid AGENT_ROUTER_TIER_COSTS entry: {value!r}. Expected '<tier>:<cost_usd>'.",
            )
        tier_raw, cost_raw = parts
        try:
            tier = Tier(tier_raw.lower())
        except ValueError as error:
            raise ValueError(f"Unknown tier in AGENT_ROUTER_TIER_COSTS: {tier_raw!r}") from error
        try:
            cost = float(cost_raw)
        except ValueError as error:
            raise ValueError(
                f"Invalid cost for tier {tier.value!r} in AGENT_ROUTER_TIER_COSTS: {cost_raw!r}",
            ) from error
        if cost < 0:
            raise ValueError(f"Tier cost must be >= 0: {tier.value!r} -> {cost}")
        parsed[tier] = cost
    return parsed
