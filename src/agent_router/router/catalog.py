"""Static agent catalog loading."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_router.router.classifier import DEFAULT_KEYWORD_TABLE, validate_keyword_table
from agent_router.router.errors import ConfigurationError, DuplicateAgentError
from agent_router.router.models import AgentConfig, Tier, TransportSpec

SUPPORTED_TRANSPORTS = ("command",)


@dataclass(slots=True)
class AgentCatalog:
    """Agents and keyword table parsed from the catalog descriptor."""

    agents: list[AgentConfig]
    keyword_table: dict[str, frozenset[str]]


def load_catalog(path: Path) -> AgentCatalog:
    """Read and validate a JSON catalog file."""

    try:
        raw = json.loads(path.read_text("utf-8"))
    except FileNotFoundError as error:
        raise ConfigurationError(f"Agent catalog not found: {path}") from error
    except json.JSONDecodeError as error:
        raise ConfigurationError(f"Agent catalog is not valid JSON: {path}: {error}") from error
    return parse_catalog(raw)


def parse_catalog(raw: Any) -> AgentCatalog:
    if not isinstance(raw, dict):
        raise ConfigurationError("Agent catalog must be a JSON object.")
    agents_raw = raw.get("agents")
    if not isinstance(agents_raw, list) or not agents_raw:
        raise ConfigurationError("Agent catalog must contain a non-empty 'agents' list.")

    agents = [_parse_agent(entry, index) for index, entry in enumerate(agents_raw)]
    seen: set[str] = set()
    for agent in agents:
        if agent.agent_id in seen:
            raise DuplicateAgentError(agent.agent_id)
        seen.add(agent.agent_id)

    keywords_raw = raw.get("keywords")
    if keywords_raw is None:
        keyword_table = dict(DEFAULT_KEYWORD_TABLE)
    elif isinstance(keywords_raw, dict):
        keyword_table = validate_keyword_table(keywords_raw)
    else:
        raise ConfigurationError("Catalog 'keywords' must be an object of tag -> keyword list.")
    return AgentCatalog(agents=agents, keyword_table=keyword_table)


def _parse_agent(entry: Any, index: int) -> AgentConfig:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Catalog agent #{index} must be an object.")
    agent_id = entry.get("id")
    if not isinstance(agent_id, str) or not agent_id.strip():
        raise ConfigurationError(f"Catalog agent #{index} has no 'id'.")
    agent_id = agent_id.strip()

    specializations = entry.get("specializations", [])
    if not isinstance(specializations, list) or not all(
        isinstance(item, str) and item.strip() for item in specializations
    ):
        raise ConfigurationError(f"Agent {agent_id!r}: 'specializations' must be a string list.")

    tier_raw = entry.get("cost_tier")
    try:
        tier = Tier(str(tier_raw).strip().lower())
    except ValueError as error:
        raise ConfigurationError(
            f"Agent {agent_id!r}: unsupported cost_tier {tier_raw!r}. "
            f"Use one of {[item.value for item in Tier]}.",
        ) from error

    transport_raw = entry.get("transport")
    if not isinstance(transport_raw, dict):
        raise ConfigurationError(f"Agent {agent_id!r}: 'transport' must be an object.")
    kind = str(transport_raw.get("kind", "command")).strip().lower()
    if kind not in SUPPORTED_TRANSPORTS:
        raise ConfigurationError(f"Agent {agent_id!r}: unsupported transport kind {kind!r}.")
    target = transport_raw.get("target")
    if not isinstance(target, str) or not target.strip():
        raise ConfigurationError(f"Agent {agent_id!r}: transport 'target' is required.")
    auth_ref = transport_raw.get("auth_ref")
    if auth_ref is not None and (not isinstance(auth_ref, str) or not auth_ref.strip()):
        raise ConfigurationError(f"Agent {agent_id!r}: 'auth_ref' must be a variable name.")

    return AgentConfig(
        agent_id=agent_id,
        specializations=frozenset(item.strip().lower() for item in specializations),
        cost_tier=tier,
        transport=TransportSpec(
            kind=kind,
            target=target.strip(),
            auth_ref=auth_ref.strip() if auth_ref else None,
        ),
        description=str(entry.get("description", "")),
    )
