"""Agent catalog with rolling performance statistics and a circuit breaker."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from agent_router.router.errors import DuplicateAgentError, UnknownAgentError
from agent_router.router.models import AgentConfig, AgentSnapshot, Tier

logger = logging.getLogger(__name__)

DEFAULT_EMA_ALPHA = 0.2
DEFAULT_SUCCESS_RATE_FLOOR = 0.5
DEFAULT_MIN_OUTCOMES = 5
DEFAULT_COOLDOWN_SECONDS = 600.0
GENERAL_SPECIALIZATION = "general"


@dataclass(slots=True)
class _AgentState:
    config: AgentConfig
    success_rate: float = 1.0
    average_latency_ms: float = 0.0
    outcomes_recorded: int = 0
    consecutive_failures: int = 0
    available: bool = True
    disabled_until: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)

    def snapshot(self) -> AgentSnapshot:
        return AgentSnapshot(
            config=self.config,
            success_rate=self.success_rate,
            average_latency_ms=self.average_latency_ms,
            outcomes_recorded=self.outcomes_recorded,
            consecutive_failures=self.consecutive_failures,
            available=self.available,
            disabled_until=self.disabled_until,
        )


class AgentRegistry:
    """Holds callable agents and their live statistics.

    Each agent has its own lock, so outcome recordings for different agents
    never contend. The registry-level lock only guards registration.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        ema_alpha: float = DEFAULT_EMA_ALPHA,
        success_rate_floor: float = DEFAULT_SUCCESS_RATE_FLOOR,
        min_outcomes: int = DEFAULT_MIN_OUTCOMES,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not 0 < ema_alpha <= 1:
            raise ValueError(f"ema_alpha must be in (0, 1]: {ema_alpha}")
        self.ema_alpha = ema_alpha
        self.success_rate_floor = success_rate_floor
        self.min_outcomes = min_outcomes
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._agents: dict[str, _AgentState] = {}
        self._lock = threading.Lock()

    def register(self, config: AgentConfig) -> None:
        """Add one agent at load time."""

        with self._lock:
            if config.agent_id in self._agents:
                raise DuplicateAgentError(config.agent_id)
            self._agents[config.agent_id] = _AgentState(config=config)
        logger.debug(
            "Registered agent %s tier=%s specializations=%s",
            config.agent_id,
            config.cost_tier.value,
            sorted(config.specializations),
        )

    def register_all(self, configs: Iterable[AgentConfig]) -> None:
        for config in configs:
            self.register(config)

    def find_candidates(
        self,
        tags: Iterable[str],
        tier: Tier,
        *,
        allow_general: bool = False,
    ) -> list[AgentSnapshot]:
        """Available agents of one tier, best match first."""

        wanted = frozenset(tags)
        scored: list[tuple[int, AgentSnapshot]] = []
        for state in self._states():
            with state.lock:
                self._maybe_reopen(state)
                if not state.available or state.config.cost_tier != tier:
                    continue
                matches = len(state.config.specializations & wanted)
                if matches == 0 and not (
                    allow_general and GENERAL_SPECIALIZATION in state.config.specializations
                ):
                    continue
                scored.append((matches, state.snapshot()))

        scored.sort(
            key=lambda item: (
                -item[0],
                -item[1].success_rate,
                item[1].average_latency_ms,
                item[1].agent_id,
            ),
        )
        return [snapshot for _, snapshot in scored]

    def record_outcome(self, agent_id: str, success: bool, latency_ms: int) -> AgentSnapshot:
        """Fold one attempt outcome into the agent's rolling statistics."""

        state = self._state(agent_id)
        alpha = self.ema_alpha
        with state.lock:
            observed = 1.0 if success else 0.0
            state.success_rate = state.success_rate * (1 - alpha) + observed * alpha
            if state.outcomes_recorded == 0:
                state.average_latency_ms = float(latency_ms)
            else:
                state.average_latency_ms = (
                    state.average_latency_ms * (1 - alpha) + float(latency_ms) * alpha
                )
            state.outcomes_recorded += 1
            state.consecutive_failures = 0 if success else state.consecutive_failures + 1
            if not success:
                self._maybe_trip(state)
            return state.snapshot()

    def set_available(self, agent_id: str, available: bool) -> None:
        """Manually open or close an agent; clears any pending cooldown."""

        state = self._state(agent_id)
        with state.lock:
            state.available = available
            state.disabled_until = None
        logger.info("Agent %s availability set to %s", agent_id, available)

    def get(self, agent_id: str) -> AgentSnapshot:
        state = self._state(agent_id)
        with state.lock:
            self._maybe_reopen(state)
            return state.snapshot()

    def snapshot(self) -> list[AgentSnapshot]:
        """All agents ordered by id."""

        result = []
        for state in self._states():
            with state.lock:
                self._maybe_reopen(state)
                result.append(state.snapshot())
        return sorted(result, key=lambda item: item.agent_id)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def _states(self) -> list[_AgentState]:
        with self._lock:
            return list(self._agents.values())

    def _state(self, agent_id: str) -> _AgentState:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise UnknownAgentError(agent_id) from None

    def _maybe_trip(self, state: _AgentState) -> None:
        # caller holds state.lock
        if not state.available:
            return
        if state.outcomes_recorded < self.min_outcomes:
            return
        if state.success_rate >= self.success_rate_floor:
            return
        state.available = False
        state.disabled_until = self._clock() + self.cooldown_seconds
        logger.warning(
            "Circuit opened for agent %s: success_rate=%.3f floor=%.3f cooldown=%.0fs",
            state.config.agent_id,
            state.success_rate,
            self.success_rate_floor,
            self.cooldown_seconds,
        )

    def _maybe_reopen(self, state: _AgentState) -> None:
        # caller holds state.lock
        if state.available or state.disabled_until is None:
            return
        if self._clock() < state.disabled_until:
            return
        state.available = True
        state.disabled_until = None
        logger.info(
            "Agent %s back on probation after cooldown (success_rate=%.3f)",
            state.config.agent_id,
            state.success_rate,
        )
