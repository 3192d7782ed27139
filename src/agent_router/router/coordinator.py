"""Sequential plan execution with fallback, timeouts, and budget accounting."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from types import TracebackType
from typing import NoReturn

from agent_router.router.budget import BudgetLedger
from agent_router.router.errors import (
    AgentInvocationError,
    AllAgentsExhaustedError,
    BudgetExceededError,
    DeadlineExceededError,
)
from agent_router.router.failure_classifier import classify_failure
from agent_router.router.invoker.base import AgentInvoker, InvocationRequest, InvocationResult
from agent_router.router.metrics import MetricsStore
from agent_router.router.models import (
    AttemptFailure,
    ErrorKind,
    ExecutionPlan,
    MetricsRecord,
    PlanEntry,
    ReservationToken,
    Task,
    TaskResult,
)
from agent_router.router.registry import AgentRegistry
from agent_router.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WORKERS = 8
START_POLL_SECONDS = 0.05


@dataclass(slots=True)
class _AttemptOutcome:
    result: InvocationResult | None
    latency_ms: int
    error_kind: ErrorKind | None = None
    message: str = ""
    abandoned: bool = False


class _StartedCall:
    """Invoker call that records when a worker actually picks it up."""

    def __init__(self, invoker: AgentInvoker, request: InvocationRequest) -> None:
        self.invoker = invoker
        self.request = request
        self.started = threading.Event()
        self.started_at = 0.0

    def __call__(self) -> InvocationResult:
        self.started_at = time.monotonic()
        self.started.set()
        if self.request.cancel_event.is_set():
            raise AgentInvocationError(
                "Attempt cancelled before the agent call started",
                error_kind=ErrorKind.ABANDONED,
            )
        return self.invoker.invoke(self.request)


class ExecutionCoordinator:
    """Runs a plan: primary first, then fallbacks, one attempt at a time.

    Agent calls run on a worker pool only so the coordinator can stop waiting
    at the attempt timeout or task deadline. The attempt timeout starts when a
    worker picks the call up, so time spent queued behind other tasks is never
    charged to the agent. A late result from an abandoned call is never read.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: AgentRegistry,
        ledger: BudgetLedger,
        metrics: MetricsStore,
        invoker: AgentInvoker,
        attempt_timeout_seconds: float = DEFAULT_ATTEMPT_TIMEOUT_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if attempt_timeout_seconds <= 0:
            raise ValueError(f"attempt_timeout_seconds must be > 0: {attempt_timeout_seconds}")
        self.registry = registry
        self.ledger = ledger
        self.metrics = metrics
        self.invoker = invoker
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="agent-attempt",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> ExecutionCoordinator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def execute(self, plan: ExecutionPlan, task: Task) -> TaskResult:
        """Try plan entries in order until one succeeds."""

        deadline = (
            self._clock() + task.deadline_seconds if task.deadline_seconds is not None else None
        )
        failures: list[AttemptFailure] = []

        for index, entry in enumerate(plan.entries):
            token: ReservationToken | None = plan.reservation if index == 0 else None
            if deadline is not None and self._clock() >= deadline:
                if token is not None:
                    self.ledger.release(token)
                self._raise_deadline(task=task, failures=failures)

            if token is None:
                try:
                    token = self.ledger.reserve(entry.expected_cost_usd)
                except BudgetExceededError as error:
                    logger.warning(
                        "Skipping fallback %s for task=%s: %s",
                        entry.agent_id,
                        task.task_id,
                        error,
                    )
                    failures.append(
                        AttemptFailure(
                            agent_id=entry.agent_id,
                            error_kind=ErrorKind.BUDGET_REJECTED,
                            message=str(error),
                        ),
                    )
                    continue

            outcome = self._attempt(entry=entry, task=task, deadline=deadline)

            if outcome.abandoned:
                self.ledger.release(token)
                self._append_record(task=task, entry=entry, outcome=outcome, cost_usd=0.0)
                failures.append(
                    AttemptFailure(
                        agent_id=entry.agent_id,
                        error_kind=ErrorKind.ABANDONED,
                        message=outcome.message,
                    ),
                )
                self._raise_deadline(task=task, failures=failures)

            if outcome.result is not None:
                return self._succeed(
                    plan=plan,
                    task=task,
                    entry=entry,
                    token=token,
                    result=outcome.result,
                    outcome=outcome,
                    failures=failures,
                )

            error_kind = outcome.error_kind or ErrorKind.BACKEND_NON_RETRYABLE
            self.registry.record_outcome(entry.agent_id, False, outcome.latency_ms)
            self.ledger.release(token)
            self._append_record(task=task, entry=entry, outcome=outcome, cost_usd=0.0)
            failures.append(
                AttemptFailure(
                    agent_id=entry.agent_id,
                    error_kind=error_kind,
                    message=outcome.message,
                ),
            )
            logger.warning(
                "Attempt failed: task=%s agent=%s kind=%s (%s)",
                task.task_id,
                entry.agent_id,
                error_kind.value,
                outcome.message,
            )

        logger.error(
            "All agents exhausted for task=%s: %s",
            task.task_id,
            [f"{item.agent_id}={item.error_kind.value}" for item in failures],
        )
        raise AllAgentsExhaustedError(task_id=task.task_id, failures=tuple(failures))

    def _attempt(self, *, entry: PlanEntry, task: Task, deadline: float | None) -> _AttemptOutcome:
        config = self.registry.get(entry.agent_id).config
        request = InvocationRequest(
            agent_id=entry.agent_id,
            tier=entry.tier,
            transport=config.transport,
            task=task,
            timeout_seconds=self.attempt_timeout_seconds,
        )
        call = _StartedCall(self.invoker, request)
        future: Future[InvocationResult] = self._executor.submit(call)
        if not self._wait_until_started(call=call, future=future, deadline=deadline):
            request.cancel_event.set()
            future.cancel()
            return _AttemptOutcome(
                result=None,
                latency_ms=0,
                error_kind=ErrorKind.ABANDONED,
                message="task deadline reached before the agent call started",
                abandoned=True,
            )

        started = call.started_at
        wait_seconds = max(0.0, self.attempt_timeout_seconds - (time.monotonic() - started))
        bounded_by_deadline = False
        if deadline is not None:
            remaining = max(0.0, deadline - self._clock())
            if remaining < wait_seconds:
                wait_seconds = remaining
                bounded_by_deadline = True

        try:
            result = future.result(timeout=wait_seconds)
        except FutureTimeoutError:
            request.cancel_event.set()
            future.cancel()
            latency_ms = _elapsed_ms(started)
            if bounded_by_deadline:
                return _AttemptOutcome(
                    result=None,
                    latency_ms=latency_ms,
                    error_kind=ErrorKind.ABANDONED,
                    message="task deadline reached during attempt",
                    abandoned=True,
                )
            return _AttemptOutcome(
                result=None,
                latency_ms=latency_ms,
                error_kind=ErrorKind.TIMEOUT,
                message=f"no result within {self.attempt_timeout_seconds}s",
            )
        except AgentInvocationError as error:
            return _AttemptOutcome(
                result=None,
                latency_ms=_elapsed_ms(started),
                error_kind=error.error_kind,
                message=str(error),
            )
        except Exception as error:  # noqa: BLE001
            logger.warning("Invoker raised for agent %s", entry.agent_id, exc_info=True)
            classified = classify_failure(agent_id=entry.agent_id, message=str(error))
            return _AttemptOutcome(
                result=None,
                latency_ms=_elapsed_ms(started),
                error_kind=classified.error_kind,
                message=f"{type(error).__name__}: {error}",
            )

        latency_ms = result.latency_ms if result.latency_ms is not None else _elapsed_ms(started)
        return _AttemptOutcome(result=result, latency_ms=latency_ms)

    def _wait_until_started(
        self,
        *,
        call: _StartedCall,
        future: Future[InvocationResult],
        deadline: float | None,
    ) -> bool:
        while not call.started.wait(timeout=START_POLL_SECONDS):
            if future.cancelled():
                return False
            if deadline is not None and self._clock() >= deadline:
                return False
        return True

    def _succeed(  # noqa: PLR0913
        self,
        *,
        plan: ExecutionPlan,
        task: Task,
        entry: PlanEntry,
        token: ReservationToken,
        result: InvocationResult,
        outcome: _AttemptOutcome,
        failures: list[AttemptFailure],
    ) -> TaskResult:
        charged = entry.expected_cost_usd
        if result.cost_usd is not None:
            charged = min(max(0.0, result.cost_usd), entry.expected_cost_usd)
        self.registry.record_outcome(entry.agent_id, True, outcome.latency_ms)
        self.ledger.commit(token, actual_cost_usd=result.cost_usd)
        self._append_record(task=task, entry=entry, outcome=outcome, cost_usd=charged)
        logger.info(
            "Task %s succeeded on %s cost=$%.4f latency_ms=%d after %d failed attempt(s)",
            task.task_id,
            entry.agent_id,
            charged,
            outcome.latency_ms,
            len(failures),
        )
        return TaskResult(
            task_id=task.task_id,
            agent_used=entry.agent_id,
            cost_usd=charged,
            output=result.output,
            latency_ms=outcome.latency_ms,
            classification=plan.classification,
            failures=tuple(failures),
        )

    def _append_record(
        self,
        *,
        task: Task,
        entry: PlanEntry,
        outcome: _AttemptOutcome,
        cost_usd: float,
    ) -> None:
        self.metrics.append(
            MetricsRecord(
                task_id=task.task_id,
                agent_id=entry.agent_id,
                cost_usd=cost_usd,
                duration_ms=outcome.latency_ms,
                success=outcome.result is not None,
                timestamp=utc_now(),
                error_kind=outcome.error_kind,
            ),
        )

    def _raise_deadline(self, *, task: Task, failures: list[AttemptFailure]) -> NoReturn:
        logger.error(
            "Deadline exceeded for task=%s after %d attempt(s)",
            task.task_id,
            len(failures),
        )
        raise DeadlineExceededError(task_id=task.task_id, failures=tuple(failures))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
