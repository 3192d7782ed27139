"""Daily spend ledger with atomic reservations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime
from uuid import uuid4

from agent_router.router.errors import BudgetExceededError, InvalidReservationError
from agent_router.router.models import AlertLevel, BudgetSnapshot, ReservationToken
from agent_router.router.pricing import from_micro_usd, to_micro_usd

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD_RATIO = 0.8


def utc_today() -> date:
    """Current UTC calendar day."""

    return datetime.now(tz=UTC).date()


class BudgetLedger:
    """Tracks and gates cumulative spend against the daily cap.

    A reservation is the commit: spend is counted when `reserve()` succeeds,
    `release()` refunds it, and `commit()` only finalizes the token. Every
    mutation runs under one lock, so `daily_spent_usd` never exceeds
    `daily_limit_usd`. Amounts are held as integer micro-dollars.
    """

    def __init__(
        self,
        *,
        daily_limit_usd: float,
        per_task_limit_usd: float,
        alert_threshold_ratio: float = DEFAULT_ALERT_THRESHOLD_RATIO,
        today: Callable[[], date] = utc_today,
    ) -> None:
        if daily_limit_usd < 0:
            raise ValueError(f"daily_limit_usd must be >= 0: {daily_limit_usd}")
        if per_task_limit_usd < 0:
            raise ValueError(f"per_task_limit_usd must be >= 0: {per_task_limit_usd}")
        if not 0 < alert_threshold_ratio <= 1:
            raise ValueError(f"alert_threshold_ratio must be in (0, 1]: {alert_threshold_ratio}")
        self._limit = to_micro_usd(daily_limit_usd)
        self.per_task_limit_usd = per_task_limit_usd
        self.alert_threshold_ratio = alert_threshold_ratio
        self._today = today
        self._lock = threading.Lock()
        self._day = today()
        self._spent = 0
        self._pending: dict[str, int] = {}
        self._alerted: set[AlertLevel] = set()

    @property
    def daily_limit_usd(self) -> float:
        return from_micro_usd(self._limit)

    @property
    def daily_spent_usd(self) -> float:
        with self._lock:
            self._rollover()
            return from_micro_usd(self._spent)

    def reserve(self, amount_usd: float) -> ReservationToken:
        """Atomically count `amount_usd` against today's cap or reject it."""

        if amount_usd < 0:
            raise ValueError(f"Reservation amount must be >= 0: {amount_usd}")
        amount = to_micro_usd(amount_usd)
        with self._lock:
            self._rollover()
            if self._spent + amount > self._limit:
                raise BudgetExceededError(
                    requested_usd=amount_usd,
                    spent_usd=from_micro_usd(self._spent),
                    limit_usd=from_micro_usd(self._limit),
                )
            self._spent += amount
            token = ReservationToken(token_id=uuid4().hex, amount_usd=amount_usd, day=self._day)
            self._pending[token.token_id] = amount
            self._check_alerts()
        return token

    def commit(self, token: ReservationToken, *, actual_cost_usd: float | None = None) -> None:
        """Finalize a reservation; refund the difference when the real cost was lower."""

        with self._lock:
            self._rollover()
            reserved = self._pop_pending(token)
            if actual_cost_usd is None or token.day != self._day:
                return
            actual = to_micro_usd(max(0.0, actual_cost_usd))
            if actual < reserved:
                self._spent -= reserved - actual
            elif actual > reserved:
                logger.warning(
                    "Reported cost $%.4f above reservation $%.4f; charged the reservation only",
                    actual_cost_usd,
                    token.amount_usd,
                )

    def release(self, token: ReservationToken) -> None:
        """Refund a reservation whose cost was never incurred."""

        with self._lock:
            self._rollover()
            reserved = self._pop_pending(token)
            if token.day == self._day:
                self._spent -= reserved

    def check_threshold(self) -> AlertLevel:
        with self._lock:
            self._rollover()
            return self._alert_level()

    def seed_spent(self, amount_usd: float) -> None:
        """Restore spend already incurred today (e.g. from persisted metrics)."""

        amount = to_micro_usd(max(0.0, amount_usd))
        with self._lock:
            self._rollover()
            self._spent = min(self._limit, self._spent + amount)
            self._check_alerts()

    def snapshot(self) -> BudgetSnapshot:
        with self._lock:
            self._rollover()
            return BudgetSnapshot(
                day=self._day,
                daily_spent_usd=from_micro_usd(self._spent),
                daily_limit_usd=from_micro_usd(self._limit),
                per_task_limit_usd=self.per_task_limit_usd,
                remaining_usd=from_micro_usd(self._limit - self._spent),
                pending_reservations=len(self._pending),
                alert_level=self._alert_level(),
            )

    def _pop_pending(self, token: ReservationToken) -> int:
        try:
            return self._pending.pop(token.token_id)
        except KeyError:
            raise InvalidReservationError(
                f"Reservation {token.token_id} is unknown or already finalized",
            ) from None

    def _rollover(self) -> None:
        today = self._today()
        if today == self._day:
            return
        logger.info(
            "Budget day rollover %s -> %s (spent=$%.4f)",
            self._day,
            today,
            from_micro_usd(self._spent),
        )
        self._day = today
        self._spent = 0
        self._alerted.clear()

    def _alert_level(self) -> AlertLevel:
        if self._spent >= self._limit:
            return AlertLevel.EXHAUSTED
        if self._limit and self._spent / self._limit >= self.alert_threshold_ratio:
            return AlertLevel.WARNING
        return AlertLevel.OK

    def _check_alerts(self) -> None:
        level = self._alert_level()
        if level == AlertLevel.OK or level in self._alerted:
            return
        self._alerted.add(level)
        logger.warning(
            "Daily budget %s: spent=$%.4f limit=$%.4f",
            level.value,
            from_micro_usd(self._spent),
            from_micro_usd(self._limit),
        )
