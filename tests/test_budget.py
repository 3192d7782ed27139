from __future__ import annotations

import logging
import threading
from datetime import date

import allure
import pytest

from agent_router.router.budget import BudgetLedger
from agent_router.router.errors import BudgetExceededError, InvalidReservationError
from agent_router.router.models import AlertLevel

pytestmark = [
    allure.epic("Budget"),
    allure.feature("Daily Ledger"),
]


class _Today:
    def __init__(self, value: date) -> None:
        self.value = value

    def __call__(self) -> date:
        return self.value


def _ledger(limit: float = 1.0, *, today: _Today | None = None) -> BudgetLedger:
    return BudgetLedger(
        daily_limit_usd=limit,
        per_task_limit_usd=limit,
        today=today or _Today(date(2026, 3, 1)),
    )


def test_reserve_counts_spend_and_release_refunds_it() -> None:
    ledger = _ledger()

    token = ledger.reserve(0.3)
    assert ledger.daily_spent_usd == pytest.approx(0.3)

    ledger.release(token)
    assert ledger.daily_spent_usd == 0.0
    assert ledger.snapshot().pending_reservations == 0


def test_reserve_rejects_overspend_with_details() -> None:
    ledger = _ledger()
    ledger.reserve(0.6)

    with pytest.raises(BudgetExceededError) as error:
        ledger.reserve(0.6)

    assert error.value.requested_usd == pytest.approx(0.6)
    assert error.value.spent_usd == pytest.approx(0.6)
    assert error.value.limit_usd == pytest.approx(1.0)
    assert ledger.daily_spent_usd == pytest.approx(0.6)


def test_reserve_up_to_exact_limit_is_allowed() -> None:
    ledger = _ledger()

    for _ in range(10):
        ledger.reserve(0.1)

    assert ledger.daily_spent_usd == pytest.approx(1.0)
    with pytest.raises(BudgetExceededError):
        ledger.reserve(0.000001)


def test_commit_refunds_lower_actual_cost() -> None:
    ledger = _ledger()
    token = ledger.reserve(0.25)

    ledger.commit(token, actual_cost_usd=0.05)

    assert ledger.daily_spent_usd == pytest.approx(0.05)


def test_commit_never_charges_above_reservation(caplog: pytest.LogCaptureFixture) -> None:
    ledger = _ledger()
    token = ledger.reserve(0.25)

    with caplog.at_level(logging.WARNING, logger="agent_router.router.budget"):
        ledger.commit(token, actual_cost_usd=0.9)

    assert ledger.daily_spent_usd == pytest.approx(0.25)
    assert "above reservation" in caplog.text


def test_token_cannot_be_finalized_twice() -> None:
    ledger = _ledger()
    token = ledger.reserve(0.1)
    ledger.commit(token)

    with pytest.raises(InvalidReservationError):
        ledger.release(token)
    with pytest.raises(InvalidReservationError):
        ledger.commit(token)


def test_concurrent_reservations_never_exceed_limit() -> None:
    ledger = _ledger(limit=1.0)
    accepted: list[object] = []
    rejected: list[object] = []
    lock = threading.Lock()
    start = threading.Barrier(40)

    def _worker() -> None:
        start.wait()
        try:
            token = ledger.reserve(0.05)
        except BudgetExceededError as error:
            with lock:
                rejected.append(error)
            return
        with lock:
            accepted.append(token)

    threads = [threading.Thread(target=_worker) for _ in range(40)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(accepted) == 20
    assert len(rejected) == 20
    assert ledger.daily_spent_usd == pytest.approx(1.0)
    assert ledger.daily_spent_usd <= ledger.daily_limit_usd


def test_threshold_levels_and_single_alert_per_level(caplog: pytest.LogCaptureFixture) -> None:
    ledger = _ledger(limit=1.0)

    with caplog.at_level(logging.WARNING, logger="agent_router.router.budget"):
        ledger.reserve(0.5)
        assert ledger.check_threshold() == AlertLevel.OK
        ledger.reserve(0.3)
        assert ledger.check_threshold() == AlertLevel.WARNING
        ledger.reserve(0.1)
        ledger.reserve(0.1)
        assert ledger.check_threshold() == AlertLevel.EXHAUSTED

    alerts = [record.getMessage() for record in caplog.records]
    assert sum("Daily budget warning" in message for message in alerts) == 1
    assert sum("Daily budget exhausted" in message for message in alerts) == 1


def test_day_rollover_resets_spend_and_ignores_stale_tokens() -> None:
    today = _Today(date(2026, 3, 1))
    ledger = _ledger(limit=1.0, today=today)
    stale = ledger.reserve(0.9)

    today.value = date(2026, 3, 2)
    assert ledger.daily_spent_usd == 0.0
    fresh = ledger.reserve(0.5)

    ledger.release(stale)
    assert ledger.daily_spent_usd == pytest.approx(0.5)
    ledger.commit(fresh)
    assert ledger.snapshot().day == date(2026, 3, 2)


def test_seed_spent_is_capped_at_limit() -> None:
    ledger = _ledger(limit=1.0)

    ledger.seed_spent(0.4)
    assert ledger.snapshot().remaining_usd == pytest.approx(0.6)

    ledger.seed_spent(5.0)
    assert ledger.daily_spent_usd == pytest.approx(1.0)
    assert ledger.check_threshold() == AlertLevel.EXHAUSTED


@pytest.mark.parametrize(
    "kwargs",
    [
        {"daily_limit_usd": -1.0, "per_task_limit_usd": 1.0},
        {"daily_limit_usd": 1.0, "per_task_limit_usd": -1.0},
        {"daily_limit_usd": 1.0, "per_task_limit_usd": 1.0, "alert_threshold_ratio": 0.0},
    ],
)
def test_ledger_rejects_invalid_limits(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        BudgetLedger(**kwargs)
