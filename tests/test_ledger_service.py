"""Balance ledger tests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.utils.errors import ConflictError, ValidationError

USER = "alice@example.com"


@pytest.fixture
def notifier() -> BalanceNotifier:
    return BalanceNotifier()


@pytest.fixture
def ledger(fake_db, clock, notifier) -> LedgerService:
    return LedgerService(fake_db, notifier=notifier)


def test_get_or_create_starts_at_zero(ledger: LedgerService, fake_db) -> None:
    record = ledger.get_or_create(USER)

    assert record.current_balance == Decimal("0")
    assert record.history == []
    assert ledger.get_or_create(USER).user_id == USER
    assert len(fake_db.rows("balances")) == 1


def test_apply_delta_keeps_balance_invariant(ledger: LedgerService) -> None:
    """Balance is always deposits + earnings - withdrawals."""
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")
    ledger.apply_delta(USER, "plan", "50", "plan-2")
    ledger.apply_delta(USER, "earnings", "9", "earnings-3")
    record = ledger.apply_delta(USER, "withdrawal", "60", "withdrawal-4")

    assert record.total_deposits == Decimal("150.00")
    assert record.total_earnings == Decimal("9.00")
    assert record.total_withdrawals == Decimal("60.00")
    assert record.current_balance == Decimal("99.00")
    assert record.is_consistent()
    assert [entry.action for entry in record.history] == [
        "deposit-1",
        "plan-2",
        "earnings-3",
        "withdrawal-4",
    ]
    assert record.history[-1].balance_after == Decimal("99.00")


@pytest.mark.parametrize(
    ("category", "amount"),
    [("bonus", 10), ("deposit", 0), ("deposit", -5)],
)
def test_apply_delta_rejects_bad_input(ledger: LedgerService, category, amount) -> None:
    with pytest.raises(ValidationError):
        ledger.apply_delta(USER, category, amount, "bad")


def test_apply_earnings_records_row_and_credits_once(ledger: LedgerService, fake_db) -> None:
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")

    first = ledger.apply_earnings(USER, "6", "deposit-instant", idempotency_key="k-1")
    second = ledger.apply_earnings(USER, "6", "deposit-instant", idempotency_key="k-1")

    assert first is not None
    assert first.current_balance == Decimal("106.00")
    assert second is None
    assert ledger.get_or_create(USER).current_balance == Decimal("106.00")
    earnings_rows = [row for row in fake_db.rows("transactions") if row["kind"] == "earnings"]
    assert len(earnings_rows) == 1
    assert earnings_rows[0]["approval_status"] == "approved"


def test_recompute_corrects_drift(ledger: LedgerService, fake_db) -> None:
    """Recompute rebuilds totals from approved rows and logs the correction."""
    ledger.apply_earnings(USER, "10", "manual", idempotency_key="k-1")
    fake_db.rows("balances")[0]["current_balance"] = "999.00"
    fake_db.rows("balances")[0]["total_earnings"] = "999.00"

    record = ledger.recompute(USER)

    assert record.current_balance == Decimal("10.00")
    assert record.total_earnings == Decimal("10.00")
    assert record.history[-1].action == "recalculate"
    assert record.history[-1].amount == Decimal("-989.00")


def test_recompute_ignores_pending_and_rejected(ledger: LedgerService, fake_db) -> None:
    ledger.transactions.record(USER, "deposit", 500)
    rejected = ledger.transactions.record(USER, "deposit", 300)
    ledger.transactions.update_fields(rejected.id, {"approval_status": "rejected"})

    assert ledger.recompute(USER).current_balance == Decimal("0.00")


def test_mutations_publish_balance_updates(ledger: LedgerService, notifier) -> None:
    received = []
    unsubscribe = notifier.subscribe(received.append)

    ledger.apply_delta(USER, "deposit", "100", "deposit-1")
    unsubscribe()
    ledger.apply_delta(USER, "deposit", "1", "deposit-2")

    assert len(received) == 1
    assert received[0].user_id == USER
    assert received[0].current_balance == Decimal("100.00")
    assert received[0].recent_entry.action == "deposit-1"


def test_failing_listener_does_not_break_mutation(ledger: LedgerService, notifier) -> None:
    received = []

    def broken(_):
        raise RuntimeError("socket closed")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)

    record = ledger.apply_delta(USER, "deposit", "100", "deposit-1")

    assert record.current_balance == Decimal("100.00")
    assert len(received) == 1


def test_concurrent_write_is_retried(ledger: LedgerService, fake_db) -> None:
    """A lost compare-and-swap re-reads and re-applies the change."""
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")
    interfered = []

    def concurrent_writer(table: str) -> None:
        if table == "balances" and not interfered:
            interfered.append(True)
            row = fake_db.rows("balances")[0]
            row["total_deposits"] = "150.00"
            row["current_balance"] = "150.00"
            row["version"] += 1

    fake_db.before_update = concurrent_writer
    record = ledger.apply_delta(USER, "deposit", "10", "deposit-2")

    assert record.total_deposits == Decimal("160.00")
    assert record.current_balance == Decimal("160.00")
    assert record.version == 3


def test_persistent_contention_raises_conflict(ledger: LedgerService, fake_db) -> None:
    ledger.get_or_create(USER)

    def always_concurrent(table: str) -> None:
        if table == "balances":
            fake_db.rows("balances")[0]["version"] += 1

    fake_db.before_update = always_concurrent

    with pytest.raises(ConflictError):
        ledger.apply_delta(USER, "deposit", "10", "deposit-1")


def test_history_filters_by_days(ledger: LedgerService, clock) -> None:
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")

    assert len(ledger.history(USER, days=30, now=clock.advance(days=10))) == 1
    assert ledger.history(USER, days=7, now=clock.now) == []


def test_recompute_without_drift_writes_nothing(ledger: LedgerService) -> None:
    before = ledger.apply_delta(USER, "earnings", "10", "earnings-1")
    ledger.transactions.record_earnings(USER, Decimal("10.00"), "manual")

    after = ledger.recompute(USER)

    assert after.version == before.version
    assert [entry.action for entry in after.history] == ["earnings-1"]


def test_history_series_fills_days_with_last_balance(ledger: LedgerService, clock) -> None:
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")
    clock.advance(days=2)
    ledger.apply_delta(USER, "earnings", "10", "earnings-2")

    series = ledger.history_series(USER, days=5, now=clock.now)

    assert [point.date for point in series] == [
        "2026-03-08",
        "2026-03-09",
        "2026-03-10",
        "2026-03-11",
        "2026-03-12",
    ]
    assert [point.balance for point in series] == [
        Decimal("0"),
        Decimal("0"),
        Decimal("100.00"),
        Decimal("100.00"),
        Decimal("110.00"),
    ]


def test_history_series_starts_from_balance_before_window(ledger: LedgerService, clock) -> None:
    ledger.apply_delta(USER, "deposit", "100", "deposit-1")
    clock.advance(days=2)
    ledger.apply_delta(USER, "earnings", "10", "earnings-2")

    daily = ledger.history_series(USER, days=2, now=clock.now)
    hourly = ledger.history_series(USER, hours=3, now=clock.now)

    assert [point.balance for point in daily] == [Decimal("100.00"), Decimal("110.00")]
    assert [point.date for point in hourly] == ["2026-03-12T07", "2026-03-12T08", "2026-03-12T09"]
    assert [point.balance for point in hourly] == [
        Decimal("100.00"),
        Decimal("100.00"),
        Decimal("110.00"),
    ]


def test_history_series_without_history_uses_current_balance(
    ledger: LedgerService,
    fake_db,
    clock,
) -> None:
    ledger.get_or_create(USER)
    fake_db.rows("balances")[0]["current_balance"] = "50.00"

    series = ledger.history_series(USER, days=3, now=clock.now)

    assert [point.balance for point in series] == [Decimal("50.00")] * 3


@pytest.mark.parametrize(("days", "hours"), [(0, None), (None, 0)])
def test_history_series_rejects_empty_window(ledger: LedgerService, days, hours) -> None:
    with pytest.raises(ValidationError):
        ledger.history_series(USER, days=days, hours=hours)
