"""Balance notifier tests."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from balance_ledger.schemas.balance import BalanceUpdate
from balance_ledger.services.notifier import BalanceNotifier


def _update() -> BalanceUpdate:
    return BalanceUpdate(
        user_id="alice@example.com",
        current_balance=Decimal("106.00"),
        last_updated=datetime(2026, 3, 10, tzinfo=UTC),
    )


def test_subscribe_and_unsubscribe() -> None:
    notifier = BalanceNotifier()
    received = []
    unsubscribe = notifier.subscribe(received.append)

    notifier.publish(_update())
    unsubscribe()
    notifier.publish(_update())

    assert len(received) == 1
    assert notifier.listener_count == 0


def test_publish_survives_failing_listener() -> None:
    notifier = BalanceNotifier()
    received = []

    def broken(_):
        raise ValueError("boom")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)
    notifier.publish(_update())

    assert received == [_update()]
