"""Balance ledger: per-user aggregate derived from the transaction log."""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from datetime import datetime, timedelta
from decimal import Decimal
from typing import NamedTuple

from balance_ledger.config import settings
from balance_ledger.schemas.balance import (
    BalanceHistoryEntry,
    BalancePoint,
    BalanceRecord,
    BalanceSummary,
    BalanceUpdate,
)
from balance_ledger.schemas.transaction import TransactionKind
from balance_ledger.services.common import SupabaseService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService, validate_amount
from balance_ledger.utils.errors import ConflictError, DuplicateEntryError, ValidationError
from balance_ledger.utils.money import ZERO, money_str, quantize
from balance_ledger.utils.time import (
    day_key,
    hour_key,
    now_utc,
    to_iso,
    trailing_day_keys,
    trailing_hour_keys,
)
from supabase import Client

logger = logging.getLogger(__name__)

TABLE = "balances"

CATEGORY_FIELDS = {
    TransactionKind.DEPOSIT: "total_deposits",
    TransactionKind.PLAN: "total_deposits",
    TransactionKind.WITHDRAWAL: "total_withdrawals",
    TransactionKind.EARNINGS: "total_earnings",
}


class Totals(NamedTuple):
    deposits: Decimal
    earnings: Decimal
    withdrawals: Decimal

    @property
    def balance(self) -> Decimal:
        return self.deposits + self.earnings - self.withdrawals


class LedgerService:
    """Maintain and reconcile cached user balances.

    Incremental updates (``apply_delta``/``apply_earnings``) keep the common
    path cheap; ``recompute`` rebuilds from approved transactions and is the
    source of truth. Every write is a compare-and-swap on ``version``.
    """

    def __init__(
        self,
        client: Client,
        notifier: BalanceNotifier | None = None,
        transactions: TransactionService | None = None,
    ) -> None:
        self.db = SupabaseService(client)
        self.notifier = notifier or BalanceNotifier()
        self.transactions = transactions or TransactionService(client)

    def get_or_create(self, user_id: str) -> BalanceRecord:
        """Return the user's balance record, creating a zeroed one if absent."""
        row = self.db.select_first(TABLE, {"user_id": user_id})
        if row:
            return BalanceRecord.from_row(row)

        try:
            row = self.db.insert_one(
                TABLE,
                {
                    "user_id": user_id,
                    "current_balance": money_str(ZERO),
                    "total_deposits": money_str(ZERO),
                    "total_earnings": money_str(ZERO),
                    "total_withdrawals": money_str(ZERO),
                    "last_updated": to_iso(now_utc()),
                    "history": [],
                    "version": 0,
                },
            )
        except DuplicateEntryError:
            row = self.db.select_one(TABLE, {"user_id": user_id}, not_found_label="Balance")
        return BalanceRecord.from_row(row)

    def apply_delta(
        self,
        user_id: str,
        category: str | TransactionKind,
        amount: object,
        action_label: str,
    ) -> BalanceRecord:
        """Add ``amount`` to one balance category and re-derive the balance."""
        try:
            field = CATEGORY_FIELDS[TransactionKind(str(category))]
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"Unknown balance category: {category}") from exc
        value = quantize(validate_amount(amount))

        def change(current: BalanceRecord) -> Totals:
            totals = _totals_of(current)
            if field == "total_deposits":
                return totals._replace(deposits=totals.deposits + value)
            if field == "total_withdrawals":
                return totals._replace(withdrawals=totals.withdrawals + value)
            return totals._replace(earnings=totals.earnings + value)

        return self._mutate(user_id, change, action_label, value)

    def apply_earnings(
        self,
        user_id: str,
        amount: object,
        label: str,
        source_tx_id: str | None = None,
        idempotency_key: str | None = None,
        moment: datetime | None = None,
    ) -> BalanceRecord | None:
        """Credit spendable earnings and record the matching earnings row.

        The earnings row is written first; when ``idempotency_key`` was
        already claimed nothing is credited and ``None`` is returned.
        """
        value = quantize(validate_amount(amount))
        try:
            earnings_tx = self.transactions.record_earnings(
                user_id,
                value,
                plan_name=label,
                source_tx_id=source_tx_id,
                idempotency_key=idempotency_key,
                moment=moment,
            )
        except DuplicateEntryError:
            logger.info("Earnings %s already credited for %s", idempotency_key, user_id)
            return None

        def change(current: BalanceRecord) -> Totals:
            totals = _totals_of(current)
            return totals._replace(earnings=totals.earnings + value)

        record = self._mutate(user_id, change, f"earnings-{label}", value)
        logger.info("Earnings added for %s: %s (%s)", user_id, value, earnings_tx.id)
        return record

    def recompute(self, user_id: str) -> BalanceRecord:
        """Rebuild the user's totals from approved transactions.

        A ``recalculate`` history entry is appended only when the cached
        figures had drifted.
        """

        def change(_: BalanceRecord) -> Totals:
            deposits = earnings = withdrawals = ZERO
            for transaction in self.transactions.list_approved(user_id):
                if transaction.kind in (TransactionKind.DEPOSIT, TransactionKind.PLAN):
                    deposits += transaction.amount
                elif transaction.kind == TransactionKind.WITHDRAWAL:
                    withdrawals += transaction.amount
                elif transaction.kind == TransactionKind.EARNINGS:
                    earnings += transaction.amount
            return Totals(deposits, earnings, withdrawals)

        record = self._mutate(user_id, change, "recalculate", None)
        logger.info("Balance recalculated for %s: %s", user_id, record.current_balance)
        return record

    def summary(self, user_id: str) -> BalanceSummary:
        """Return the user's balance figures."""
        record = self.get_or_create(user_id)
        return BalanceSummary.model_validate(record.model_dump(exclude={"history", "version"}))

    def history(
        self,
        user_id: str,
        days: int = 30,
        now: datetime | None = None,
    ) -> list[BalanceHistoryEntry]:
        """Return history entries from the last ``days`` days, oldest first."""
        cutoff = (now or now_utc()) - timedelta(days=days)
        record = self.get_or_create(user_id)
        return [entry for entry in record.history if entry.date >= cutoff]

    def history_series(
        self,
        user_id: str,
        days: int | None = None,
        hours: int | None = None,
        now: datetime | None = None,
    ) -> list[BalancePoint]:
        """Return one balance point per local day, or per UTC hour when ``hours`` is set.

        Buckets without a history entry carry the last known balance forward.
        A user with no history at all is charted at their current balance.
        """
        now = now or now_utc()
        if hours is not None:
            if hours < 1:
                raise ValidationError("hours must be at least 1")
            keys = trailing_hour_keys(now, hours)
            key_of: Callable[[datetime], str] = hour_key
        else:
            days = 30 if days is None else days
            if days < 1:
                raise ValidationError("days must be at least 1")
            keys = trailing_day_keys(now, days, settings.timezone)
            key_of = partial(day_key, tz_name=settings.timezone)

        record = self.get_or_create(user_id)
        last_known = ZERO if record.history else record.current_balance
        closing: dict[str, Decimal] = {}
        for entry in sorted(record.history, key=lambda item: item.date):
            key = key_of(entry.date)
            if key < keys[0]:
                last_known = entry.balance_after
            else:
                closing[key] = entry.balance_after

        series = []
        for key in keys:
            last_known = closing.get(key, last_known)
            series.append(BalancePoint(date=key, balance=last_known))
        return series

    def _mutate(
        self,
        user_id: str,
        change: Callable[[BalanceRecord], Totals],
        action: str,
        amount: Decimal | None,
    ) -> BalanceRecord:
        """Apply ``change`` with optimistic concurrency on ``version``.

        ``amount=None`` records the correction of the current balance; when
        there is nothing to correct no write happens.
        """
        attempts = max(1, settings.ledger_max_retries)
        for attempt in range(1, attempts + 1):
            current = self.get_or_create(user_id)
            totals = change(current)
            balance = totals.balance
            if (
                amount is None
                and totals == _totals_of(current)
                and balance == current.current_balance
            ):
                return current
            moment = now_utc()
            entry = BalanceHistoryEntry(
                date=moment,
                action=action,
                amount=amount if amount is not None else balance - current.current_balance,
                balance_after=balance,
            )
            history = [item.model_dump(mode="json") for item in current.history]
            history.append(entry.model_dump(mode="json"))

            rows = self.db.update(
                TABLE,
                {"user_id": user_id, "version": current.version},
                {
                    "current_balance": money_str(balance),
                    "total_deposits": money_str(totals.deposits),
                    "total_earnings": money_str(totals.earnings),
                    "total_withdrawals": money_str(totals.withdrawals),
                    "last_updated": to_iso(moment),
                    "history": history,
                    "version": current.version + 1,
                },
            )
            if rows:
                record = BalanceRecord.from_row(rows[0])
                logger.debug("Balance updated for %s: %s", user_id, record.current_balance)
                self.notifier.publish(
                    BalanceUpdate(
                        user_id=user_id,
                        current_balance=record.current_balance,
                        last_updated=record.last_updated or moment,
                        recent_entry=entry,
                    )
                )
                return record

            logger.debug(
                "Balance for %s changed concurrently (attempt %s/%s)",
                user_id,
                attempt,
                attempts,
            )

        raise ConflictError(f"Balance for {user_id} is being updated concurrently, retry later")


def _totals_of(record: BalanceRecord) -> Totals:
    return Totals(record.total_deposits, record.total_earnings, record.total_withdrawals)
