"""Daily earnings accrual engine."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal

from balance_ledger.config import settings
from balance_ledger.schemas.transaction import DAILY_REWARD_PLAN, Transaction
from balance_ledger.services.approval_service import instant_earnings_key
from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService
from balance_ledger.utils.money import ZERO, quantize
from balance_ledger.utils.time import ONE_DAY, day_key, full_days_between, now_utc, start_of_day
from supabase import Client

logger = logging.getLogger(__name__)

DAILY_PLAN_NAME = "daily-balance-percent"


def daily_earnings_key(user_id: str, moment: datetime) -> str:
    """Idempotency key allowing one daily-percent credit per user per local day."""
    return f"{DAILY_PLAN_NAME}:{user_id}:{day_key(moment, settings.timezone)}"


@dataclass(frozen=True, slots=True)
class AccrualAnchor:
    """Instant through which a user's earnings are already credited."""

    moment: datetime
    source: Literal["last_earning_at", "latest_earnings", "first_approval", "now"]


@dataclass(slots=True)
class AccrualReport:
    """Outcome of one accrual run."""

    credited: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    total_amount: Decimal = ZERO

    def as_dict(self) -> dict[str, object]:
        return {
            "credited": len(self.credited),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "total_amount": str(self.total_amount),
        }


def resolve_accrual_anchor(
    deposits: list[Transaction],
    latest_earnings: Transaction | None,
    now: datetime,
) -> AccrualAnchor:
    """Return where catch-up accrual starts for one user.

    Precedence: the earliest ``plan_details.last_earning_at`` across the
    user's deposits, then the newest earnings row, then the earliest
    approval (or submission) time, then ``now``.
    """
    stamps = [
        tx.plan_details.last_earning_at
        for tx in deposits
        if tx.plan_details is not None and tx.plan_details.last_earning_at is not None
    ]
    if stamps:
        return AccrualAnchor(min(stamps), "last_earning_at")
    if latest_earnings is not None:
        return AccrualAnchor(latest_earnings.submitted_at, "latest_earnings")
    approvals = [tx.approved_at or tx.submitted_at for tx in deposits]
    if approvals:
        return AccrualAnchor(min(approvals), "first_approval")
    return AccrualAnchor(now, "now")


class EarningsService:
    """Credit percentage-of-balance earnings to users holding deposits.

    Both entry points share the per-user per-day idempotency key, so however
    they interleave (startup catch-up, midnight run, manual trigger) a user
    gets at most one daily-percent credit per calendar day.
    """

    def __init__(self, client: Client, notifier: BalanceNotifier | None = None) -> None:
        self.transactions = TransactionService(client)
        self.ledger = LedgerService(client, notifier=notifier, transactions=self.transactions)
        self.rate = Decimal(str(settings.daily_earning_rate))

    def ensure_daily_rewards_for_today(self, now: datetime | None = None) -> AccrualReport:
        """Credit today's earnings to every qualifying user not yet credited."""
        now = now or now_utc()
        today_midnight = start_of_day(now, settings.timezone)
        report = AccrualReport()

        for user_id, deposits in self._candidates_by_user().items():
            key = daily_earnings_key(user_id, now)
            try:
                if self.transactions.find_by_idempotency_key(key) is not None:
                    report.skipped.append(user_id)
                    continue

                balance = self.ledger.get_or_create(user_id).current_balance
                daily = quantize(balance * self.rate)
                if daily <= 0:
                    report.skipped.append(user_id)
                    continue

                credited = self.ledger.apply_earnings(
                    user_id,
                    daily,
                    DAILY_PLAN_NAME,
                    idempotency_key=key,
                    moment=now,
                )
                if credited is None:
                    report.skipped.append(user_id)
                    continue

                self.transactions.stamp_last_earning(deposits, today_midnight)
                report.credited.append(user_id)
                report.total_amount += daily
                logger.info(
                    "Daily reward credited %s to %s (%s of %s)",
                    daily,
                    user_id,
                    self.rate,
                    balance,
                )
            except Exception:
                report.failed.append(user_id)
                logger.exception("Error ensuring daily reward for user %s", user_id)
                self._reconcile(user_id, deposits, key, today_midnight)

        logger.info("ensure_daily_rewards_for_today completed: %s", report.as_dict())
        return report

    def process_daily_earnings(self, now: datetime | None = None) -> AccrualReport:
        """Catch up every whole day elapsed since each user's last accrual.

        The elapsed days are credited in one batch at the current balance
        (``daily * days``) and the users' ``last_earning_at`` is advanced by
        exactly that many days.
        """
        now = now or now_utc()
        report = AccrualReport()

        for user_id, deposits in self._candidates_by_user().items():
            key = daily_earnings_key(user_id, now)
            stamp = None
            try:
                anchor = resolve_accrual_anchor(
                    deposits,
                    self.transactions.latest_earnings(user_id),
                    now,
                )
                days = full_days_between(anchor.moment, now)
                if days <= 0:
                    report.skipped.append(user_id)
                    continue

                balance = self.ledger.get_or_create(user_id).current_balance
                total = quantize(balance * self.rate) * days
                if total <= 0:
                    report.skipped.append(user_id)
                    continue

                stamp = anchor.moment + ONE_DAY * days

                credited = self.ledger.apply_earnings(
                    user_id,
                    total,
                    DAILY_PLAN_NAME,
                    idempotency_key=key,
                    moment=now,
                )
                if credited is None:
                    report.skipped.append(user_id)
                    continue

                self.transactions.stamp_last_earning(deposits, stamp)
                report.credited.append(user_id)
                report.total_amount += total
                logger.info(
                    "Applied %s earnings for %s over %s day(s) since %s (%s)",
                    total,
                    user_id,
                    days,
                    anchor.moment.isoformat(),
                    anchor.source,
                )
            except Exception:
                report.failed.append(user_id)
                logger.exception("Error processing daily earnings for user %s", user_id)
                self._reconcile(user_id, deposits, key, stamp)

        logger.info("process_daily_earnings completed: %s", report.as_dict())
        return report

    def ensure_transaction_rewards(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> AccrualReport:
        """Credit today's ROI on each of the user's approved daily-reward deposits.

        Each deposit earns ``amount * roi_percentage / 100`` once per local
        day. The key is the one used for the approval-day instant credit, so
        a deposit approved today is not paid twice.
        """
        now = now or now_utc()
        today_midnight = start_of_day(now, settings.timezone)
        report = AccrualReport()

        for transaction in self.transactions.list_approved(user_id):
            plan = transaction.plan_details
            if (
                not transaction.is_deposit_type
                or plan is None
                or plan.plan_type != DAILY_REWARD_PLAN
                or not plan.roi_percentage
            ):
                continue

            key = instant_earnings_key(transaction.id, now)
            try:
                daily = quantize(transaction.amount * plan.roi_percentage / Decimal(100))
                if daily <= 0:
                    report.skipped.append(transaction.id)
                    continue

                credited = self.ledger.apply_earnings(
                    user_id,
                    daily,
                    plan.plan_name or DAILY_REWARD_PLAN,
                    source_tx_id=transaction.id,
                    idempotency_key=key,
                    moment=now,
                )
                if credited is None:
                    report.skipped.append(transaction.id)
                    continue

                self.transactions.stamp_last_earning([transaction], today_midnight)
                report.credited.append(transaction.id)
                report.total_amount += daily
            except Exception:
                report.failed.append(transaction.id)
                logger.exception("Error ensuring reward for transaction %s", transaction.id)
                self._reconcile(user_id, [transaction], key, today_midnight)

        logger.info("ensure_transaction_rewards for %s completed: %s", user_id, report.as_dict())
        return report

    def _reconcile(
        self,
        user_id: str,
        deposits: list[Transaction],
        key: str,
        stamp: datetime | None,
    ) -> None:
        """Repair a user after a credit failed partway.

        Once the earnings row claimed ``key`` the credit cannot be retried, so
        the cached balance is rebuilt to include it and the deposits are
        stamped as if the credit had finished.
        """
        try:
            self.ledger.recompute(user_id)
            if stamp is not None and self.transactions.find_by_idempotency_key(key) is not None:
                self.transactions.stamp_last_earning(deposits, stamp)
        except Exception:
            logger.exception("Failed to reconcile balance for user %s", user_id)

    def _candidates_by_user(self) -> dict[str, list[Transaction]]:
        grouped: dict[str, list[Transaction]] = defaultdict(list)
        for transaction in self.transactions.list_accrual_candidates():
            grouped[transaction.user_id].append(transaction)
        return dict(grouped)
