"""Approval state machine for pending transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Literal

from balance_ledger.config import settings
from balance_ledger.schemas.transaction import (
    AccrualPlan,
    ApprovalStatus,
    DepositDetails,
    Transaction,
)
from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService
from balance_ledger.utils.errors import (
    AlreadyApprovedError,
    ConflictError,
    InvalidTransitionError,
    StorageError,
)
from balance_ledger.utils.money import quantize
from balance_ledger.utils.time import day_key, now_utc, start_of_day
from supabase import Client

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Rejected by admin"

PLAN_TYPE_ROI = {
    "basic": Decimal("4"),
    "standard": Decimal("6"),
    "premium": Decimal("8"),
}

# (exclusive upper bound, roi) checked in order; amounts above the last bound get TOP_TIER_ROI.
AMOUNT_THRESHOLD_ROI = (
    (Decimal("99"), Decimal("4")),
    (Decimal("499"), Decimal("6")),
)
TOP_TIER_ROI = Decimal("8")


@dataclass(frozen=True, slots=True)
class RoiTier:
    """Daily ROI percentage and which rule produced it."""

    percentage: Decimal
    source: Literal["plan_type", "amount"]


def resolve_roi_tier(plan_type: str | None, amount: Decimal) -> RoiTier:
    """Return the ROI tier for a deposit.

    Precedence: a recognized ``plan_type`` (basic 4, standard 6, premium 8)
    wins; otherwise the amount bracket decides (<99 is 4, <499 is 6, else 8).
    """
    normalized = (plan_type or "").strip().lower()
    if normalized in PLAN_TYPE_ROI:
        return RoiTier(PLAN_TYPE_ROI[normalized], "plan_type")
    for upper_bound, roi in AMOUNT_THRESHOLD_ROI:
        if amount < upper_bound:
            return RoiTier(roi, "amount")
    return RoiTier(TOP_TIER_ROI, "amount")


def instant_earnings_key(transaction_id: str, moment: datetime) -> str:
    """Idempotency key of one deposit's ROI credit for the local day of ``moment``."""
    return f"instant:{transaction_id}:{day_key(moment, settings.timezone)}"


class ApprovalService:
    """Move transactions out of ``pending`` and apply their balance effects."""

    def __init__(self, client: Client, notifier: BalanceNotifier | None = None) -> None:
        self.transactions = TransactionService(client)
        self.ledger = LedgerService(client, notifier=notifier, transactions=self.transactions)

    def approve(self, transaction_id: str, actor_id: str) -> Transaction:
        """Approve a pending transaction exactly once.

        Approving an already-approved transaction settles whatever its first
        approval left undone (see ``settle``) before raising.

        Raises:
            NotFoundError: the transaction does not exist.
            AlreadyApprovedError: the transaction was approved before.
            InvalidTransitionError: the transaction was rejected.
        """
        transaction = self.transactions.get(transaction_id)
        if transaction.approval_status == ApprovalStatus.APPROVED:
            self.settle(transaction)
            raise AlreadyApprovedError(transaction_id)
        self._ensure_pending(transaction, ApprovalStatus.APPROVED)

        now = now_utc()
        today_midnight = start_of_day(now, settings.timezone)
        patch: dict[str, object] = {
            "approval_status": ApprovalStatus.APPROVED,
            "approved_at": now,
            "approved_by": actor_id,
        }
        if transaction.is_deposit_type:
            details = transaction.details
            plan_type = details.plan_type if isinstance(details, DepositDetails) else None
            plan_name = "deposit"
            if isinstance(details, DepositDetails) and details.plan_name:
                plan_name = details.plan_name
            tier = resolve_roi_tier(plan_type, transaction.amount)
            patch["plan_details"] = AccrualPlan(
                plan_name=plan_name,
                roi_percentage=tier.percentage,
                last_earning_at=today_midnight,
            )

        approved = self.transactions.update_fields(
            transaction_id,
            patch,
            expected_status=ApprovalStatus.PENDING,
        )
        if approved is None:
            # Another approver or rejecter won the compare-and-swap.
            self._ensure_pending(self.transactions.get(transaction_id), ApprovalStatus.APPROVED)
            raise AlreadyApprovedError(transaction_id)

        logger.info("Transaction %s approved by %s", transaction_id, actor_id)
        try:
            self.ledger.apply_delta(
                approved.user_id,
                approved.kind,
                approved.amount,
                f"{approved.kind.value}-{approved.id}",
            )
        except (StorageError, ConflictError):
            # The row is approved, so the rebuild below still counts it.
            logger.exception("Balance update for %s failed, rebuilding", transaction_id)

        self._credit_instant_earnings(approved, now)
        self.ledger.recompute(approved.user_id)
        return approved

    def settle(self, transaction: Transaction) -> None:
        """Finish the side effects of an approved transaction.

        Credits the approval-day ROI if its key is still unclaimed and
        rebuilds the balance. Safe to repeat.
        """
        if transaction.approval_status != ApprovalStatus.APPROVED:
            return
        self._credit_instant_earnings(transaction, transaction.approved_at or now_utc())
        self.ledger.recompute(transaction.user_id)

    def reject(
        self,
        transaction_id: str,
        reason: str | None,
        actor_id: str,
    ) -> Transaction:
        """Reject a pending transaction; balances are not touched.

        Raises:
            NotFoundError: the transaction does not exist.
            InvalidTransitionError: the transaction is no longer pending.
        """
        transaction = self.transactions.get(transaction_id)
        self._ensure_pending(transaction, ApprovalStatus.REJECTED)

        rejected = self.transactions.update_fields(
            transaction_id,
            {
                "approval_status": ApprovalStatus.REJECTED,
                "rejected_at": now_utc(),
                "rejected_by": actor_id,
                "rejection_reason": reason or DEFAULT_REJECTION_REASON,
            },
            expected_status=ApprovalStatus.PENDING,
        )
        if rejected is None:
            current = self.transactions.get(transaction_id)
            raise InvalidTransitionError(
                transaction_id, current.approval_status.value, ApprovalStatus.REJECTED.value
            )

        logger.info("Transaction %s rejected by %s", transaction_id, actor_id)
        return rejected

    def _credit_instant_earnings(self, transaction: Transaction, moment: datetime) -> None:
        """Credit one day's ROI for the approval day, at most once per deposit.

        A failure here does not undo the approval; ``settle`` retries it.
        """
        plan = transaction.plan_details
        if not transaction.is_deposit_type or plan is None or not plan.roi_percentage:
            return
        instant = quantize(transaction.amount * plan.roi_percentage / Decimal(100))
        if instant <= 0:
            return
        try:
            credited = self.ledger.apply_earnings(
                transaction.user_id,
                instant,
                f"{plan.plan_name}-instant",
                source_tx_id=transaction.id,
                idempotency_key=instant_earnings_key(transaction.id, moment),
                moment=moment,
            )
        except Exception:
            logger.exception("Failed to credit instant earnings for %s", transaction.id)
            return
        if credited is None:
            logger.info("Instant earnings for %s already credited", transaction.id)

    @staticmethod
    def _ensure_pending(transaction: Transaction, target: ApprovalStatus) -> None:
        if transaction.approval_status == ApprovalStatus.PENDING:
            return
        if (
            transaction.approval_status == ApprovalStatus.APPROVED
            and target == ApprovalStatus.APPROVED
        ):
            raise AlreadyApprovedError(transaction.id)
        raise InvalidTransitionError(
            transaction.id, transaction.approval_status.value, target.value
        )
