"""Transaction store: append-only log of financial events."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from balance_ledger.schemas.transaction import (
    DAILY_REWARD_PLAN,
    AccrualPlan,
    ApprovalStatus,
    EarningsDetails,
    Transaction,
    TransactionKind,
    TransactionStats,
    parse_details,
)
from balance_ledger.services.common import SupabaseService
from balance_ledger.utils.errors import NotFoundError, ValidationError
from balance_ledger.utils.money import money_str, to_decimal
from balance_ledger.utils.time import now_utc, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

TABLE = "transactions"

# Fields the approval and accrual paths may change after creation.
MUTABLE_FIELDS = frozenset(
    {
        "approval_status",
        "approved_at",
        "approved_by",
        "rejected_at",
        "rejected_by",
        "rejection_reason",
        "plan_details",
    }
)


def validate_amount(amount: object) -> Decimal:
    """Return ``amount`` as a positive Decimal or raise ValidationError."""
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise ValidationError("Amount must be a positive number") from exc
    if value <= 0:
        raise ValidationError("Amount must be a positive number")
    return value


def validate_kind(kind: object) -> TransactionKind:
    """Return ``kind`` as a TransactionKind or raise ValidationError."""
    try:
        return TransactionKind(str(kind))
    except ValueError as exc:
        raise ValidationError(f"Unknown transaction kind: {kind}") from exc


def validate_status(status: object) -> ApprovalStatus:
    """Return ``status`` as an ApprovalStatus or raise ValidationError."""
    try:
        return ApprovalStatus(str(status))
    except ValueError as exc:
        raise ValidationError(f"Unknown approval status: {status}") from exc


def serialize_plan(plan: AccrualPlan) -> dict[str, Any]:
    """Dump an accrual stamp for the ``plan_details`` JSON column."""
    return plan.model_dump(mode="json")


def _serialize_patch(patch: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in patch.items():
        if isinstance(value, datetime):
            payload[key] = to_iso(value)
        elif isinstance(value, AccrualPlan):
            payload[key] = serialize_plan(value)
        elif isinstance(value, ApprovalStatus):
            payload[key] = value.value
        else:
            payload[key] = value
    return payload


class TransactionService:
    """Create and query transaction log rows."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def record(
        self,
        user_id: str,
        kind: str | TransactionKind,
        amount: object,
        description: str = "",
        details: dict[str, Any] | None = None,
        plan_details: AccrualPlan | None = None,
    ) -> Transaction:
        """Insert a pending transaction.

        Raises:
            ValidationError: ``amount`` is not positive or ``kind`` is unknown.
        """
        tx_kind = validate_kind(kind)
        value = validate_amount(amount)
        parsed = parse_details(tx_kind, details)

        row = self.db.insert_one(
            TABLE,
            {
                "user_id": user_id,
                "kind": tx_kind.value,
                "amount": money_str(value),
                "description": description,
                "details": parsed.model_dump(mode="json", exclude={"kind"}, exclude_none=True),
                "plan_details": serialize_plan(plan_details) if plan_details else None,
                "approval_status": ApprovalStatus.PENDING.value,
                "submitted_at": to_iso(now_utc()),
            },
        )
        transaction = Transaction.from_row(row)
        logger.info(
            "Recorded %s %s for %s (%s)",
            transaction.kind.value,
            transaction.amount,
            user_id,
            transaction.id,
        )
        return transaction

    def record_earnings(
        self,
        user_id: str,
        amount: Decimal,
        plan_name: str,
        source_tx_id: str | None = None,
        idempotency_key: str | None = None,
        moment: datetime | None = None,
    ) -> Transaction:
        """Insert a pre-approved earnings row.

        A non-null ``idempotency_key`` is unique across the table, so the
        insert itself is the guard against crediting the same period twice.

        Raises:
            DuplicateEntryError: a row with ``idempotency_key`` already exists.
        """
        stamp = to_iso(moment or now_utc())
        details = EarningsDetails(plan_name=plan_name, source_tx_id=source_tx_id)
        row = self.db.insert_one(
            TABLE,
            {
                "user_id": user_id,
                "kind": TransactionKind.EARNINGS.value,
                "amount": money_str(amount),
                "description": f"Earnings for {plan_name}",
                "details": details.model_dump(mode="json", exclude={"kind"}, exclude_none=True),
                "approval_status": ApprovalStatus.APPROVED.value,
                "submitted_at": stamp,
                "approved_at": stamp,
                "approved_by": "system",
                "idempotency_key": idempotency_key,
            },
        )
        return Transaction.from_row(row)

    def get(self, transaction_id: str) -> Transaction:
        """Return one transaction or raise NotFoundError."""
        row = self.db.select_one(TABLE, {"id": transaction_id}, not_found_label="Transaction")
        return Transaction.from_row(row)

    def find_by_idempotency_key(self, key: str) -> Transaction | None:
        """Return the earnings row that claimed ``key``, if any."""
        row = self.db.select_first(TABLE, {"idempotency_key": key})
        return Transaction.from_row(row) if row else None

    def list_by_user(
        self,
        user_id: str,
        status: str | ApprovalStatus | None = None,
    ) -> list[Transaction]:
        """Return a user's transactions, newest first."""
        filters: dict[str, Any] = {"user_id": user_id}
        if status:
            filters["approval_status"] = validate_status(status).value
        rows = self.db.select_many(TABLE, filters=filters, order_by="submitted_at", descending=True)
        return [Transaction.from_row(row) for row in rows]

    def list_pending(self) -> list[Transaction]:
        """Return every pending transaction, oldest first."""
        rows = self.db.select_many(
            TABLE,
            filters={"approval_status": ApprovalStatus.PENDING.value},
            order_by="submitted_at",
        )
        return [Transaction.from_row(row) for row in rows]

    def list_approved(self, user_id: str) -> list[Transaction]:
        """Return a user's approved transactions, oldest first."""
        rows = self.db.select_many(
            TABLE,
            filters={"user_id": user_id, "approval_status": ApprovalStatus.APPROVED.value},
            order_by="submitted_at",
        )
        return [Transaction.from_row(row) for row in rows]

    def list_accrual_candidates(self) -> list[Transaction]:
        """Return approved deposits and daily-reward plan rows across all users."""
        query = (
            self.db.client.table(TABLE)
            .select("*")
            .eq("approval_status", ApprovalStatus.APPROVED.value)
            .in_("kind", [TransactionKind.DEPOSIT.value, TransactionKind.PLAN.value])
            .order("submitted_at")
        )
        rows = self.db.execute(query, default=[])
        candidates = []
        for row in rows:
            transaction = Transaction.from_row(row)
            plan = transaction.plan_details
            if transaction.kind == TransactionKind.DEPOSIT or (
                plan is not None and plan.plan_type == DAILY_REWARD_PLAN
            ):
                candidates.append(transaction)
        return candidates

    def latest_earnings(self, user_id: str) -> Transaction | None:
        """Return the user's most recent earnings row."""
        rows = self.db.select_many(
            TABLE,
            filters={"user_id": user_id, "kind": TransactionKind.EARNINGS.value},
            order_by="submitted_at",
            descending=True,
            limit=1,
        )
        return Transaction.from_row(rows[0]) if rows else None

    def recent_earnings(self, since: datetime, limit: int = 50) -> list[Transaction]:
        """Return earnings rows created at or after ``since``, newest first."""
        query = (
            self.db.client.table(TABLE)
            .select("*")
            .eq("kind", TransactionKind.EARNINGS.value)
            .gte("submitted_at", to_iso(since))
            .order("submitted_at", desc=True)
            .limit(limit)
        )
        return [Transaction.from_row(row) for row in self.db.execute(query, default=[])]

    def update_fields(
        self,
        transaction_id: str,
        patch: dict[str, Any],
        expected_status: ApprovalStatus | None = None,
    ) -> Transaction | None:
        """Patch approval fields or the accrual stamp of one transaction.

        With ``expected_status`` the write only happens while the row still
        has that status; ``None`` is returned when it did not match.

        Raises:
            ValidationError: ``patch`` touches an immutable field.
        """
        illegal = set(patch) - MUTABLE_FIELDS
        if illegal:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(illegal))}")

        filters: dict[str, Any] = {"id": transaction_id}
        if expected_status is not None:
            filters["approval_status"] = expected_status.value
        rows = self.db.update(TABLE, filters, _serialize_patch(patch))
        return Transaction.from_row(rows[0]) if rows else None

    def stamp_last_earning(self, transactions: list[Transaction], moment: datetime) -> None:
        """Advance ``plan_details.last_earning_at`` on each given transaction."""
        for transaction in transactions:
            plan = transaction.plan_details or AccrualPlan()
            self.update_fields(
                transaction.id,
                {"plan_details": plan.model_copy(update={"last_earning_at": moment})},
            )

    def stats(self, user_id: str) -> TransactionStats:
        """Count a user's transactions by approval status and kind."""
        rows = self.db.select_many(
            TABLE,
            filters={"user_id": user_id},
            columns="kind,approval_status",
        )
        stats = TransactionStats(by_kind={kind.value: 0 for kind in TransactionKind})
        for row in rows:
            stats.total += 1
            status = str(row["approval_status"])
            if status == ApprovalStatus.PENDING:
                stats.pending += 1
            elif status == ApprovalStatus.APPROVED:
                stats.approved += 1
            elif status == ApprovalStatus.REJECTED:
                stats.rejected += 1
            kind = str(row["kind"])
            stats.by_kind[kind] = stats.by_kind.get(kind, 0) + 1
        return stats
