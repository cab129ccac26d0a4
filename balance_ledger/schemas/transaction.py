"""Transaction schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TransactionKind(StrEnum):
    """Kinds of financial events in the transaction log."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PLAN = "plan"
    EARNINGS = "earnings"


class ApprovalStatus(StrEnum):
    """Approval lifecycle states; approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


DEPOSIT_KINDS = frozenset({TransactionKind.DEPOSIT, TransactionKind.PLAN})
DAILY_REWARD_PLAN = "daily-reward"


# Stored maps may carry camelCase keys written by other clients.
CAMEL_INPUT = AliasGenerator(validation_alias=to_camel)


class _Details(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        alias_generator=CAMEL_INPUT,
        populate_by_name=True,
    )


class DepositDetails(_Details):
    """Attributes supplied with a deposit or plan enrollment."""

    kind: Literal["deposit"] = "deposit"
    plan_type: str | None = None
    plan_name: str | None = None
    proof_ref: str | None = None


class WithdrawalDetails(_Details):
    """Attributes supplied with a withdrawal request."""

    kind: Literal["withdrawal"] = "withdrawal"
    withdrawal_address: str | None = None
    network: str | None = None
    withdrawal_id: str | None = None


class EarningsDetails(_Details):
    """Attributes of a system-generated earnings credit."""

    kind: Literal["earnings"] = "earnings"
    plan_name: str = ""
    source_tx_id: str | None = None
    auto: bool = True


TransactionDetails = DepositDetails | WithdrawalDetails | EarningsDetails

_DETAILS_BY_KIND: dict[TransactionKind, type[_Details]] = {
    TransactionKind.DEPOSIT: DepositDetails,
    TransactionKind.PLAN: DepositDetails,
    TransactionKind.WITHDRAWAL: WithdrawalDetails,
    TransactionKind.EARNINGS: EarningsDetails,
}


def parse_details(kind: TransactionKind, raw: Any) -> TransactionDetails:
    """Build the details variant matching ``kind`` from a stored map."""
    model = _DETAILS_BY_KIND[kind]
    if isinstance(raw, model):
        return raw  # type: ignore[return-value]
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    payload = dict(raw or {})
    payload.pop("kind", None)
    return model.model_validate(payload)  # type: ignore[return-value]


class AccrualPlan(BaseModel):
    """Daily-accrual stamp written on approved deposit-type transactions."""

    model_config = ConfigDict(alias_generator=CAMEL_INPUT, populate_by_name=True)

    plan_type: str = DAILY_REWARD_PLAN
    plan_name: str = "deposit"
    roi_percentage: Decimal | None = None
    last_earning_at: datetime | None = None


class Transaction(BaseModel):
    """One entry of the append-only transaction log."""

    id: str
    user_id: str
    kind: TransactionKind
    amount: Decimal
    description: str = ""
    details: TransactionDetails = Field(discriminator="kind")
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    submitted_at: datetime
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    plan_details: AccrualPlan | None = None
    idempotency_key: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Transaction:
        """Build a Transaction from a stored row."""
        kind = TransactionKind(row["kind"])
        payload = dict(row)
        payload["id"] = str(row["id"])
        payload["kind"] = kind
        payload["amount"] = Decimal(str(row["amount"]))
        payload["description"] = row.get("description") or ""
        payload["details"] = parse_details(kind, row.get("details")).model_dump()
        return cls.model_validate(payload)

    @property
    def is_deposit_type(self) -> bool:
        return self.kind in DEPOSIT_KINDS


class TransactionCreateRequest(BaseModel):
    """Request body for submitting a transaction."""

    kind: Literal["deposit", "plan", "withdrawal"]
    amount: Decimal = Field(gt=0)
    description: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class RejectRequest(BaseModel):
    """Request body for rejecting a transaction."""

    reason: str | None = None


class TransactionStats(BaseModel):
    """Counts of a user's transactions by status and kind."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict)
