"""Balance schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from balance_ledger.utils.money import ZERO


class BalanceHistoryEntry(BaseModel):
    """One audit-trail entry of a balance mutation."""

    date: datetime
    action: str
    amount: Decimal
    balance_after: Decimal


class BalanceRecord(BaseModel):
    """Derived per-user aggregate cached in the ``balances`` table."""

    user_id: str
    current_balance: Decimal = ZERO
    total_deposits: Decimal = ZERO
    total_earnings: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    last_updated: datetime | None = None
    history: list[BalanceHistoryEntry] = Field(default_factory=list)
    version: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> BalanceRecord:
        """Build a BalanceRecord from a stored row."""
        payload = dict(row)
        payload["user_id"] = str(row["user_id"])
        payload["history"] = row.get("history") or []
        payload["version"] = int(row.get("version") or 0)
        return cls.model_validate(payload)

    def is_consistent(self) -> bool:
        """Return whether the balance equals deposits + earnings - withdrawals."""
        expected = self.total_deposits + self.total_earnings - self.total_withdrawals
        return self.current_balance == expected


class BalancePoint(BaseModel):
    """Balance held at the end of one day or hour of a chart series."""

    date: str
    balance: Decimal


class BalanceSummary(BaseModel):
    """Balance figures without the history trail."""

    user_id: str
    current_balance: Decimal
    total_deposits: Decimal
    total_earnings: Decimal
    total_withdrawals: Decimal
    last_updated: datetime | None = None


class BalanceUpdate(BaseModel):
    """Payload of the ``balance:update`` event."""

    user_id: str
    current_balance: Decimal
    last_updated: datetime
    recent_entry: BalanceHistoryEntry | None = None
