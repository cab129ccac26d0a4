"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ApprovalService": "balance_ledger.services.approval_service",
    "BalanceNotifier": "balance_ledger.services.notifier",
    "EarningsService": "balance_ledger.services.earnings_service",
    "LedgerService": "balance_ledger.services.ledger_service",
    "SupabaseService": "balance_ledger.services.common",
    "TransactionService": "balance_ledger.services.transaction_service",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
