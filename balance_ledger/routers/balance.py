"""Balance endpoints for the current user."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from balance_ledger.dependencies import (
    get_current_user,
    get_current_user_id,
    get_db_client,
    get_notifier,
)
from balance_ledger.services.earnings_service import EarningsService
from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService
from supabase import Client

router = APIRouter()


@router.get("")
def get_balance(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Return the current user's balance summary."""
    user_id = get_current_user_id(user)
    summary = LedgerService(client, notifier=notifier).summary(user_id)
    return {"balance": summary}


@router.get("/history")
def get_balance_history(
    days: int = Query(default=30, ge=1, le=365),
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Return balance history entries from the last ``days`` days."""
    user_id = get_current_user_id(user)
    history = LedgerService(client, notifier=notifier).history(user_id, days=days)
    return {"history": history, "days": days}


@router.get("/stats")
def get_transaction_stats(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return counts of the current user's transactions."""
    user_id = get_current_user_id(user)
    return {"stats": TransactionService(client).stats(user_id)}


@router.get("/series")
def get_balance_series(
    days: int = Query(default=30, ge=1, le=365),
    hours: int | None = Query(default=None, ge=1, le=24 * 31),
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Return chart points per day, or per hour when ``hours`` is given."""
    user_id = get_current_user_id(user)
    ledger = LedgerService(client, notifier=notifier)
    series = ledger.history_series(user_id, days=days, hours=hours)
    summary = ledger.summary(user_id)
    return {
        "series": series,
        "current_balance": summary.current_balance,
        "last_updated": summary.last_updated,
    }


@router.get("/refresh")
def refresh_balance(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Rebuild the current user's balance and return it with their transactions."""
    user_id = get_current_user_id(user)
    transactions = TransactionService(client)
    ledger = LedgerService(client, notifier=notifier, transactions=transactions)
    ledger.recompute(user_id)
    return {
        "balance": ledger.summary(user_id),
        "transactions": transactions.list_by_user(user_id),
    }


@router.post("/ensure-today-rewards")
def ensure_today_rewards(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Credit today's ROI on the current user's daily-reward deposits."""
    user_id = get_current_user_id(user)
    service = EarningsService(client, notifier=notifier)
    report = service.ensure_transaction_rewards(user_id)
    return {
        "credited": report.credited,
        "report": report.as_dict(),
        "balance": service.ledger.summary(user_id),
    }
