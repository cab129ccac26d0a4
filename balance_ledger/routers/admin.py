"""Operator endpoints: approvals, balance reconciliation, and accrual runs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends

from balance_ledger.dependencies import (
    get_admin_user,
    get_current_user_id,
    get_db_client,
    get_notifier,
)
from balance_ledger.schemas.transaction import RejectRequest
from balance_ledger.services.approval_service import ApprovalService
from balance_ledger.services.earnings_service import EarningsService
from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService
from balance_ledger.utils.time import now_utc
from supabase import Client

router = APIRouter()

RECENT_EARNINGS_WINDOW = timedelta(minutes=5)


@router.get("/transactions/pending")
def list_pending(
    _: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return every pending transaction, oldest first."""
    pending = TransactionService(client).list_pending()
    return {"transactions": pending, "total": len(pending)}


@router.post("/transactions/{transaction_id}/approve")
def approve_transaction(
    transaction_id: str,
    admin: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Approve a pending transaction and return the user's refreshed balance."""
    service = ApprovalService(client, notifier=notifier)
    transaction = service.approve(transaction_id, get_current_user_id(admin))
    return {
        "transaction": transaction,
        "balance": service.ledger.summary(transaction.user_id),
    }


@router.post("/transactions/{transaction_id}/reject")
def reject_transaction(
    transaction_id: str,
    payload: RejectRequest | None = None,
    admin: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Reject a pending transaction."""
    reason = payload.reason if payload else None
    transaction = ApprovalService(client, notifier=notifier).reject(
        transaction_id, reason, get_current_user_id(admin)
    )
    return {"transaction": transaction}


@router.get("/balances/{user_id}")
def get_user_balance(
    user_id: str,
    _: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Return any user's balance record including its history."""
    return {"balance": LedgerService(client, notifier=notifier).get_or_create(user_id)}


@router.post("/balances/{user_id}/recompute")
def recompute_user_balance(
    user_id: str,
    _: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Rebuild a user's balance from approved transactions."""
    return {"balance": LedgerService(client, notifier=notifier).recompute(user_id)}


@router.post("/earnings/run")
def run_earnings(
    _: Any = Depends(get_admin_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Run catch-up accrual and today's rewards now, then list what was credited."""
    started = now_utc()
    service = EarningsService(client, notifier=notifier)
    catch_up = service.process_daily_earnings()
    today = service.ensure_daily_rewards_for_today()
    recent = service.transactions.recent_earnings(started - RECENT_EARNINGS_WINDOW)
    return {
        "catch_up": catch_up.as_dict(),
        "today": today.as_dict(),
        "recent_earnings": recent,
    }
