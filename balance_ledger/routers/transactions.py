"""Transaction submission endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from balance_ledger.config import settings
from balance_ledger.dependencies import (
    get_current_user,
    get_current_user_id,
    get_db_client,
    get_notifier,
)
from balance_ledger.schemas.transaction import TransactionCreateRequest, TransactionKind
from balance_ledger.services.ledger_service import LedgerService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.services.transaction_service import TransactionService
from balance_ledger.utils.errors import (
    ForbiddenError,
    InsufficientBalanceError,
    ValidationError,
)
from supabase import Client

router = APIRouter()


@router.post("", status_code=201)
def submit_transaction(
    payload: TransactionCreateRequest,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
    notifier: BalanceNotifier = Depends(get_notifier),
) -> dict:
    """Submit a deposit, plan enrollment, or withdrawal for approval."""
    user_id = get_current_user_id(user)
    service = TransactionService(client)

    if payload.kind == TransactionKind.WITHDRAWAL:
        if payload.amount < settings.min_withdrawal_amount:
            raise ValidationError(
                f"Minimum withdrawal amount is {settings.min_withdrawal_amount}"
            )
        ledger = LedgerService(client, notifier=notifier, transactions=service)
        available = ledger.get_or_create(user_id).current_balance
        if payload.amount > available:
            raise InsufficientBalanceError(payload.amount, available)

    transaction = service.record(
        user_id,
        payload.kind,
        payload.amount,
        description=payload.description,
        details=payload.details,
    )
    return {"transaction": transaction}


@router.get("")
def list_transactions(
    status: str | None = Query(default=None),
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return the current user's transactions, newest first."""
    user_id = get_current_user_id(user)
    transactions = TransactionService(client).list_by_user(user_id, status=status)
    return {"transactions": transactions, "total": len(transactions)}


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: str,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return one transaction to its owner or to an operator."""
    user_id = get_current_user_id(user)
    transaction = TransactionService(client).get(transaction_id)
    if transaction.user_id != user_id and user_id not in settings.admin_email_set:
        raise ForbiddenError("Not allowed to view this transaction")
    return {"transaction": transaction}
