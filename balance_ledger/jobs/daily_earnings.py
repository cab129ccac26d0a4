"""Daily earnings accrual scheduled jobs."""

from __future__ import annotations

import logging

from balance_ledger.services.earnings_service import AccrualReport, EarningsService
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.utils.supabase_client import get_service_client

logger = logging.getLogger(__name__)


async def daily_earnings(
    notifier: BalanceNotifier | None = None,
) -> tuple[AccrualReport, AccrualReport]:
    """Catch up elapsed days, then make sure today's reward exists.

    Registered for local midnight and as a one-shot run at startup.
    """
    service = EarningsService(get_service_client(), notifier=notifier)

    catch_up = service.process_daily_earnings()
    today = service.ensure_daily_rewards_for_today()

    logger.info(
        "daily_earnings completed: catch-up credited %s user(s), today credited %s user(s)",
        len(catch_up.credited),
        len(today.credited),
    )
    return catch_up, today
