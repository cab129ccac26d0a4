"""APScheduler setup and job registration."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from balance_ledger.config import settings
from balance_ledger.jobs.daily_earnings import daily_earnings
from balance_ledger.services.notifier import BalanceNotifier

scheduler = AsyncIOScheduler(timezone=settings.timezone)


def register_jobs(notifier: BalanceNotifier | None = None) -> None:
    """Register the accrual jobs if not already present."""
    if scheduler.get_job("daily_earnings") is None:
        scheduler.add_job(
            daily_earnings,
            CronTrigger(hour=0, minute=0, timezone=settings.timezone),
            id="daily_earnings",
            kwargs={"notifier": notifier},
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    if settings.run_earnings_on_startup and scheduler.get_job("startup_earnings") is None:
        scheduler.add_job(
            daily_earnings,
            DateTrigger(timezone=settings.timezone),
            id="startup_earnings",
            kwargs={"notifier": notifier},
            replace_existing=True,
            max_instances=1,
        )
