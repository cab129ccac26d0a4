"""Background job modules for periodic ledger tasks."""

from balance_ledger.jobs.daily_earnings import daily_earnings

__all__ = [
    "daily_earnings",
]
