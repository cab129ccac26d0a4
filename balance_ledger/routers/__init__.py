"""API router package."""

from balance_ledger.routers import admin, balance, transactions

__all__ = ["admin", "balance", "transactions"]
