"""Pytest fixtures for backend tests."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
    os.environ.setdefault("ENABLE_SCHEDULER", "false")
    os.environ.setdefault("TIMEZONE", "UTC")


# Settings are built at import time, so the environment must exist before
# any balance_ledger module is collected.
_set_default_env()

import pytest  # noqa: E402
from fakes import FakeSupabaseClient  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

CLOCK_MODULES = (
    "balance_ledger.services.approval_service",
    "balance_ledger.services.earnings_service",
    "balance_ledger.services.ledger_service",
    "balance_ledger.services.transaction_service",
)


class Clock:
    """Controllable replacement for ``now_utc``."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from balance_ledger.main import app

    return TestClient(app)


@pytest.fixture
def fake_db() -> FakeSupabaseClient:
    """Fresh in-memory database for one test."""
    return FakeSupabaseClient()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> Clock:
    """Freeze service clocks at 2026-03-10 09:00 UTC."""
    frozen = Clock(datetime(2026, 3, 10, 9, 0, tzinfo=UTC))
    for module in CLOCK_MODULES:
        monkeypatch.setattr(f"{module}.now_utc", frozen)
    return frozen
