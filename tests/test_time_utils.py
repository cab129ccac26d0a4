"""Time helper tests."""

from __future__ import annotations

from datetime import UTC, datetime

from balance_ledger.utils.time import (
    day_key,
    full_days_between,
    start_of_day,
    to_iso,
)


def test_start_of_day_uses_local_midnight() -> None:
    """Midnight in a non-UTC zone is returned as the equivalent UTC instant."""
    moment = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)
    midnight = start_of_day(moment, "America/New_York")
    # 02:00 UTC is still March 9th in New York (UTC-4 after the DST change).
    assert midnight == datetime(2026, 3, 9, 4, 0, tzinfo=UTC)


def test_day_key_follows_timezone() -> None:
    moment = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)
    assert day_key(moment, "UTC") == "2026-03-10"
    assert day_key(moment, "America/New_York") == "2026-03-09"


def test_full_days_between_counts_whole_days_only() -> None:
    start = datetime(2026, 3, 1, 0, 0, tzinfo=UTC)
    assert full_days_between(start, datetime(2026, 3, 3, 23, 59, tzinfo=UTC)) == 2
    assert full_days_between(start, datetime(2026, 3, 1, 23, 0, tzinfo=UTC)) == 0
    assert full_days_between(start, datetime(2026, 2, 28, tzinfo=UTC)) == 0


def test_to_iso_normalizes_naive_values_to_utc() -> None:
    assert to_iso(datetime(2026, 3, 1, 12, 0)) == "2026-03-01T12:00:00+00:00"
