"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

ONE_DAY = timedelta(days=1)


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def start_of_day(moment: datetime, tz_name: str = "UTC") -> datetime:
    """Return local midnight (in ``tz_name``) of ``moment`` as a UTC datetime."""
    local = moment.astimezone(ZoneInfo(tz_name))
    midnight = datetime(local.year, local.month, local.day, tzinfo=ZoneInfo(tz_name))
    return midnight.astimezone(UTC)


def day_key(moment: datetime, tz_name: str = "UTC") -> str:
    """Return the local calendar date of ``moment`` as ``YYYY-MM-DD``."""
    return moment.astimezone(ZoneInfo(tz_name)).date().isoformat()


def full_days_between(start: datetime, end: datetime) -> int:
    """Return the number of whole 24h periods from ``start`` to ``end``."""
    if end <= start:
        return 0
    return int((end - start) // ONE_DAY)


def hour_key(moment: datetime) -> str:
    """Return the UTC hour of ``moment`` as ``YYYY-MM-DDTHH``."""
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H")


def trailing_day_keys(moment: datetime, days: int, tz_name: str = "UTC") -> list[str]:
    """Return the ``days`` local dates ending on ``moment``'s date, oldest first."""
    today = moment.astimezone(ZoneInfo(tz_name)).date()
    return [(today - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]


def trailing_hour_keys(moment: datetime, hours: int) -> list[str]:
    """Return the ``hours`` UTC hours ending on ``moment``'s hour, oldest first."""
    end = moment.astimezone(UTC).replace(minute=0, second=0, microsecond=0)
    return [hour_key(end - timedelta(hours=offset)) for offset in range(hours - 1, -1, -1)]
