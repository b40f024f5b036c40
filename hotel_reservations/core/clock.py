from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from hotel_reservations.core.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_today(now: datetime) -> date:
    return ensure_utc(now).astimezone(local_tz()).date()


def local_start_of(day: date, at: time = time(0, 0)) -> datetime:
    """UTC instant of `at` o'clock on the hotel's local calendar day."""
    return datetime.combine(day, at).replace(tzinfo=local_tz()).astimezone(timezone.utc)


def local_day_end(day: date) -> datetime:
    return local_start_of(day + timedelta(days=1))
