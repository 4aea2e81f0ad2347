from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.models import Weekday
from app.services.hours import normalize_ts
from app.settings import get_settings

DEFAULT_ATTENDANCE_TIMEZONE = "Asia/Kolkata"
WEEKDAYS: tuple[Weekday, ...] = tuple(Weekday)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_ATTENDANCE_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_ATTENDANCE_TIMEZONE)


def local_date(ts_utc: datetime) -> date:
    return normalize_ts(ts_utc).astimezone(attendance_timezone()).date()


def weekday_of(day: date) -> Weekday:
    return WEEKDAYS[day.weekday()]


def parse_weekday(raw: str | Weekday | None) -> Weekday | None:
    """Case-insensitive lookup of an English weekday name."""
    if raw is None:
        return None
    if isinstance(raw, Weekday):
        return raw
    normalized = raw.strip().lower()
    for weekday in WEEKDAYS:
        if weekday.value.lower() == normalized:
            return weekday
    return None


def iter_dates(from_date: date, to_date: date) -> Iterator[date]:
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)
