from __future__ import annotations

from datetime import datetime, timezone

DUPLICATE_SCAN_WINDOW_HOURS = 1.0
OVERTIME_THRESHOLD_HOURS = 9.0
LIVE_VIEW_DECIMALS = 1
EXPORT_DECIMALS = 2

_SECONDS_PER_HOUR = 3600.0


def normalize_ts(ts: datetime | None) -> datetime:
    """Return an aware UTC timestamp; naive values are read as UTC."""
    if ts is None:
        return datetime.now(timezone.utc)

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)

    return ts.astimezone(timezone.utc)


def elapsed_hours(start: datetime, end: datetime) -> float:
    """Hours between two instants, never negative."""
    seconds = (normalize_ts(end) - normalize_ts(start)).total_seconds()
    return max(0.0, seconds / _SECONDS_PER_HOUR)


def is_overtime(hours: float) -> bool:
    return hours >= OVERTIME_THRESHOLD_HOURS


def is_duplicate_window(hours: float) -> bool:
    return hours < DUPLICATE_SCAN_WINDOW_HOURS


def overtime_excess_hours(hours: float) -> float:
    return max(0.0, hours - OVERTIME_THRESHOLD_HOURS)


def session_hours(gate_in_at: datetime, gate_out_at: datetime | None) -> float:
    # Open sessions have not produced worked hours yet.
    if gate_out_at is None:
        return 0.0
    return elapsed_hours(gate_in_at, gate_out_at)


def round_hours(hours: float, places: int = LIVE_VIEW_DECIMALS) -> float:
    return round(max(0.0, hours), places)


def format_hours(hours: float, places: int = EXPORT_DECIMALS) -> str:
    return f"{max(0.0, hours):.{places}f}"
