"""
Local date/time helpers shared by every caller.

All values are naive local wall-clock times. Nothing here converts
between timezones: a reservation stored as ``2025-08-17`` / ``18:00``
means 18:00 on the clock of the host running the service, and "today"
is the host's local calendar day. Store timestamps that carry a zone
suffix are read as wall-clock values with the suffix dropped.

Date strings are matched on their first ten characters (``YYYY-MM-DD``)
so both ``2025-08-17`` and ``2025-08-17 00:00:00.000Z`` name the same day.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

from apps.restaurant.app.errors import ValidationError

DateLike = Union[str, date, datetime]

STORE_DATETIME_FMT = "%Y-%m-%d %H:%M:%S"


def now() -> datetime:
    return datetime.now()


def _int_or_zero(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def to_minutes(t: Optional[str]) -> int:
    """``"HH:MM"`` -> minutes after midnight; missing parts count as zero."""
    if not t:
        return 0
    parts = str(t).split(":")
    h = _int_or_zero(parts[0].strip())
    m = _int_or_zero(parts[1].strip()) if len(parts) > 1 else 0
    return h * 60 + m


def day_key(value: DateLike) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def parse_day(value: DateLike) -> date:
    key = day_key(value)
    try:
        return date.fromisoformat(key)
    except ValueError:
        raise ValidationError(f"invalid date: {value!r}")


def next_day(value: DateLike) -> str:
    return (parse_day(value) + timedelta(days=1)).isoformat()


def day_bounds(value: DateLike) -> tuple[str, str]:
    """Half-open ``[day 00:00:00, next day 00:00:00)`` in store format."""
    day = parse_day(value).isoformat()
    return f"{day} 00:00:00", f"{next_day(day)} 00:00:00"


def parse_local_datetime(date_value: DateLike, time_str: Optional[str]) -> datetime:
    """
    Combine a calendar day and an ``HH:MM`` start time. Minutes past the
    end of the day roll into the next day rather than failing.
    """
    day = parse_day(date_value)
    return datetime(day.year, day.month, day.day) + timedelta(minutes=to_minutes(time_str or "00:00"))


def same_day(a: DateLike, b: DateLike) -> bool:
    return day_key(a) == day_key(b)


def format_store_datetime(dt: datetime) -> str:
    return dt.strftime(STORE_DATETIME_FMT)


def parse_store_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1]
    try:
        return datetime.fromisoformat(raw.replace("T", " ")).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"invalid timestamp: {value!r}")
