"""
Reservation queries and window math.

Windows are expressed in minutes after local midnight. A reservation
occupies ``[start, start + block)``; overlap is the usual half-open test,
so a reservation that starts exactly when a window ends does not overlap.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from apps.restaurant.app import filters, localtime

_log = logging.getLogger("restaurant.reservations")

RESERVATIONS_COLLECTION = "reservations"
RES_BLOCK_MINUTES_DEFAULT = 120

# "seated" stays active: the guest is at the table the hold protects.
ACTIVE_RESERVATION_STATUSES = frozenset({"booked", "seated"})
CANCELED = "canceled"


def is_active(reservation: dict) -> bool:
    return str(reservation.get("status") or "").strip().lower() in ACTIVE_RESERVATION_STATUSES


def overlaps_window(
    res_start_time: Optional[str],
    window_start: int,
    window_end: int,
    block: int = RES_BLOCK_MINUTES_DEFAULT,
) -> bool:
    res_start = localtime.to_minutes(res_start_time)
    res_end = res_start + block
    return max(res_start, window_start) < min(res_end, window_end)


def reservations_in_window(
    records: Iterable[dict],
    day,
    time: str,
    block: int = RES_BLOCK_MINUTES_DEFAULT,
) -> list[dict]:
    """Same-day active reservations overlapping ``[time, time + block)``."""
    start = localtime.to_minutes(time)
    end = start + block
    key = localtime.day_key(day)
    return [
        r for r in records
        if localtime.same_day(r.get("reservation_date") or "", key)
        and is_active(r)
        and overlaps_window(r.get("start_time"), start, end, block)
    ]


def day_filter(day, status: Optional[str] = None) -> filters.Expression:
    start, end = localtime.day_bounds(day)
    return filters.all_of(
        filters.where("reservation_date", ">=", start),
        filters.where("reservation_date", "<", end),
        filters.where("status", "=", status) if status else None,
    )


def day_equality_filter(day, status: Optional[str] = None) -> filters.Expression:
    return filters.all_of(
        filters.where("reservation_date", "=", localtime.parse_day(day).isoformat()),
        filters.where("status", "=", status) if status else None,
    )


def get_reservations(
    store,
    day,
    status: Optional[str] = None,
    collection: str = RESERVATIONS_COLLECTION,
) -> list[dict]:
    """
    A day's reservations ordered by start time. Stores that keep the date
    without a time part never match the range filter, so an empty range
    result is retried with plain equality.
    """
    col = store.collection(collection)
    records = col.get_full_list(filter=day_filter(day, status), sort="+start_time")
    if records:
        return records
    _log.debug("no reservations in range for %s, retrying with equality", localtime.day_key(day))
    return col.get_full_list(filter=day_equality_filter(day, status), sort="+start_time")
