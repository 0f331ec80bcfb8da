"""
Reservation hold application.

A hold flips a reservation's table to ``reserved`` from ``H`` minutes
before the booked start until ``B`` minutes after it. The store filter
only narrows the read; eligibility is always re-checked here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from apps.restaurant.app import localtime, reservations, tables
from apps.restaurant.app.tables import WriteAttempt

_audit = logging.getLogger("restaurant.audit")

HOLD_APPLY_MINUTES_DEFAULT = 120


def hold_window(
    start_at: datetime,
    hold_minutes: int = HOLD_APPLY_MINUTES_DEFAULT,
    block_minutes: int = reservations.RES_BLOCK_MINUTES_DEFAULT,
) -> tuple[datetime, datetime]:
    return start_at - timedelta(minutes=hold_minutes), start_at + timedelta(minutes=block_minutes)


def hold_start_if_eligible(
    reservation: dict,
    now: datetime,
    hold_minutes: int = HOLD_APPLY_MINUTES_DEFAULT,
    block_minutes: int = reservations.RES_BLOCK_MINUTES_DEFAULT,
) -> Optional[datetime]:
    """Reservation start time when a hold applies at ``now``, else None."""
    if not reservation.get("table_id") or not reservations.is_active(reservation):
        return None
    raw_day = reservation.get("reservation_date")
    if not raw_day or not localtime.same_day(raw_day, now):
        return None
    start_at = localtime.parse_local_datetime(raw_day, reservation.get("start_time"))
    window_start, window_end = hold_window(start_at, hold_minutes, block_minutes)
    if window_start <= now <= window_end:
        return start_at
    return None


@dataclass
class HoldResult:
    id: str
    table_id: str
    start_at: datetime
    attempts: list[WriteAttempt] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return any(a.ok for a in self.attempts)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "updated": self.updated,
            "attempts": [a.to_dict() for a in self.attempts],
            "start_at": self.start_at.isoformat(),
        }


@dataclass
class HoldReport:
    results: list[HoldResult] = field(default_factory=list)

    @property
    def eligible(self) -> int:
        return len(self.results)

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.updated)

    def to_dict(self, debug: bool = False) -> dict:
        out = {"ok": True, "applied": self.applied, "eligible": self.eligible}
        if debug:
            out["results"] = [r.to_dict() for r in self.results]
        return out


def apply_holds(
    store,
    now: Optional[datetime] = None,
    hold_minutes: int = HOLD_APPLY_MINUTES_DEFAULT,
    block_minutes: int = reservations.RES_BLOCK_MINUTES_DEFAULT,
    reservations_collection: str = reservations.RESERVATIONS_COLLECTION,
    table_collections: Sequence[str] = tables.TABLE_COLLECTIONS,
) -> HoldReport:
    """
    Mark the tables of every currently-held reservation as reserved.

    A failed reservation read propagates. Table write failures are kept
    per reservation and never stop the rest of the batch.
    """
    now = now or localtime.now()
    report = HoldReport()
    for res in reservations.get_reservations(store, now, collection=reservations_collection):
        start_at = hold_start_if_eligible(res, now, hold_minutes, block_minutes)
        if start_at is None:
            continue
        table_id = str(res["table_id"])
        outcome = tables.set_table_status(
            store, table_id, tables.RESERVED, table_collections, extra={"current_party_size": 0}
        )
        result = HoldResult(id=str(res.get("id") or ""), table_id=table_id, start_at=start_at, attempts=outcome.attempts)
        report.results.append(result)
        _audit.info({
            "event": "hold.apply",
            "reservation_id": result.id,
            "table_id": table_id,
            "updated": result.updated,
            "collections": [a.collection for a in result.attempts],
        })
    return report
