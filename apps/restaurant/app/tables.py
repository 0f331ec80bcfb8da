"""
Table status derivation and the primary/fallback write pipeline.

Table status only changes as a side effect of a recorded table update
or of reservation hold application; both go through
:func:`write_with_fallback`, which tries each collection in order and
stops at the first success. Every attempt is kept so callers can show
exactly what happened.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from apps.restaurant.app import permissions
from apps.restaurant.app.errors import ReadFailure, StoreError, ValidationError, WriteFailure

_log = logging.getLogger("restaurant.tables")
_audit = logging.getLogger("restaurant.audit")

TABLE_COLLECTIONS = ("tables", "tables_collection")
TABLE_UPDATE_COLLECTIONS = ("table_updates_collection", "table_updates")

AVAILABLE = "available"
OCCUPIED = "occupied"
RESERVED = "reserved"
CLEANING = "cleaning"
OUT_OF_ORDER = "out_of_order"

TABLE_STATUSES = (AVAILABLE, OCCUPIED, RESERVED, CLEANING, OUT_OF_ORDER)

ACTION_TO_STATUS = MappingProxyType({
    "seated": OCCUPIED,
    "cleared": CLEANING,
    "cleaned": AVAILABLE,
    "reserved": RESERVED,
    "out_of_order": OUT_OF_ORDER,
    "back_in_service": AVAILABLE,
})

ACTION_TYPES = tuple(ACTION_TO_STATUS)


def table_status_for_action(action_type: Optional[str], strict: bool = False) -> str:
    """
    Resulting table status for a table-update action. Unknown actions
    fall back to ``available`` unless ``strict`` is set.
    """
    status = ACTION_TO_STATUS.get(action_type or "")
    if status is not None:
        return status
    if strict:
        raise ValidationError(f"Invalid action_type: {action_type!r}")
    _log.warning("unknown table action_type %r, defaulting to %s", action_type, AVAILABLE)
    return AVAILABLE


class Table(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    table_name: str = ""
    capacity: int = Field(default=1, gt=0)
    status: str = AVAILABLE
    current_party_size: int = Field(default=0, ge=0)

    @classmethod
    def from_record(cls, record: dict) -> "Table":
        try:
            return cls.model_validate(record)
        except PydanticValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"invalid table {loc}: {first.get('msg')}")


def can_seat_party(table: Table, party_size: int) -> bool:
    return table.status in (AVAILABLE, RESERVED) and 0 < party_size <= table.capacity


def check_table_action(table: Table, action_type: str, party_size: int = 0) -> None:
    if action_type == "seated":
        if table.status == OCCUPIED:
            raise ValidationError("Cannot seat guests at occupied table")
        if not can_seat_party(table, party_size):
            raise ValidationError(
                f"Cannot seat party of {party_size} at table {table.table_name or table.id} "
                f"({table.status}, capacity {table.capacity})"
            )
    elif action_type == "cleared" and table.status == AVAILABLE:
        raise ValidationError("Cannot clear already available table")


# --- fallback writes ---------------------------------------------------------

@dataclass
class WriteAttempt:
    collection: str
    ok: bool
    error: Optional[str] = None
    field: Optional[str] = "status"

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"collection": self.collection}
        if self.field:
            out["field"] = self.field
        out["ok"] = self.ok
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class WriteOutcome:
    attempts: list[WriteAttempt] = field(default_factory=list)
    record: Optional[dict] = None
    last_error: Optional[BaseException] = None

    @property
    def updated(self) -> bool:
        return any(a.ok for a in self.attempts)

    def raise_for_failure(self, what: str) -> None:
        if self.updated:
            return
        status = self.last_error.status if isinstance(self.last_error, StoreError) else 0
        tried = ", ".join(a.collection for a in self.attempts)
        raise WriteFailure(f"{what} failed on {tried}: {self.last_error}", status=status) from self.last_error


def write_with_fallback(
    collections: Sequence[str],
    write: Callable[[str], dict],
    field: Optional[str] = "status",
) -> WriteOutcome:
    """
    Run ``write(collection)`` against each collection in order until one
    succeeds. Any exception counts as a failed attempt and moves on to
    the next collection; attempts never overlap.
    """
    outcome = WriteOutcome()
    for name in collections:
        try:
            record = write(name)
        except Exception as e:
            outcome.attempts.append(WriteAttempt(name, False, str(e) or e.__class__.__name__, field))
            outcome.last_error = e
            continue
        outcome.attempts.append(WriteAttempt(name, True, None, field))
        outcome.record = record
        break
    return outcome


def set_table_status(
    store,
    table_id: str,
    status: str,
    collections: Sequence[str] = TABLE_COLLECTIONS,
    extra: Optional[dict] = None,
) -> WriteOutcome:
    if status not in TABLE_STATUSES:
        raise ValidationError(f"unknown table status: {status!r}")
    data = {"status": status, **(extra or {})}
    return write_with_fallback(collections, lambda name: store.collection(name).update(table_id, data))


def fetch_table(store, table_id: str, collections: Sequence[str] = TABLE_COLLECTIONS) -> dict:
    """First collection that returns the table wins; the last failure is raised."""
    last: Optional[ReadFailure] = None
    for name in collections:
        try:
            return store.collection(name).get_one(table_id)
        except ReadFailure as e:
            last = e
    if last is None:
        raise ValidationError("no table collections configured")
    raise last


# --- table updates -----------------------------------------------------------

@dataclass
class TableUpdateResult:
    update: dict
    table: Optional[dict]
    table_status: str
    attempts: list[WriteAttempt]

    def to_dict(self) -> dict:
        return {
            "update": self.update,
            "table": self.table,
            "table_status": self.table_status,
            "attempts": [a.to_dict() for a in self.attempts],
        }


def record_table_update(
    store,
    data: dict,
    role: Optional[str],
    performed_by: Optional[str],
    table_collections: Sequence[str] = TABLE_COLLECTIONS,
    update_collections: Sequence[str] = TABLE_UPDATE_COLLECTIONS,
) -> TableUpdateResult:
    """
    Append a table update and apply the status it implies. The audit
    record is written first; if no collection accepts it the table is
    left untouched.
    """
    permissions.require(role, permissions.CREATE_TABLE_UPDATES)
    action = data.get("action_type")
    status = table_status_for_action(action, strict=True)
    table_id = str(data.get("table_id") or "").strip()
    if not table_id:
        raise ValidationError("table_id is required")
    try:
        party = int(data.get("party_size") or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid party_size: {data.get('party_size')!r}")

    table = Table.from_record(fetch_table(store, table_id, table_collections))
    check_table_action(table, action, party)

    entry = {
        "table_id": table.id or table_id,
        "table_name": table.table_name,
        "action_type": action,
        "performed_by": performed_by or "",
        "notes": data.get("notes") or "",
    }
    logged = write_with_fallback(
        update_collections,
        lambda name: store.collection(name).create(entry),
        field=None,
    )
    logged.raise_for_failure("table update record")

    applied = set_table_status(
        store,
        table.id or table_id,
        status,
        table_collections,
        extra={"current_party_size": party if status == OCCUPIED else 0},
    )
    applied.raise_for_failure("table status write")

    _audit.info({
        "event": "table.update",
        "table_id": table.id or table_id,
        "action_type": action,
        "status": status,
        "performed_by": performed_by,
        "collections": [a.collection for a in logged.attempts + applied.attempts if a.ok],
    })
    return TableUpdateResult(
        update=logged.record or entry,
        table=applied.record,
        table_status=status,
        attempts=logged.attempts + applied.attempts,
    )
