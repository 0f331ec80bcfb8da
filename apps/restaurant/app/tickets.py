"""
Ticket lifecycle: the status transition graph, kitchen timestamps and
money arithmetic, plus the store-backed ticket operations built on them.

Money is computed in ``Decimal`` and rounded half-up to cents at every
step, so ``calculate_total(85.50, 6.84, 12.83) == 105.17`` exactly.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from apps.restaurant.app import filters, localtime, permissions
from apps.restaurant.app.errors import InvalidTransitionError, PermissionDenied, ValidationError

_audit = logging.getLogger("restaurant.audit")

TICKETS_COLLECTION = "tickets_collection"
TICKET_ITEMS_COLLECTION = "ticket_items_collection"
DEFAULT_TAX_RATE = 0.09
MAX_SPECIAL_INSTRUCTIONS = 500

OPEN = "open"
SENT_TO_KITCHEN = "sent_to_kitchen"
PREPARING = "preparing"
READY = "ready"
SERVED = "served"
PAYMENT_PROCESSING = "payment_processing"
CLOSED = "closed"

TICKET_STATUSES = (OPEN, SENT_TO_KITCHEN, PREPARING, READY, SERVED, PAYMENT_PROCESSING, CLOSED)

TRANSITIONS = MappingProxyType({
    OPEN: frozenset({SENT_TO_KITCHEN, CLOSED}),
    SENT_TO_KITCHEN: frozenset({PREPARING, OPEN}),
    PREPARING: frozenset({READY, SENT_TO_KITCHEN}),
    READY: frozenset({SERVED, PREPARING}),
    SERVED: frozenset({PAYMENT_PROCESSING, READY}),
    PAYMENT_PROCESSING: frozenset({CLOSED, SERVED}),
    CLOSED: frozenset(),
})

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


# --- money -------------------------------------------------------------------

def _dec(value: Any) -> Decimal:
    try:
        d = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        raise ValidationError(f"invalid amount: {value!r}")
    if not d.is_finite():
        raise ValidationError(f"invalid amount: {value!r}")
    return d


def _cents(d: Decimal) -> Decimal:
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def round2(value: Any) -> float:
    return float(_cents(_dec(value)))


def calculate_tax(subtotal: Any, rate: Any) -> float:
    return float(_cents(_dec(subtotal) * _dec(rate)))


def calculate_total(subtotal: Any, tax: Any, tip: Any) -> float:
    return float(_cents(_dec(subtotal) + _dec(tax) + _dec(tip)))


def calculate_tip_percentage(subtotal: Any, tip: Any) -> float:
    sub = _dec(subtotal)
    if sub == 0:
        return 0.0
    return float((_dec(tip) / sub * 100).quantize(_TENTH, rounding=ROUND_HALF_UP))


def validate_payment_amounts(subtotal: Any, tax: Any, tip: Any, total: Any) -> bool:
    values = [_dec(v) for v in (subtotal, tax, tip, total)]
    if any(v < 0 for v in values):
        return False
    expected = _dec(calculate_total(subtotal, tax, tip))
    return abs(expected - values[3]) < _CENT


# --- model -------------------------------------------------------------------

class Ticket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    ticket_number: str = ""
    table_id: Optional[str] = None
    server_id: Optional[str] = None
    customer_count: int = Field(default=1, gt=0)
    status: str = OPEN
    subtotal_amount: float = Field(default=0.0, ge=0)
    tax_amount: float = Field(default=0.0, ge=0)
    tip_amount: float = Field(default=0.0, ge=0)
    total_amount: float = Field(default=0.0, ge=0)
    special_instructions: Optional[str] = Field(default=None, max_length=MAX_SPECIAL_INSTRUCTIONS)
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    kitchen_start_time: Optional[datetime] = None
    kitchen_ready_time: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def _known_status(cls, v: str) -> str:
        if v not in TICKET_STATUSES:
            raise ValueError(f"unknown ticket status {v!r}")
        return v

    @field_validator("created", "updated", "kitchen_start_time", "kitchen_ready_time", mode="before")
    @classmethod
    def _store_timestamp(cls, v):
        try:
            return localtime.parse_store_datetime(v)
        except ValidationError as e:
            raise ValueError(str(e))

    @classmethod
    def from_record(cls, record: dict) -> "Ticket":
        try:
            return cls.model_validate(record)
        except PydanticValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"invalid ticket {loc}: {first.get('msg')}")


# --- transitions -------------------------------------------------------------

def _check_status(status: str) -> None:
    if status not in TICKET_STATUSES:
        raise ValidationError(f"unknown ticket status: {status!r}")


def allowed_transitions(status: str) -> frozenset:
    _check_status(status)
    return TRANSITIONS[status]


def is_valid_transition(current: str, target: str) -> bool:
    return current in TRANSITIONS and target in TRANSITIONS[current]


def transition(ticket: Ticket, target: str, now: Optional[datetime] = None) -> Ticket:
    """
    Return a copy of ``ticket`` moved to ``target``. The input is never
    modified. Entering ``preparing`` (re)stamps ``kitchen_start_time`` and
    entering ``ready`` stamps ``kitchen_ready_time``.
    """
    _check_status(target)
    if target not in TRANSITIONS.get(ticket.status, frozenset()):
        raise InvalidTransitionError(ticket.status, target)
    stamp = now or localtime.now()
    changes: dict[str, Any] = {"status": target, "updated": stamp}
    if target == PREPARING:
        changes["kitchen_start_time"] = stamp
    elif target == READY:
        changes["kitchen_ready_time"] = stamp
    return ticket.model_copy(update=changes)


def transition_payload(ticket: Ticket) -> dict:
    """Fields a transition writes back to the store."""
    out: dict[str, Any] = {"status": ticket.status}
    if ticket.status == PREPARING and ticket.kitchen_start_time:
        out["kitchen_start_time"] = localtime.format_store_datetime(ticket.kitchen_start_time)
    if ticket.status == READY and ticket.kitchen_ready_time:
        out["kitchen_ready_time"] = localtime.format_store_datetime(ticket.kitchen_ready_time)
    return out


def cooking_duration_ms(ticket: Ticket) -> Optional[int]:
    if not ticket.kitchen_start_time or not ticket.kitchen_ready_time:
        return None
    return int((ticket.kitchen_ready_time - ticket.kitchen_start_time).total_seconds() * 1000)


# --- validation --------------------------------------------------------------

def generate_ticket_number(now_ms: Optional[int] = None) -> str:
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"T{str(ms)[-6:]}"


def validate_ticket_data(data: dict) -> list[str]:
    errors: list[str] = []
    if not str(data.get("table_id") or "").strip():
        errors.append("Table ID is required")
    if not str(data.get("server_id") or "").strip():
        errors.append("Server ID is required")
    try:
        count = int(data.get("customer_count") or 0)
    except (TypeError, ValueError):
        count = 0
    if count <= 0:
        errors.append("Customer count must be greater than 0")
    if len(data.get("special_instructions") or "") > MAX_SPECIAL_INSTRUCTIONS:
        errors.append("Special instructions too long")
    return errors


# --- store-backed operations -------------------------------------------------

def get_ticket(store, ticket_id: str, collection: str = TICKETS_COLLECTION) -> Ticket:
    return Ticket.from_record(store.collection(collection).get_one(ticket_id))


def create_ticket(
    store,
    data: dict,
    role: Optional[str],
    collection: str = TICKETS_COLLECTION,
    now_ms: Optional[int] = None,
) -> Ticket:
    permissions.require(role, permissions.CREATE_TICKETS)
    errors = validate_ticket_data(data)
    if errors:
        raise ValidationError("; ".join(errors))
    record = {
        "table_id": data["table_id"],
        "server_id": data["server_id"],
        "customer_count": int(data["customer_count"]),
        "special_instructions": data.get("special_instructions") or "",
        "ticket_number": generate_ticket_number(now_ms),
        "status": OPEN,
        "subtotal_amount": 0,
        "tax_amount": 0,
        "tip_amount": 0,
        "total_amount": 0,
    }
    created = Ticket.from_record(store.collection(collection).create(record))
    _audit.info({"event": "ticket.created", "ticket_id": created.id, "ticket_number": created.ticket_number, "role": role})
    return created


def set_ticket_status(
    store,
    ticket_id: str,
    target: str,
    role: Optional[str],
    collection: str = TICKETS_COLLECTION,
    now: Optional[datetime] = None,
) -> Ticket:
    permissions.require(role, permissions.UPDATE_TICKET_STATUS)
    _check_status(target)
    current = get_ticket(store, ticket_id, collection)
    moved = transition(current, target, now=now)
    record = store.collection(collection).update(ticket_id, transition_payload(moved))
    _audit.info({
        "event": "ticket.status",
        "ticket_id": ticket_id,
        "from": current.status,
        "to": target,
        "role": role,
    })
    return Ticket.from_record(record)


def _require_modifiable(ticket: Ticket, role: Optional[str], user_id: Optional[str]) -> None:
    permissions.require(role, permissions.CREATE_TICKETS)
    if not permissions.can_modify_ticket(role, user_id, ticket):
        raise PermissionDenied(role, "modify_ticket")
    if ticket.status == CLOSED:
        raise ValidationError(f"ticket {ticket.id} is closed")


def update_ticket_amounts(
    store,
    ticket_id: str,
    subtotal: Any,
    tip: Any,
    role: Optional[str],
    user_id: Optional[str],
    tax_rate: float = DEFAULT_TAX_RATE,
    collection: str = TICKETS_COLLECTION,
) -> Ticket:
    if _dec(subtotal) < 0 or _dec(tip) < 0:
        raise ValidationError("amounts must not be negative")
    ticket = get_ticket(store, ticket_id, collection)
    _require_modifiable(ticket, role, user_id)
    sub = round2(subtotal)
    tax = calculate_tax(sub, tax_rate)
    tip2 = round2(tip)
    total = calculate_total(sub, tax, tip2)
    if not validate_payment_amounts(sub, tax, tip2, total):
        raise ValidationError("inconsistent ticket amounts")
    record = store.collection(collection).update(ticket_id, {
        "subtotal_amount": sub,
        "tax_amount": tax,
        "tip_amount": tip2,
        "total_amount": total,
    })
    return Ticket.from_record(record)


def recalculate_ticket_totals(
    store,
    ticket_id: str,
    tax_rate: float = DEFAULT_TAX_RATE,
    collection: str = TICKETS_COLLECTION,
    items_collection: str = TICKET_ITEMS_COLLECTION,
) -> Ticket:
    """Rebuild subtotal/tax/total from the ticket's items, keeping the tip."""
    ticket = get_ticket(store, ticket_id, collection)
    if ticket.status == CLOSED:
        raise ValidationError(f"ticket {ticket.id} is closed")
    items = store.collection(items_collection).get_full_list(filter=filters.where("ticket_id", "=", ticket_id))
    subtotal = float(_cents(sum((_dec(it.get("total_price") or 0) for it in items), Decimal(0))))
    tax = calculate_tax(subtotal, tax_rate)
    total = calculate_total(subtotal, tax, ticket.tip_amount)
    record = store.collection(collection).update(ticket_id, {
        "subtotal_amount": subtotal,
        "tax_amount": tax,
        "total_amount": total,
    })
    return Ticket.from_record(record)


def list_tickets_for_day(store, day, collection: str = TICKETS_COLLECTION) -> list[dict]:
    start, end = localtime.day_bounds(day)
    expr = filters.all_of(filters.where("created", ">=", start), filters.where("created", "<", end))
    return store.collection(collection).get_full_list(filter=expr, sort="-created")


# --- reporting ---------------------------------------------------------------

def _field(ticket, name: str, default: Any = None) -> Any:
    if isinstance(ticket, dict):
        return ticket.get(name, default)
    return getattr(ticket, name, default)


def group_tickets_by_status(tickets: Iterable) -> dict[str, list]:
    groups: dict[str, list] = {}
    for t in tickets:
        groups.setdefault(_field(t, "status"), []).append(t)
    return groups


def daily_summary(tickets: Iterable) -> dict:
    tickets = list(tickets)
    closed = [t for t in tickets if _field(t, "status") == CLOSED]
    revenue = sum((_dec(_field(t, "total_amount", 0)) for t in closed), Decimal(0))
    tips = sum((_dec(_field(t, "tip_amount", 0)) for t in closed), Decimal(0))
    customers = sum(int(_field(t, "customer_count", 0) or 0) for t in closed)
    return {
        "total_revenue": float(_cents(revenue)),
        "total_tips": float(_cents(tips)),
        "total_customers": customers,
        "average_ticket": float(_cents(revenue / len(closed))) if closed else 0.0,
        "tickets_closed": len(closed),
        "tickets_pending": len(tickets) - len(closed),
    }


def server_performance(tickets: Iterable) -> dict:
    tickets = list(tickets)
    sales = sum((_dec(_field(t, "total_amount", 0)) for t in tickets), Decimal(0))
    tips = sum((_dec(_field(t, "tip_amount", 0)) for t in tickets), Decimal(0))
    base = sales - tips
    return {
        "total_sales": float(_cents(sales)),
        "total_tips": float(_cents(tips)),
        "average_ticket": float(_cents(sales / len(tickets))) if tickets else 0.0,
        "tip_percentage": float(_cents(tips / base * 100)) if base > 0 else 0.0,
        "tickets_completed": len(tickets),
    }
