from fastapi import FastAPI, Depends, Header, APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional
import logging
import os
import threading

from pos_shared import (
    RequestIDMiddleware,
    configure_cors,
    add_standard_health,
    get_request_id,
    setup_json_logging,
    register_shutdown,
)

from apps.restaurant.app import holds, localtime, permissions, reservations, tables, tickets
from apps.restaurant.app.errors import (
    InvalidTransitionError,
    PermissionDenied,
    PosError,
    ReadFailure,
    StoreError,
    ValidationError,
)
from apps.restaurant.app.settings import Settings, load_settings
from apps.restaurant.app.store import DocumentStore, build_store

_ENV_LOWER = (os.getenv("ENV") or "dev").strip().lower()
_log = logging.getLogger("restaurant.errors")

settings = load_settings()

# Never expose interactive API docs by default in prod.
_ENABLE_DOCS = _ENV_LOWER in ("dev", "test") or os.getenv("ENABLE_API_DOCS_IN_PROD", "").lower() in (
    "1",
    "true",
    "yes",
    "on",
)
app = FastAPI(
    title="Restaurant POS API",
    version="0.1.0",
    docs_url="/docs" if _ENABLE_DOCS else None,
    redoc_url="/redoc" if _ENABLE_DOCS else None,
    openapi_url="/openapi.json" if _ENABLE_DOCS else None,
)
setup_json_logging()
app.add_middleware(RequestIDMiddleware)
configure_cors(app, settings.allowed_origins)
add_standard_health(app, check=lambda: {"store": settings.pocketbase_url})

_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def get_settings() -> Settings:
    return settings


def get_store() -> DocumentStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = build_store(settings)
        return _store


@register_shutdown(app)
def _close_store() -> None:
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None


class Staff(BaseModel):
    role: Optional[str] = None
    id: Optional[str] = None


def get_staff(
    x_staff_role: Optional[str] = Header(default=None),
    x_staff_id: Optional[str] = Header(default=None),
) -> Staff:
    # Identity is established upstream; this service only reads the headers.
    return Staff(role=(x_staff_role or "").strip() or None, id=(x_staff_id or "").strip() or None)


def _status_for(exc: PosError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, PermissionDenied):
        return 403
    if isinstance(exc, InvalidTransitionError):
        return 409
    if isinstance(exc, ReadFailure) and exc.status == 404:
        return 404
    if isinstance(exc, StoreError):
        return 502
    return 500


@app.exception_handler(PosError)
async def _pos_error_handler(request: Request, exc: PosError):
    status = _status_for(exc)
    if status >= 500:
        _log.warning({"event": "store.error", "path": request.url.path, "status": status, "error": str(exc)})
    payload = {"detail": str(exc)}
    if status >= 500:
        payload["request_id"] = get_request_id()
    return JSONResponse(status_code=status, content=payload)


router = APIRouter(prefix="/api")


class TicketIn(BaseModel):
    table_id: str = ""
    server_id: str = ""
    customer_count: int = 0
    special_instructions: Optional[str] = None


class TicketStatusIn(BaseModel):
    status: str


class TicketAmountsIn(BaseModel):
    subtotal_amount: float
    tip_amount: float = 0.0


class TableUpdateIn(BaseModel):
    table_id: str = ""
    action_type: str = ""
    party_size: int = 0
    notes: Optional[str] = None


def _ticket_out(ticket: tickets.Ticket) -> dict:
    out = ticket.model_dump(mode="json")
    out["cooking_duration_ms"] = tickets.cooking_duration_ms(ticket)
    return out


# ---- reservations ----

@router.post("/reservations/apply-holds")
def apply_holds(
    debug: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    try:
        report = holds.apply_holds(
            store,
            hold_minutes=cfg.hold_apply_minutes,
            block_minutes=cfg.reservation_block_minutes,
            reservations_collection=cfg.reservations_collection,
            table_collections=cfg.table_collections,
        )
    except ReadFailure as e:
        _log.warning({"event": "hold.read_failed", "error": str(e)})
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    return report.to_dict(debug=debug == "1")


@router.get("/reservations")
def list_reservations(
    date: Optional[str] = None,
    status: Optional[str] = None,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    permissions.require(staff.role, permissions.VIEW_TABLES)
    day = date or localtime.now()
    items = reservations.get_reservations(store, day, status=status, collection=cfg.reservations_collection)
    return {"date": localtime.parse_day(day).isoformat(), "items": items}


@router.get("/reservations/window")
def reservations_window(
    time: str,
    date: Optional[str] = None,
    block: Optional[int] = None,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    permissions.require(staff.role, permissions.VIEW_TABLES)
    day = date or localtime.now()
    minutes = block if block is not None else cfg.reservation_block_minutes
    if minutes <= 0:
        raise ValidationError("block must be positive")
    records = reservations.get_reservations(store, day, collection=cfg.reservations_collection)
    items = reservations.reservations_in_window(records, day, time, block=minutes)
    return {"date": localtime.parse_day(day).isoformat(), "time": time, "block": minutes, "items": items}


# ---- tickets ----

@router.post("/tickets")
def create_ticket(
    body: TicketIn,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    ticket = tickets.create_ticket(store, body.model_dump(), staff.role, collection=cfg.tickets_collection)
    return _ticket_out(ticket)


@router.get("/tickets/{ticket_id}")
def get_ticket(
    ticket_id: str,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    permissions.require(staff.role, permissions.VIEW_TICKETS)
    return _ticket_out(tickets.get_ticket(store, ticket_id, collection=cfg.tickets_collection))


@router.post("/tickets/{ticket_id}/status")
def set_ticket_status(
    ticket_id: str,
    body: TicketStatusIn,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    ticket = tickets.set_ticket_status(store, ticket_id, body.status, staff.role, collection=cfg.tickets_collection)
    return _ticket_out(ticket)


@router.post("/tickets/{ticket_id}/amounts")
def update_ticket_amounts(
    ticket_id: str,
    body: TicketAmountsIn,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    ticket = tickets.update_ticket_amounts(
        store,
        ticket_id,
        body.subtotal_amount,
        body.tip_amount,
        staff.role,
        staff.id,
        tax_rate=cfg.ticket_tax_rate,
        collection=cfg.tickets_collection,
    )
    return _ticket_out(ticket)


@router.post("/tickets/{ticket_id}/recalculate")
def recalculate_ticket(
    ticket_id: str,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    permissions.require(staff.role, permissions.CREATE_TICKETS)
    ticket = tickets.recalculate_ticket_totals(
        store,
        ticket_id,
        tax_rate=cfg.ticket_tax_rate,
        collection=cfg.tickets_collection,
        items_collection=cfg.ticket_items_collection,
    )
    return _ticket_out(ticket)


# ---- tables ----

@router.post("/table-updates")
def create_table_update(
    body: TableUpdateIn,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    result = tables.record_table_update(
        store,
        body.model_dump(),
        staff.role,
        staff.id,
        table_collections=cfg.table_collections,
        update_collections=cfg.table_update_collections,
    )
    return {"ok": True, **result.to_dict()}


# ---- permissions / reports ----

@router.get("/permissions/{role}")
def role_permissions(role: str):
    return {"role": role, "known": role in permissions.ROLES, "permissions": permissions.permissions_for(role)}


@router.get("/reports/daily")
def daily_report(
    date: Optional[str] = None,
    staff: Staff = Depends(get_staff),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    permissions.require(staff.role, permissions.VIEW_REPORTS)
    day = date or localtime.now()
    rows = tickets.list_tickets_for_day(store, day, collection=cfg.tickets_collection)
    by_server: dict[str, list] = {}
    for t in rows:
        by_server.setdefault(t.get("server_id") or "", []).append(t)
    return {
        "date": localtime.parse_day(day).isoformat(),
        "summary": tickets.daily_summary(rows),
        "by_status": {k: len(v) for k, v in tickets.group_tickets_by_status(rows).items()},
        "servers": {sid: tickets.server_performance(ts) for sid, ts in by_server.items()},
    }


app.include_router(router)
