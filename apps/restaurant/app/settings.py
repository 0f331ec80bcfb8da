from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

_log = logging.getLogger("restaurant.settings")


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _log.warning("invalid %s=%r, using %s", key, raw, default)
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        _log.warning("invalid %s=%r, using %s", key, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    pocketbase_url: str = "http://127.0.0.1:8090"
    pocketbase_token: Optional[str] = None
    pocketbase_admin_email: Optional[str] = None
    pocketbase_admin_password: Optional[str] = None
    store_timeout_secs: float = 10.0
    hold_apply_minutes: int = 120
    reservation_block_minutes: int = 120
    ticket_tax_rate: float = 0.09
    reservations_collection: str = "reservations"
    tables_collection: str = "tables"
    tables_fallback_collection: str = "tables_collection"
    tickets_collection: str = "tickets_collection"
    ticket_items_collection: str = "ticket_items_collection"
    table_updates_collection: str = "table_updates_collection"
    table_updates_fallback_collection: str = "table_updates"
    allowed_origins: str = "*"

    @property
    def table_collections(self) -> tuple[str, str]:
        return (self.tables_collection, self.tables_fallback_collection)

    @property
    def table_update_collections(self) -> tuple[str, str]:
        return (self.table_updates_collection, self.table_updates_fallback_collection)


def load_settings() -> Settings:
    d = Settings()
    return Settings(
        pocketbase_url=_env_or("POCKETBASE_URL", d.pocketbase_url).rstrip("/"),
        pocketbase_token=os.getenv("POCKETBASE_TOKEN") or None,
        pocketbase_admin_email=os.getenv("POCKETBASE_ADMIN_EMAIL") or None,
        pocketbase_admin_password=os.getenv("POCKETBASE_ADMIN_PASSWORD") or None,
        store_timeout_secs=_env_float("STORE_TIMEOUT_SECS", d.store_timeout_secs),
        hold_apply_minutes=_env_int("HOLD_APPLY_MINUTES", d.hold_apply_minutes),
        reservation_block_minutes=_env_int("RESERVATION_BLOCK_MINUTES", d.reservation_block_minutes),
        ticket_tax_rate=_env_float("TICKET_TAX_RATE", d.ticket_tax_rate),
        reservations_collection=_env_or("RESERVATIONS_COLLECTION", d.reservations_collection),
        tables_collection=_env_or("TABLES_COLLECTION", d.tables_collection),
        tables_fallback_collection=_env_or("TABLES_FALLBACK_COLLECTION", d.tables_fallback_collection),
        tickets_collection=_env_or("TICKETS_COLLECTION", d.tickets_collection),
        ticket_items_collection=_env_or("TICKET_ITEMS_COLLECTION", d.ticket_items_collection),
        table_updates_collection=_env_or("TABLE_UPDATES_COLLECTION", d.table_updates_collection),
        table_updates_fallback_collection=_env_or(
            "TABLE_UPDATES_FALLBACK_COLLECTION", d.table_updates_fallback_collection
        ),
        allowed_origins=_env_or("ALLOWED_ORIGINS", d.allowed_origins),
    )
