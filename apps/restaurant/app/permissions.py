"""Role -> capability matrix for restaurant staff. Fixed at import time."""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from apps.restaurant.app.errors import PermissionDenied, ValidationError

MANAGER = "Manager"
SERVER = "Server"
CHEF = "Chef"
BARTENDER = "Bartender"
HOST = "Host"

ROLES = (MANAGER, SERVER, CHEF, BARTENDER, HOST)

MANAGER_ACCESS = "manager_access"
ACCESS_INVENTORY = "access_inventory"
MANAGE_STAFF = "manage_staff"
VIEW_REPORTS = "view_reports"
CREATE_TICKETS = "create_tickets"
VIEW_TICKETS = "view_tickets"
UPDATE_TICKET_STATUS = "update_ticket_status"
VIEW_MENU = "view_menu"
VIEW_TABLES = "view_tables"
UPDATE_TABLE_STATUS = "update_table_status"
CREATE_TABLE_UPDATES = "create_table_updates"
VIEW_BEVERAGE_INVENTORY = "view_beverage_inventory"
VIEW_TABLE_UPDATES = "view_table_updates"

_GRANTS: dict[str, tuple[str, ...]] = {
    MANAGER_ACCESS: (MANAGER,),
    ACCESS_INVENTORY: (MANAGER, CHEF),
    MANAGE_STAFF: (MANAGER,),
    VIEW_REPORTS: (MANAGER,),
    CREATE_TICKETS: (MANAGER, SERVER),
    VIEW_TICKETS: (MANAGER, SERVER, CHEF, BARTENDER, HOST),
    UPDATE_TICKET_STATUS: (MANAGER, SERVER, CHEF, BARTENDER),
    VIEW_MENU: (MANAGER, SERVER, CHEF, BARTENDER),
    VIEW_TABLES: (MANAGER, SERVER, HOST),
    UPDATE_TABLE_STATUS: (MANAGER, HOST),
    CREATE_TABLE_UPDATES: (MANAGER, SERVER, HOST),
    VIEW_BEVERAGE_INVENTORY: (MANAGER, BARTENDER),
    VIEW_TABLE_UPDATES: (MANAGER, SERVER, CHEF, BARTENDER, HOST),
}

CAPABILITIES = tuple(_GRANTS)

ROLE_CAPABILITIES: Mapping[str, frozenset] = MappingProxyType(
    {role: frozenset(cap for cap, roles in _GRANTS.items() if role in roles) for role in ROLES}
)


def _check_capability(capability: str) -> None:
    if capability not in _GRANTS:
        raise ValidationError(f"unknown capability: {capability!r}")


def has_capability(role: Optional[str], capability: str) -> bool:
    _check_capability(capability)
    return capability in ROLE_CAPABILITIES.get(role or "", frozenset())


def require(role: Optional[str], capability: str) -> None:
    if not has_capability(role, capability):
        raise PermissionDenied(role, capability)


def permissions_for(role: Optional[str]) -> dict[str, bool]:
    granted = ROLE_CAPABILITIES.get(role or "", frozenset())
    return {cap: cap in granted for cap in CAPABILITIES}


def can_access_route(route: str, role: Optional[str]) -> bool:
    if "/manager" in route:
        return role == MANAGER
    if "/server" in route:
        return role in (MANAGER, SERVER)
    return True


def can_modify_ticket(role: Optional[str], user_id: Optional[str], ticket) -> bool:
    """Managers modify any ticket, servers only the ones assigned to them."""
    if role == MANAGER:
        return True
    if role == SERVER:
        server_id = ticket.get("server_id") if isinstance(ticket, dict) else getattr(ticket, "server_id", None)
        return bool(user_id) and server_id == user_id
    return False
