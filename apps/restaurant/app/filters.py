"""
Builder for the document store's filter expressions.

Grammar produced::

    expression := term (("&&" | "||") term)*
    term       := field SP op SP value | "(" expression ")"
    op         := "=" | "!=" | ">" | ">=" | "<" | "<=" | "~" | "!~"
    value      := '"' escaped-string '"' | number | "true" | "false" | "null"

Strings are always quoted with ``\\`` and ``"`` escaped, so user input can
never terminate a literal and inject extra clauses. Field names are
checked against ``[A-Za-z_][A-Za-z0-9_.]*``.

    >>> str(all_of(where("status", "=", "booked"), where("customer_count", ">=", 4)))
    'status = "booked" && customer_count >= 4'
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Union

from apps.restaurant.app.errors import ValidationError

OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "~", "!~")
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    return quote(value)


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if not _FIELD_RE.match(self.field or ""):
            raise ValidationError(f"invalid filter field: {self.field!r}")
        if self.op not in OPERATORS:
            raise ValidationError(f"invalid filter operator: {self.op!r}")

    def render(self) -> str:
        return f"{self.field} {self.op} {render_value(self.value)}"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Group:
    joiner: str  # "&&" | "||"
    parts: tuple

    def render(self) -> str:
        out = []
        for p in self.parts:
            text = p.render()
            if isinstance(p, Group) and p.joiner != self.joiner and len(p.parts) > 1:
                text = f"({text})"
            out.append(text)
        return f" {self.joiner} ".join(out)

    def __str__(self) -> str:
        return self.render()


Expression = Union[Condition, Group]


def where(field: str, op: str, value: Any) -> Condition:
    return Condition(field, op, value)


def _combine(joiner: str, parts) -> Optional[Expression]:
    kept = tuple(p for p in parts if p is not None)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return Group(joiner, kept)


def all_of(*parts: Optional[Expression]) -> Optional[Expression]:
    """AND the given expressions; ``None`` entries are skipped."""
    return _combine("&&", parts)


def any_of(*parts: Optional[Expression]) -> Optional[Expression]:
    return _combine("||", parts)


def render(expr: Optional[Expression]) -> str:
    return expr.render() if expr is not None else ""
