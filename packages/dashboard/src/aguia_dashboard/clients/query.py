"""PostgREST filter expressions.

Filters render to the query-string form PostgREST expects
(``column=op.value``) and can also be evaluated against a row dict,
which keeps in-memory stores honest about filter semantics.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

_COMPARISONS = {"gt", "gte", "lt", "lte"}


def _format_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _quote(value: Any) -> str:
    text = _format_scalar(value)
    if any(ch in text for ch in ',()"'):
        escaped = text.replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _normalize(value: Any) -> Any:
    """Bring row values and filter values onto comparable ground."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _pair(left: Any, right: Any) -> tuple[Any, Any]:
    a, b = _normalize(left), _normalize(right)
    if isinstance(a, Decimal) and isinstance(b, str):
        try:
            b = Decimal(b)
        except InvalidOperation:
            a = str(left)
    elif isinstance(b, Decimal) and isinstance(a, str):
        try:
            a = Decimal(a)
        except InvalidOperation:
            b = str(right)
    return a, b


@dataclass(frozen=True)
class Filter:
    """A single PostgREST horizontal filter."""

    column: str
    op: str
    value: Any = None
    negate: bool = False

    def to_param(self) -> tuple[str, str]:
        prefix = "not." if self.negate else ""
        if self.op == "in":
            rendered = "(" + ",".join(_quote(v) for v in self.value) + ")"
        else:
            rendered = _format_scalar(self.value)
        return self.column, f"{prefix}{self.op}.{rendered}"

    def matches(self, row: dict[str, Any]) -> bool:
        actual = row.get(self.column)
        if self.op == "is":
            result = actual is None if self.value is None else actual is self.value
        elif self.op == "in":
            result = any(_equal(actual, candidate) for candidate in self.value)
        elif self.op == "eq":
            result = _equal(actual, self.value)
        elif self.op in _COMPARISONS:
            if actual is None:
                return False
            a, b = _pair(actual, self.value)
            result = {
                "gt": a > b,
                "gte": a >= b,
                "lt": a < b,
                "lte": a <= b,
            }[self.op]
        else:
            raise ValueError(f"Unsupported filter operator {self.op!r}")
        return not result if self.negate else result


def _equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    a, b = _pair(left, right)
    return a == b


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


def not_null(column: str) -> Filter:
    return Filter(column, "is", None, negate=True)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def render(filters: Sequence[Filter]) -> list[tuple[str, str]]:
    """Render filters as query params (repeated keys allowed)."""
    return [f.to_param() for f in filters]
