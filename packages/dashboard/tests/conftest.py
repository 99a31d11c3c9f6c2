"""Pytest configuration and fixtures."""

import itertools
import os
from collections import defaultdict
from typing import Any, Sequence
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-service-key")
os.environ.setdefault("BUSINESS_TIMEZONE", "America/Sao_Paulo")

from aguia_dashboard.api import ServiceContainer  # noqa: E402
from aguia_dashboard.business_days import BusinessCalendar  # noqa: E402
from aguia_dashboard.clients.query import Filter  # noqa: E402
from aguia_dashboard.clients.supabase import UniqueViolationError  # noqa: E402
from aguia_dashboard.config import get_settings  # noqa: E402
from aguia_dashboard.errors import StoreError  # noqa: E402
from aguia_dashboard.repository import HOLIDAYS, Repository  # noqa: E402

UNIQUE_KEYS = {
    "extratos_importados": [("hash_unico",)],
    "custos_fixos": [("nome", "competencia")],
    "diarista_ponto": [("diarista_id", "data")],
}


class FakeStore:
    """In-memory stand-in for the PostgREST tables.

    Filters are evaluated with ``Filter.matches`` so queries behave like
    the hosted store. ``fail(op, table)`` makes the next calls raise.
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], list[Any]] = {}
        self._ids = itertools.count(1)

    def seed(self, table: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        seeded = []
        for row in rows:
            stored = {"id": f"{table}-{next(self._ids)}", **row}
            self.tables[table].append(stored)
            seeded.append(stored)
        return seeded

    def row(self, table: str, row_id: str) -> dict[str, Any]:
        return next(r for r in self.tables[table] if r["id"] == row_id)

    def fail(
        self,
        op: str,
        table: str,
        error: Exception | None = None,
        times: int | None = None,
    ) -> None:
        """Raise ``error`` on ``op`` against ``table``; ``times=None`` means always."""
        self._failures[(op, table)] = [error or StoreError("Store error: 500"), times]

    def _check(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        failure = self._failures.get((op, table))
        if failure is None:
            return
        error, times = failure
        if times is not None:
            failure[1] = times - 1
            if failure[1] <= 0:
                del self._failures[(op, table)]
        raise error

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check("select", table)
        rows = [r for r in self.tables[table] if all(f.matches(r) for f in filters)]
        for clause in reversed(order):
            column, _, direction = clause.partition(".")
            rows.sort(key=lambda r: str(r.get(column) or ""), reverse=direction == "desc")
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            keys = [c.strip() for c in columns.split(",")]
            return [{k: r.get(k) for k in keys} for r in rows]
        return [dict(r) for r in rows]

    async def insert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str | None = None,
    ) -> list[dict[str, Any]]:
        self._check("insert", table)
        inserted = []
        for row in rows if isinstance(rows, list) else [rows]:
            if on_conflict:
                keys = on_conflict.split(",")
                existing = next(
                    (
                        r
                        for r in self.tables[table]
                        if all(r.get(k) == row.get(k) for k in keys)
                    ),
                    None,
                )
                if existing is not None:
                    existing.update(row)
                    inserted.append(dict(existing))
                    continue
            for keys in UNIQUE_KEYS.get(table, []):
                values = [row.get(k) for k in keys]
                if any(v is None for v in values):
                    continue
                if any([r.get(k) for k in keys] == values for r in self.tables[table]):
                    raise UniqueViolationError(
                        "Store error: 409 duplicate key value",
                        status_code=409,
                        details={"code": "23505"},
                    )
            stored = {"id": f"{table}-{next(self._ids)}", **row}
            self.tables[table].append(stored)
            inserted.append(dict(stored))
        return inserted

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if all(f.matches(row) for f in filters):
                row.update(values)
                updated.append(dict(row))
        return updated


@pytest.fixture
def store():
    """Empty in-memory store."""
    return FakeStore()


@pytest.fixture
def services(store):
    """Services wired to the in-memory store."""
    return ServiceContainer.from_client(store, get_settings())


@pytest.fixture
def calendar(store):
    """Business calendar over the in-memory holiday table."""
    return BusinessCalendar(Repository(store, HOLIDAYS))


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client
