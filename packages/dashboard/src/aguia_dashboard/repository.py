"""Table access with a uniform soft-delete scope.

Every table that supports soft deletion is read through ``Repository``,
which adds ``deleted_at IS NULL`` to each query unless the caller opts
out with ``include_deleted=True``. Rows are never physically removed.
"""

from typing import Any, Protocol, Sequence

import structlog

from aguia_dashboard.clients.query import Filter, eq, is_null
from aguia_dashboard.dates import utc_now_iso

logger = structlog.get_logger(__name__)

HOLIDAYS = "feriados"
STATEMENT_LINES = "extratos_importados"
TRANSACTIONS = "transacoes"
FIXED_COSTS = "custos_fixos"
DAILY_WORKERS = "diaristas"
ATTENDANCE = "diarista_ponto"


class StoreClient(Protocol):
    """Table operations the repositories need from the store."""

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]: ...


class Repository:
    """Active-record view of one table."""

    def __init__(self, client: StoreClient, table: str, soft_delete: bool = True):
        self._client = client
        self.table = table
        self._soft_delete = soft_delete

    def _scope(self, filters: Sequence[Filter], include_deleted: bool) -> list[Filter]:
        scoped = list(filters)
        if self._soft_delete and not include_deleted:
            scoped.append(is_null("deleted_at"))
        return scoped

    async def find(
        self,
        *filters: Filter,
        order: Sequence[str] = (),
        limit: int | None = None,
        columns: str = "*",
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        return await self._client.select(
            self.table,
            filters=self._scope(filters, include_deleted),
            columns=columns,
            order=order,
            limit=limit,
        )

    async def find_one(
        self,
        *filters: Filter,
        order: Sequence[str] = (),
        include_deleted: bool = False,
    ) -> dict[str, Any] | None:
        rows = await self.find(
            *filters, order=order, limit=1, include_deleted=include_deleted
        )
        return rows[0] if rows else None

    async def get(self, row_id: str, include_deleted: bool = False) -> dict[str, Any] | None:
        return await self.find_one(eq("id", row_id), include_deleted=include_deleted)

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        now = utc_now_iso()
        rows = await self._client.insert(
            self.table, {**values, "created_at": now, "updated_at": now}
        )
        return rows[0] if rows else dict(values)

    async def upsert(self, values: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        rows = await self._client.insert(
            self.table, {**values, "updated_at": utc_now_iso()}, on_conflict=on_conflict
        )
        return rows[0] if rows else dict(values)

    async def update(self, row_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
        rows = await self.update_where([eq("id", row_id)], values)
        return rows[0] if rows else None

    async def update_where(
        self, filters: Sequence[Filter], values: dict[str, Any]
    ) -> list[dict[str, Any]]:
        return await self._client.update(
            self.table, {**values, "updated_at": utc_now_iso()}, list(filters)
        )

    async def soft_delete(
        self, row_id: str, extra: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        if not self._soft_delete:
            raise TypeError(f"{self.table} does not support soft deletion")
        values = {"deleted_at": utc_now_iso(), **(extra or {})}
        logger.debug("soft_delete", table=self.table, row_id=row_id)
        rows = await self.update_where([eq("id", row_id), is_null("deleted_at")], values)
        return rows[0] if rows else None
