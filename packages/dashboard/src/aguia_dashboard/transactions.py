"""Ledger transactions (``transacoes``): create, update, soft delete, KPIs."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from aguia_dashboard.clients.query import Filter, eq, gte, lte
from aguia_dashboard.errors import StoreError
from aguia_dashboard.models import (
    OperationResult,
    Transaction,
    TransactionDraft,
    TransactionKind,
    to_json_number,
)
from aguia_dashboard.repository import Repository

logger = structlog.get_logger(__name__)


@dataclass
class AccountTotals:
    inflow: Decimal = Decimal("0")
    outflow: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.inflow - self.outflow

    def to_dict(self) -> dict[str, Any]:
        return {
            "entradas": to_json_number(self.inflow),
            "saidas": to_json_number(self.outflow),
            "saldo": to_json_number(self.balance),
        }


@dataclass
class TransactionKPIs:
    inflow: Decimal = Decimal("0")
    outflow: Decimal = Decimal("0")
    count: int = 0
    by_account: dict[str, AccountTotals] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.inflow - self.outflow

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEntradas": to_json_number(self.inflow),
            "totalSaidas": to_json_number(self.outflow),
            "saldo": to_json_number(self.balance),
            "porConta": {k: v.to_dict() for k, v in self.by_account.items()},
            "totalTransacoes": self.count,
        }


class TransactionService:
    """Ledger access; every read sees active (non-deleted) rows only."""

    def __init__(self, transactions: Repository, statement_lines: Repository):
        self._transactions = transactions
        self._lines = statement_lines
        self._logger = logger.bind(component="transactions")

    async def get(self, transaction_id: str) -> Transaction | None:
        row = await self._transactions.get(transaction_id)
        return Transaction.from_row(row) if row else None

    async def create(self, draft: TransactionDraft) -> Transaction:
        row = await self._transactions.insert(draft.to_row())
        transaction = Transaction.from_row(row)
        self._logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            amount=str(transaction.amount),
        )
        return transaction

    async def update(self, transaction_id: str, values: dict[str, Any]) -> Transaction | None:
        row = await self._transactions.update(transaction_id, values)
        return Transaction.from_row(row) if row else None

    async def find(self, *filters: Filter) -> list[Transaction]:
        rows = await self._transactions.find(*filters)
        return [Transaction.from_row(row) for row in rows]

    async def list_active(
        self,
        start: date | None = None,
        end: date | None = None,
        kind: TransactionKind | None = None,
        account: str | None = None,
        category: str | None = None,
    ) -> list[Transaction]:
        filters = []
        if start:
            filters.append(gte("data", start))
        if end:
            filters.append(lte("data", end))
        if kind:
            filters.append(eq("tipo", TransactionKind(kind).value))
        if account:
            filters.append(eq("conta", account))
        if category:
            filters.append(eq("categoria", category))
        rows = await self._transactions.find(*filters, order=("data.desc",))
        return [Transaction.from_row(row) for row in rows]

    async def soft_delete(self, transaction_id: str) -> OperationResult:
        """Soft delete a transaction and unlink statement lines pointing at it."""
        try:
            deleted = await self._transactions.soft_delete(transaction_id)
        except StoreError as e:
            return OperationResult.failure("Erro ao excluir transação", error=str(e))
        if deleted is None:
            return OperationResult.failure("Transação não encontrada", error="not_found")

        try:
            unlinked = await self._lines.update_where(
                [eq("conciliado_com_transacao_id", transaction_id)],
                {"conciliado_com_transacao_id": None},
            )
        except StoreError as e:
            self._logger.error(
                "unlink_after_delete_failed", transaction_id=transaction_id, error=str(e)
            )
            return OperationResult.failure(
                "Transação excluída, mas a conciliação não foi atualizada",
                error=str(e),
            )

        self._logger.info(
            "transaction_deleted", transaction_id=transaction_id, unlinked=len(unlinked)
        )
        return OperationResult.ok("Exclusão processada e conciliação atualizada.")

    async def kpis(self, start: date | None = None, end: date | None = None) -> TransactionKPIs:
        kpis = TransactionKPIs()
        for tx in await self.list_active(start=start, end=end):
            kpis.count += 1
            is_inflow = tx.kind is TransactionKind.ENTRADA
            if is_inflow:
                kpis.inflow += tx.amount
            else:
                kpis.outflow += tx.amount
            if not tx.account:
                continue
            totals = kpis.by_account.setdefault(tx.account, AccountTotals())
            if is_inflow:
                totals.inflow += tx.amount
            else:
                totals.outflow += tx.amount
        return kpis
