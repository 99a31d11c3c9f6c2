"""Reconciliation between statement lines and ledger transactions.

A statement line points at no more than one transaction through
``conciliado_com_transacao_id``. Linking is binary: an automatic match
either commits a link or reports ``no_match``; nothing is suggested.
"""

from datetime import timedelta

import structlog

from aguia_dashboard.clients.query import eq, gte, in_, lte
from aguia_dashboard.errors import (
    AlreadyReconciledError,
    DashboardError,
    NotFoundError,
    StoreError,
)
from aguia_dashboard.models import (
    OperationResult,
    StatementLine,
    Transaction,
    TransactionDraft,
    TransactionKind,
    to_json_number,
)
from aguia_dashboard.repository import Repository
from aguia_dashboard.transactions import TransactionService

logger = structlog.get_logger(__name__)

MATCH_WINDOW_DAYS = 2
DEFAULT_CATEGORY = "Conciliação automática"


class ReconciliationEngine:
    """Manual and heuristic linking of statement lines to transactions."""

    def __init__(self, statement_lines: Repository, transactions: TransactionService):
        self._lines = statement_lines
        self._transactions = transactions
        self._logger = logger.bind(component="reconciliation")

    async def _active_line(self, line_id: str) -> StatementLine:
        row = await self._lines.get(line_id)
        if row is None:
            raise NotFoundError("Linha de extrato não encontrada")
        return StatementLine.from_row(row)

    async def _unreconciled_line(self, line_id: str) -> StatementLine:
        line = await self._active_line(line_id)
        if line.is_reconciled:
            raise AlreadyReconciledError("Linha já está conciliada")
        return line

    async def _set_link(self, line_id: str, transaction_id: str | None) -> None:
        updated = await self._lines.update(
            line_id, {"conciliado_com_transacao_id": transaction_id}
        )
        if updated is None:
            raise StoreError("Linha de extrato não foi atualizada")

    async def _compensate(self, transaction_id: str, reason: str) -> None:
        """Soft delete a transaction created by a call that then failed."""
        result = await self._transactions.soft_delete(transaction_id)
        if result.success:
            self._logger.warning(
                "transaction_rolled_back", transaction_id=transaction_id, reason=reason
            )
            return
        # Leaves an orphan transaction that needs manual cleanup
        self._logger.error(
            "compensation_failed",
            transaction_id=transaction_id,
            reason=reason,
            error=result.error,
        )

    async def link(self, line_id: str, transaction_id: str) -> OperationResult:
        try:
            if await self._transactions.get(transaction_id) is None:
                raise NotFoundError("Transação não encontrada")
            await self._active_line(line_id)
        except DashboardError as e:
            return OperationResult.from_error(e)

        try:
            await self._set_link(line_id, transaction_id)
        except StoreError as e:
            return OperationResult.failure("Erro ao conciliar", error=e.message)

        self._logger.info("line_linked", line_id=line_id, transaction_id=transaction_id)
        return OperationResult.ok(
            "Conciliação realizada com sucesso", transaction_id=transaction_id
        )

    async def create_and_link(
        self,
        line_id: str,
        kind: TransactionKind,
        category: str | None = None,
        account: str = "banco",
    ) -> OperationResult:
        try:
            line = await self._unreconciled_line(line_id)
        except DashboardError as e:
            return OperationResult.from_error(e)

        draft = TransactionDraft(
            date=line.date,
            description=line.description,
            amount=abs(line.amount),
            kind=TransactionKind(kind),
            payment_method="banco",
            category=category or DEFAULT_CATEGORY,
            account=account,
        )
        try:
            transaction = await self._transactions.create(draft)
        except StoreError as e:
            return OperationResult.failure("Erro ao criar transação", error=e.message)

        try:
            await self._set_link(line_id, transaction.id)
        except StoreError as e:
            await self._compensate(transaction.id, reason="link_failed")
            return OperationResult.failure("Erro ao vincular conciliação", error=e.message)

        self._logger.info(
            "line_linked_to_new_transaction", line_id=line_id, transaction_id=transaction.id
        )
        return OperationResult.ok(
            "Transação criada e conciliada com sucesso", transaction_id=transaction.id
        )

    async def unlink(self, line_id: str, also_delete_transaction: bool = False) -> OperationResult:
        try:
            line = await self._active_line(line_id)
        except DashboardError as e:
            return OperationResult.from_error(e)

        try:
            await self._set_link(line_id, None)
        except StoreError as e:
            return OperationResult.failure("Erro ao desfazer conciliação", error=e.message)

        transaction_id = line.reconciled_transaction_id
        if also_delete_transaction and transaction_id:
            deleted = await self._transactions.soft_delete(transaction_id)
            if not deleted.success:
                self._logger.error(
                    "linked_transaction_delete_failed",
                    line_id=line_id,
                    transaction_id=transaction_id,
                    error=deleted.error,
                )
                return OperationResult.failure(
                    "Conciliação desfeita, mas a transação não foi excluída",
                    error=deleted.error,
                )
            self._logger.info(
                "line_unlinked_and_transaction_deleted",
                line_id=line_id,
                transaction_id=transaction_id,
            )
            return OperationResult.ok("Conciliação desfeita e transação excluída")

        self._logger.info("line_unlinked", line_id=line_id, transaction_id=transaction_id)
        return OperationResult.ok("Conciliação desfeita com sucesso")

    async def find_candidates(
        self, line: StatementLine, account: str | None = None
    ) -> list[Transaction]:
        """Active transactions with the line's absolute amount within ±2 days.

        Transactions already linked to another active line are excluded so the
        pairing stays one to one.
        """
        filters = [
            eq("valor", to_json_number(abs(line.amount))),
            gte("data", line.date - timedelta(days=MATCH_WINDOW_DAYS)),
            lte("data", line.date + timedelta(days=MATCH_WINDOW_DAYS)),
        ]
        if account:
            filters.append(eq("conta", account))
        candidates = await self._transactions.find(*filters)
        if not candidates:
            return []

        linked_rows = await self._lines.find(
            in_("conciliado_com_transacao_id", [tx.id for tx in candidates]),
            columns="conciliado_com_transacao_id",
        )
        taken = {row.get("conciliado_com_transacao_id") for row in linked_rows}
        return [tx for tx in candidates if tx.id not in taken]

    async def auto_match(self, line_id: str, account: str | None = None) -> OperationResult:
        """Link to the closest-dated candidate; ties go to the lowest id."""
        try:
            line = await self._unreconciled_line(line_id)
            candidates = await self.find_candidates(line, account)
        except DashboardError as e:
            return OperationResult.from_error(e)

        if not candidates:
            return OperationResult.failure(
                "Nenhuma transação correspondente encontrada", error="no_match"
            )

        best = min(candidates, key=lambda tx: (abs((tx.date - line.date).days), tx.id))
        self._logger.info(
            "auto_match_selected",
            line_id=line_id,
            transaction_id=best.id,
            candidates=len(candidates),
        )
        return await self.link(line_id, best.id)
