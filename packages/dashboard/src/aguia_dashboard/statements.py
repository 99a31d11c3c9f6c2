"""Imported bank statement lines (``extratos_importados``).

Import is best effort: each line is hashed, known hashes are skipped as
duplicates, and a failure on one line never aborts the batch. The unique
index on ``hash_unico`` is the authoritative duplicate guard; the lookup
before insert only avoids a round trip that is bound to conflict.
"""

import hashlib
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

import structlog

from aguia_dashboard.clients.query import eq, gte, is_null, lte, not_null
from aguia_dashboard.clients.supabase import UniqueViolationError
from aguia_dashboard.errors import StoreError, ValidationError
from aguia_dashboard.models import (
    MANUAL_UPLOAD,
    BatchResult,
    ItemStatus,
    OperationResult,
    StatementLine,
    StatementLineInput,
    money,
    to_json_number,
)
from aguia_dashboard.repository import Repository

logger = structlog.get_logger(__name__)


def compute_line_hash(line: StatementLineInput) -> str:
    """SHA-256 over account | date | amount (2 places) | normalized description."""
    composite = "|".join(
        (
            line.account_id,
            line.date.isoformat(),
            str(money(line.amount)),
            line.description.strip().lower(),
        )
    )
    return hashlib.sha256(composite.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ReconciliationStatus:
    total: int
    reconciled: int

    @property
    def unreconciled(self) -> int:
        return self.total - self.reconciled

    @property
    def percentage(self) -> str:
        if not self.total:
            return "0"
        return f"{self.reconciled / self.total * 100:.1f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "conciliados": self.reconciled,
            "naoConciliados": self.unreconciled,
            "percentualConciliado": self.percentage,
        }


class StatementService:
    """Import, listing and soft deletion of statement lines."""

    def __init__(self, lines: Repository):
        self._lines = lines
        self._logger = logger.bind(component="statements")

    async def import_lines(
        self,
        lines: Iterable[StatementLineInput | dict[str, Any]],
        source: str = MANUAL_UPLOAD,
    ) -> BatchResult:
        result = BatchResult()
        for raw in lines:
            try:
                line = (
                    raw
                    if isinstance(raw, StatementLineInput)
                    else StatementLineInput.from_payload(raw)
                )
            except ValidationError as e:
                outcome = result.add(ItemStatus.ERROR, reason=e.message)
                self._logger.warning("statement_line_invalid", line=outcome.line, error=e.message)
                continue

            line_hash = compute_line_hash(line)
            try:
                # Deleted rows keep their hash reserved in the unique index
                existing = await self._lines.find_one(
                    eq("hash_unico", line_hash), include_deleted=True
                )
                if existing:
                    result.add(ItemStatus.DUPLICATE, hash=line_hash)
                    continue

                await self._lines.insert(
                    {
                        "conta_id": line.account_id,
                        "data": line.date.isoformat(),
                        "historico": line.description,
                        "valor": to_json_number(line.amount),
                        "saldo": to_json_number(line.balance),
                        "hash_unico": line_hash,
                        "source": source,
                    }
                )
                result.add(ItemStatus.IMPORTED, hash=line_hash)
            except UniqueViolationError:
                result.add(ItemStatus.DUPLICATE, hash=line_hash)
            except StoreError as e:
                outcome = result.add(ItemStatus.ERROR, hash=line_hash, reason=e.message)
                self._logger.error(
                    "statement_line_import_failed", line=outcome.line, error=e.message
                )

        self._logger.info(
            "statement_import_finished",
            source=source,
            imported=result.imported_count,
            duplicates=result.duplicate_count,
            errors=result.error_count,
        )
        return result

    @staticmethod
    def import_message(result: BatchResult) -> str:
        return (
            f"Importação concluída: {result.imported_count} linhas importadas, "
            f"{result.duplicate_count} duplicadas, {result.error_count} erros."
        )

    async def get_line(self, line_id: str) -> StatementLine | None:
        row = await self._lines.get(line_id)
        return StatementLine.from_row(row) if row else None

    async def soft_delete_line(self, line_id: str) -> OperationResult:
        """Soft delete a manually uploaded line, clearing its reconciliation."""
        try:
            row = await self._lines.get(line_id)
        except StoreError as e:
            return OperationResult.failure("Erro ao processar exclusão", error=e.message)
        if row is None:
            return OperationResult.failure(
                "Linha de extrato não encontrada", error="not_found"
            )

        line = StatementLine.from_row(row)
        if line.source != MANUAL_UPLOAD:
            return OperationResult.failure(
                "Apenas linhas importadas manualmente podem ser excluídas",
                error="invalid_source",
            )

        try:
            await self._lines.soft_delete(
                line_id, extra={"conciliado_com_transacao_id": None}
            )
        except StoreError as e:
            return OperationResult.failure("Erro ao excluir linha", error=e.message)

        self._logger.info(
            "statement_line_deleted",
            line_id=line_id,
            unlinked_transaction=line.reconciled_transaction_id,
        )
        return OperationResult.ok("Linha excluída e conciliação atualizada.")

    async def list_active_lines(
        self,
        account_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
        reconciled: bool | None = None,
    ) -> list[StatementLine]:
        filters = []
        if account_id:
            filters.append(eq("conta_id", account_id))
        if start:
            filters.append(gte("data", start))
        if end:
            filters.append(lte("data", end))
        if reconciled is True:
            filters.append(not_null("conciliado_com_transacao_id"))
        elif reconciled is False:
            filters.append(is_null("conciliado_com_transacao_id"))
        rows = await self._lines.find(*filters, order=("data.desc",))
        return [StatementLine.from_row(row) for row in rows]

    async def reconciliation_status(self, account_id: str | None = None) -> ReconciliationStatus:
        lines = await self.list_active_lines(account_id=account_id)
        reconciled = sum(1 for line in lines if line.is_reconciled)
        return ReconciliationStatus(total=len(lines), reconciled=reconciled)
