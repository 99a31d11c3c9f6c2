"""Fixed costs (``custos_fixos``): monthly generation and payment.

A cost row is paid once per competência. Paying it creates the ledger
transaction on a business day, records the payment on the row and then
tries, best effort, to reconcile with an imported bank line.
"""

import asyncio
import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog

from aguia_dashboard.business_days import BusinessCalendar
from aguia_dashboard.clients.query import eq, gte, is_null, lte
from aguia_dashboard.clients.supabase import UniqueViolationError
from aguia_dashboard.dates import parse_date, parse_period, today
from aguia_dashboard.errors import (
    AlreadyPaidError,
    BusinessDayNotFoundError,
    DashboardError,
    NotFoundError,
    StoreError,
)
from aguia_dashboard.models import (
    BatchResult,
    Direction,
    FixedCost,
    ItemStatus,
    OperationResult,
    TransactionDraft,
    TransactionKind,
    to_json_number,
)
from aguia_dashboard.reconciliation import MATCH_WINDOW_DAYS, ReconciliationEngine
from aguia_dashboard.repository import Repository
from aguia_dashboard.transactions import TransactionService

logger = structlog.get_logger(__name__)

BANK_ACCOUNT = "banco"
MONTHLY = "mensal"
DEFAULT_CATEGORY = "Custo Fixo"


@dataclass(frozen=True)
class FixedCostTotals:
    total: Decimal
    paid: Decimal
    pending: Decimal
    count: int
    paid_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": to_json_number(self.total),
            "pagos": to_json_number(self.paid),
            "pendentes": to_json_number(self.pending),
            "quantidade": self.count,
            "quantidadePagos": self.paid_count,
            "quantidadePendentes": self.count - self.paid_count,
        }


class FixedCostService:
    """Payment orchestration and period generation for fixed costs."""

    def __init__(
        self,
        costs: Repository,
        statement_lines: Repository,
        transactions: TransactionService,
        reconciliation: ReconciliationEngine,
        business_calendar: BusinessCalendar,
        payment_direction: Direction = Direction.FORWARD,
        due_direction: Direction = Direction.BACKWARD,
    ):
        self._costs = costs
        self._lines = statement_lines
        self._transactions = transactions
        self._reconciliation = reconciliation
        self._calendar = business_calendar
        self._payment_direction = Direction(payment_direction)
        self._due_direction = Direction(due_direction)
        # Serializes concurrent payments of the same cost within this process
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._logger = logger.bind(component="fixed_costs")

    async def _active_cost(self, cost_id: str) -> FixedCost:
        row = await self._costs.get(cost_id)
        if row is None:
            raise NotFoundError("Custo fixo não encontrado")
        return FixedCost.from_row(row)

    async def mark_paid(
        self,
        cost_id: str,
        payment_date: date | str | None = None,
        account: str = BANK_ACCOUNT,
        method: str = "transferencia",
    ) -> OperationResult:
        lock = self._locks.setdefault(cost_id, asyncio.Lock())
        self._lock_users[cost_id] += 1
        try:
            async with lock:
                return await self._mark_paid(cost_id, payment_date, account, method)
        finally:
            self._lock_users[cost_id] -= 1
            if not self._lock_users[cost_id]:
                del self._lock_users[cost_id]
                del self._locks[cost_id]

    async def _mark_paid(
        self,
        cost_id: str,
        payment_date: date | str | None,
        account: str,
        method: str,
    ) -> OperationResult:
        try:
            original = parse_date(payment_date) if payment_date else today()
            cost = await self._active_cost(cost_id)
            if cost.is_paid_for_period:
                raise AlreadyPaidError("Custo fixo já foi pago nesta competência")
            adjusted = await self._calendar.adjust_to_business_day(
                original, self._payment_direction
            )
        except BusinessDayNotFoundError as e:
            return OperationResult.failure(e.message, error=e.code)
        except DashboardError as e:
            return OperationResult.from_error(e)

        transaction_id = cost.linked_transaction_id
        created_here = False
        if not transaction_id:
            draft = TransactionDraft(
                date=adjusted,
                description=f"Pagamento custo fixo - {cost.name}",
                amount=cost.amount,
                kind=TransactionKind.SAIDA,
                payment_method=method,
                category=cost.category or DEFAULT_CATEGORY,
                account=account,
            )
            try:
                transaction = await self._transactions.create(draft)
            except StoreError as e:
                return OperationResult.failure("Erro ao criar transação", error=e.message)
            transaction_id = transaction.id
            created_here = True

        try:
            updated = await self._costs.update(
                cost_id,
                {
                    "pago": True,
                    "data_pagamento": adjusted.isoformat(),
                    "conta_pagamento": account,
                    "tipo_pagamento": method,
                    "transacao_id": transaction_id,
                },
            )
            if updated is None:
                raise StoreError("Custo fixo não foi atualizado")
        except StoreError as e:
            if created_here:
                await self._compensate(transaction_id, cost_id)
            return OperationResult.failure("Erro ao atualizar custo fixo", error=e.message)

        reconciled = False
        if account == BANK_ACCOUNT:
            reconciled = await self._try_reconcile(cost, adjusted, account)

        self._logger.info(
            "fixed_cost_paid",
            cost_id=cost_id,
            transaction_id=transaction_id,
            payment_date=adjusted.isoformat(),
            reused_transaction=not created_here,
            reconciled=reconciled,
        )
        return OperationResult.ok(
            "Pagamento registrado e conciliação atualizada.",
            transaction_id=transaction_id,
            dataAjustada=adjusted.isoformat(),
            conciliadoAutomaticamente=reconciled,
        )

    async def _compensate(self, transaction_id: str, cost_id: str) -> None:
        result = await self._transactions.soft_delete(transaction_id)
        if result.success:
            self._logger.warning(
                "transaction_rolled_back", transaction_id=transaction_id, cost_id=cost_id
            )
            return
        # Leaves an orphan transaction that needs manual cleanup
        self._logger.error(
            "compensation_failed",
            transaction_id=transaction_id,
            cost_id=cost_id,
            error=result.error,
        )

    async def _try_reconcile(self, cost: FixedCost, paid_on: date, account: str) -> bool:
        """Auto-match an unreconciled bank debit of the same amount near ``paid_on``."""
        try:
            line = await self._lines.find_one(
                is_null("conciliado_com_transacao_id"),
                eq("valor", to_json_number(-abs(cost.amount))),
                gte("data", paid_on - timedelta(days=MATCH_WINDOW_DAYS)),
                lte("data", paid_on + timedelta(days=MATCH_WINDOW_DAYS)),
                order=("data.asc", "id.asc"),
            )
            if line is None:
                return False
            result = await self._reconciliation.auto_match(str(line["id"]), account)
        except DashboardError as e:
            self._logger.warning("auto_reconcile_failed", cost_id=cost.id, error=e.message)
            return False
        return result.success

    async def generate_for_period(self, period: str) -> BatchResult:
        """Create unpaid rows for ``period`` from each active monthly definition."""
        year, month = parse_period(period)
        result = BatchResult()

        try:
            # Definitions are the period-less rows; generated rows carry a competência
            bases = await self._costs.find(
                eq("ativo", True),
                eq("periodicidade", MONTHLY),
                is_null("competencia"),
                order=("nome.asc",),
            )
        except StoreError as e:
            self._logger.error("fixed_cost_bases_failed", period=period, error=e.message)
            result.add(ItemStatus.ERROR, reason=e.message)
            return result

        last_day = calendar.monthrange(year, month)[1]
        for base in map(FixedCost.from_row, bases):
            try:
                existing = await self._costs.find_one(
                    eq("nome", base.name), eq("competencia", period)
                )
                if existing:
                    result.add(ItemStatus.DUPLICATE, reason=base.name)
                    continue

                due_day = min(base.due_day or 1, last_day)
                due_date = await self._calendar.adjust_to_business_day(
                    date(year, month, due_day), self._due_direction
                )
                await self._costs.insert(
                    {
                        "nome": base.name,
                        "categoria": base.category,
                        "valor": to_json_number(base.amount),
                        "periodicidade": base.recurrence,
                        "dia_vencimento": base.due_day,
                        "competencia": period,
                        "data_vencimento": due_date.isoformat(),
                        "pago": False,
                        "tipo_pagamento": base.payment_method,
                        "conta_pagamento": base.payment_account,
                        "ativo": True,
                        "observacao": f"Gerado automaticamente para {period}",
                    }
                )
                result.add(ItemStatus.IMPORTED, reason=base.name)
            except UniqueViolationError:
                result.add(ItemStatus.DUPLICATE, reason=base.name)
            except DashboardError as e:
                self._logger.warning(
                    "fixed_cost_generation_failed",
                    period=period,
                    name=base.name,
                    error=e.message,
                )
                result.add(ItemStatus.ERROR, reason=f"{base.name}: {e.message}")

        self._logger.info(
            "fixed_costs_generated",
            period=period,
            generated=result.imported_count,
            skipped=result.duplicate_count,
            errors=result.error_count,
        )
        return result

    async def list_active(
        self,
        category: str | None = None,
        paid: bool | None = None,
        period: str | None = None,
        active: bool | None = None,
    ) -> list[FixedCost]:
        filters = []
        if category:
            filters.append(eq("categoria", category))
        if paid is not None:
            filters.append(eq("pago", paid))
        if period:
            filters.append(eq("competencia", period))
        if active is not None:
            filters.append(eq("ativo", active))
        rows = await self._costs.find(*filters, order=("data_vencimento.asc",))
        return [FixedCost.from_row(row) for row in rows]

    async def totals(
        self, period: str | None = None, category: str | None = None
    ) -> FixedCostTotals:
        costs = await self.list_active(category=category, period=period)
        paid = [c for c in costs if c.paid]
        total = sum((c.amount for c in costs), Decimal("0"))
        paid_total = sum((c.amount for c in paid), Decimal("0"))
        return FixedCostTotals(
            total=total,
            paid=paid_total,
            pending=total - paid_total,
            count=len(costs),
            paid_count=len(paid),
        )
