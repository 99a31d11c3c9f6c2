"""Domain records mapped from the store's tables.

Column names follow the hosted schema (Portuguese); attribute names are
the English domain names used throughout the services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from aguia_dashboard.dates import parse_date
from aguia_dashboard.errors import DashboardError, ValidationError

CENTS = Decimal("0.01")
MANUAL_UPLOAD = "manual_upload"


def to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Valor inválido: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Valor inválido: {value!r}") from exc


def money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_json_number(value: Decimal | None) -> float | None:
    """Numeric columns travel as JSON numbers."""
    return None if value is None else float(money(value))


def _optional_date(value: Any) -> date | None:
    return parse_date(value) if value else None


class TransactionKind(str, Enum):
    """Direction of a ledger transaction."""

    ENTRADA = "entrada"
    SAIDA = "saida"


class Direction(str, Enum):
    """Which way to step when searching for a business day."""

    FORWARD = "forward"
    BACKWARD = "backward"

    @property
    def step(self) -> int:
        return 1 if self is Direction.FORWARD else -1


class ItemStatus(str, Enum):
    """Outcome of one item of a best-effort batch."""

    IMPORTED = "imported"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass(frozen=True)
class Holiday:
    id: str | None
    date: date
    name: str
    type: str | None = None
    recurring: bool = False
    note: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Holiday:
        return cls(
            id=row.get("id"),
            date=parse_date(row["data"]),
            name=row.get("nome") or "",
            type=row.get("tipo"),
            recurring=bool(row.get("recorrente")),
            note=row.get("observacao"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data": self.date.isoformat(),
            "nome": self.name,
            "tipo": self.type,
            "recorrente": self.recurring,
            "observacao": self.note,
        }


@dataclass(frozen=True)
class StatementLineInput:
    """Raw bank statement line as submitted for import."""

    account_id: str
    date: date
    description: str
    amount: Decimal
    balance: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StatementLineInput:
        if not isinstance(payload, dict):
            raise ValidationError("Linha de extrato deve ser um objeto")
        missing = [
            key
            for key in ("conta_id", "data", "historico", "valor")
            if payload.get(key) in (None, "")
        ]
        if missing:
            raise ValidationError(f"Campos obrigatórios ausentes: {', '.join(missing)}")
        amount = to_decimal(payload["valor"])
        if amount is None or not amount.is_finite():
            raise ValidationError(f"Valor inválido: {payload['valor']!r}")
        return cls(
            account_id=str(payload["conta_id"]),
            date=parse_date(payload["data"]),
            description=str(payload["historico"]),
            amount=amount,
            balance=to_decimal(payload.get("saldo")),
        )


@dataclass
class StatementLine:
    id: str
    account_id: str
    date: date
    description: str
    amount: Decimal
    unique_hash: str
    source: str
    balance: Decimal | None = None
    reconciled_transaction_id: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> StatementLine:
        return cls(
            id=str(row["id"]),
            account_id=str(row.get("conta_id") or ""),
            date=parse_date(row["data"]),
            description=row.get("historico") or "",
            amount=to_decimal(row.get("valor")) or Decimal("0"),
            unique_hash=row.get("hash_unico") or "",
            source=row.get("source") or "",
            balance=to_decimal(row.get("saldo")),
            reconciled_transaction_id=row.get("conciliado_com_transacao_id"),
            deleted_at=row.get("deleted_at"),
        )

    @property
    def is_reconciled(self) -> bool:
        return bool(self.reconciled_transaction_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conta_id": self.account_id,
            "data": self.date.isoformat(),
            "historico": self.description,
            "valor": to_json_number(self.amount),
            "saldo": to_json_number(self.balance),
            "hash_unico": self.unique_hash,
            "source": self.source,
            "conciliado_com_transacao_id": self.reconciled_transaction_id,
        }


@dataclass
class Transaction:
    id: str
    date: date
    description: str
    amount: Decimal
    kind: TransactionKind
    payment_method: str | None = None
    category: str | None = None
    account: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Transaction:
        return cls(
            id=str(row["id"]),
            date=parse_date(row["data"]),
            description=row.get("descricao") or "",
            amount=to_decimal(row.get("valor")) or Decimal("0"),
            kind=TransactionKind(row.get("tipo") or TransactionKind.SAIDA.value),
            payment_method=row.get("forma_pagamento"),
            category=row.get("categoria"),
            account=row.get("conta"),
            deleted_at=row.get("deleted_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data": self.date.isoformat(),
            "descricao": self.description,
            "valor": to_json_number(self.amount),
            "tipo": self.kind.value,
            "forma_pagamento": self.payment_method,
            "categoria": self.category,
            "conta": self.account,
        }


@dataclass(frozen=True)
class TransactionDraft:
    """Fields for a transaction that does not exist yet."""

    date: date
    description: str
    amount: Decimal
    kind: TransactionKind
    payment_method: str | None = None
    category: str | None = None
    account: str | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "data": self.date.isoformat(),
            "descricao": self.description,
            "valor": to_json_number(self.amount),
            "tipo": self.kind.value,
            "forma_pagamento": self.payment_method,
            "categoria": self.category,
            "conta": self.account,
        }


@dataclass
class FixedCost:
    id: str
    name: str
    category: str | None
    amount: Decimal
    recurrence: str | None = None
    due_day: int | None = None
    period: str | None = None
    due_date: date | None = None
    paid: bool = False
    payment_date: date | None = None
    payment_method: str | None = None
    payment_account: str | None = None
    linked_transaction_id: str | None = None
    active: bool | None = None
    note: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> FixedCost:
        return cls(
            id=str(row["id"]),
            name=row.get("nome") or "",
            category=row.get("categoria"),
            amount=to_decimal(row.get("valor")) or Decimal("0"),
            recurrence=row.get("periodicidade"),
            due_day=row.get("dia_vencimento"),
            period=row.get("competencia"),
            due_date=_optional_date(row.get("data_vencimento")),
            paid=bool(row.get("pago")),
            payment_date=_optional_date(row.get("data_pagamento")),
            payment_method=row.get("tipo_pagamento"),
            payment_account=row.get("conta_pagamento"),
            linked_transaction_id=row.get("transacao_id"),
            active=row.get("ativo"),
            note=row.get("observacao"),
        )

    @property
    def is_paid_for_period(self) -> bool:
        return bool(self.paid and self.linked_transaction_id and self.period)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nome": self.name,
            "categoria": self.category,
            "valor": to_json_number(self.amount),
            "periodicidade": self.recurrence,
            "dia_vencimento": self.due_day,
            "competencia": self.period,
            "data_vencimento": self.due_date.isoformat() if self.due_date else None,
            "pago": self.paid,
            "data_pagamento": self.payment_date.isoformat() if self.payment_date else None,
            "tipo_pagamento": self.payment_method,
            "conta_pagamento": self.payment_account,
            "transacao_id": self.linked_transaction_id,
            "ativo": self.active,
            "observacao": self.note,
        }


@dataclass
class DailyWorker:
    """Diarista: per-diem worker with separate weekday/weekend rates."""

    id: str
    name: str
    role: str | None = None
    weekday_rate: Decimal | None = None
    weekend_rate: Decimal | None = None
    legacy_rate: Decimal | None = None
    active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DailyWorker:
        return cls(
            id=str(row["id"]),
            name=row.get("nome") or "",
            role=row.get("funcao"),
            weekday_rate=to_decimal(row.get("valor_diaria_semana")),
            weekend_rate=to_decimal(row.get("valor_diaria_fimsemana")),
            legacy_rate=to_decimal(row.get("valor_diaria")),
            active=row.get("ativo", True) is not False,
        )

    def _rate(self, specific: Decimal | None) -> Decimal:
        if specific is not None:
            return specific
        if self.legacy_rate is not None:
            return self.legacy_rate
        return Decimal("0")

    @property
    def effective_weekday_rate(self) -> Decimal:
        return self._rate(self.weekday_rate)

    @property
    def effective_weekend_rate(self) -> Decimal:
        return self._rate(self.weekend_rate)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nome": self.name,
            "funcao": self.role,
            "valor_diaria_semana": to_json_number(self.weekday_rate),
            "valor_diaria_fimsemana": to_json_number(self.weekend_rate),
            "valor_diaria": to_json_number(self.legacy_rate),
            "ativo": self.active,
        }


@dataclass(frozen=True)
class WorkedDay:
    date: date
    weekday_name: str
    is_weekend: bool
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.date.isoformat(),
            "dia_semana": self.weekday_name,
            "tipo": "fim_semana" if self.is_weekend else "util",
            "valor": to_json_number(self.amount),
        }


@dataclass
class WorkerPayment:
    """Amount owed to one daily worker over a set of worked dates."""

    worker_id: str
    name: str
    weekday_count: int = 0
    weekend_count: int = 0
    weekday_amount: Decimal = Decimal("0")
    weekend_amount: Decimal = Decimal("0")
    breakdown: list[WorkedDay] = field(default_factory=list)

    @property
    def total_days(self) -> int:
        return self.weekday_count + self.weekend_count

    @property
    def total(self) -> Decimal:
        return self.weekday_amount + self.weekend_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "diarista_id": self.worker_id,
            "nome": self.name,
            "dias_uteis": self.weekday_count,
            "dias_fim_semana": self.weekend_count,
            "total_dias": self.total_days,
            "valor_dias_uteis": to_json_number(self.weekday_amount),
            "valor_fim_semana": to_json_number(self.weekend_amount),
            "total_geral": to_json_number(self.total),
            "detalhes": [entry.to_dict() for entry in self.breakdown],
        }


@dataclass
class OperationResult:
    """Outcome of a single-entity operation, with a user-facing message."""

    success: bool
    message: str
    transaction_id: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **kwargs: Any) -> OperationResult:
        transaction_id = kwargs.pop("transaction_id", None)
        return cls(True, message, transaction_id=transaction_id, extra=kwargs)

    @classmethod
    def failure(
        cls, message: str, error: str | None = None, **kwargs: Any
    ) -> OperationResult:
        return cls(False, message, error=error, extra=kwargs)

    @classmethod
    def from_error(cls, exc: DashboardError) -> OperationResult:
        return cls(False, exc.message, error=exc.code)

    @property
    def is_no_match(self) -> bool:
        return self.error == "no_match"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.transaction_id is not None:
            payload["transactionId"] = self.transaction_id
        if self.error is not None:
            payload["error"] = self.error
        payload.update(self.extra)
        return payload


@dataclass(frozen=True)
class ItemOutcome:
    line: int
    status: ItemStatus
    hash: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"linha": self.line, "status": self.status.value}
        if self.hash:
            payload["hash"] = self.hash
        if self.reason:
            payload["motivo"] = self.reason
        return payload


@dataclass
class BatchResult:
    """Per-item outcomes of a best-effort batch (import, generation, seeding)."""

    outcomes: list[ItemOutcome] = field(default_factory=list)

    def add(
        self,
        status: ItemStatus,
        hash: str | None = None,
        reason: str | None = None,
    ) -> ItemOutcome:
        outcome = ItemOutcome(len(self.outcomes) + 1, status, hash, reason)
        self.outcomes.append(outcome)
        return outcome

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def imported_count(self) -> int:
        return self._count(ItemStatus.IMPORTED)

    @property
    def duplicate_count(self) -> int:
        return self._count(ItemStatus.DUPLICATE)

    @property
    def error_count(self) -> int:
        return self._count(ItemStatus.ERROR)

    @property
    def failed(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status is ItemStatus.ERROR]

    def to_dict(self, message: str) -> dict[str, Any]:
        return {
            "success": self.error_count == 0,
            "imported": self.imported_count,
            "duplicates": self.duplicate_count,
            "errors": self.error_count,
            "message": message,
            "details": [outcome.to_dict() for outcome in self.outcomes],
        }
