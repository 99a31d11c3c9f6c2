"""Per-diem (diarista) payment calculation.

Weekday and weekend rates are independent values; a worker missing one of
them falls back to the legacy flat rate, and then to zero.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

import structlog

from aguia_dashboard.business_days import BusinessCalendar
from aguia_dashboard.clients.query import eq, gte, lte
from aguia_dashboard.dates import parse_date, weekday_name
from aguia_dashboard.errors import NotFoundError, ValidationError
from aguia_dashboard.models import (
    DailyWorker,
    WorkedDay,
    WorkerPayment,
    to_decimal,
    to_json_number,
)
from aguia_dashboard.repository import Repository

logger = structlog.get_logger(__name__)


@dataclass
class PeriodTotals:
    worker_count: int = 0
    weekday_count: int = 0
    weekend_count: int = 0
    weekday_amount: Decimal = Decimal("0")
    weekend_amount: Decimal = Decimal("0")
    payments: list[WorkerPayment] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.weekday_amount + self.weekend_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDiaristas": self.worker_count,
            "totalDiasUteis": self.weekday_count,
            "totalDiasFimSemana": self.weekend_count,
            "totalDias": self.weekday_count + self.weekend_count,
            "totalValorUteis": to_json_number(self.weekday_amount),
            "totalValorFimSemana": to_json_number(self.weekend_amount),
            "totalGeral": to_json_number(self.total),
            "detalhePorDiarista": [p.to_dict() for p in self.payments],
        }


class DailyWorkerService:
    def __init__(self, workers: Repository, attendance: Repository):
        self._workers = workers
        self._attendance = attendance
        self._logger = logger.bind(component="daily_workers")

    async def _worker(self, worker_id: str) -> DailyWorker:
        row = await self._workers.get(worker_id)
        if row is None:
            raise NotFoundError("Diarista não encontrado")
        return DailyWorker.from_row(row)

    async def calculate_for_worker(
        self, worker_id: str, worked_dates: Iterable[date | str]
    ) -> WorkerPayment:
        """Amount owed to one worker for ``worked_dates``.

        Raises:
            NotFoundError: the worker does not exist.
            ValidationError: a date cannot be parsed.
        """
        worker = await self._worker(worker_id)
        weekday_rate = worker.effective_weekday_rate
        weekend_rate = worker.effective_weekend_rate

        payment = WorkerPayment(worker_id=worker.id, name=worker.name)
        for worked in sorted(parse_date(d) for d in worked_dates):
            weekend = BusinessCalendar.is_weekend(worked)
            if weekend:
                payment.weekend_count += 1
                payment.weekend_amount += weekend_rate
            else:
                payment.weekday_count += 1
                payment.weekday_amount += weekday_rate
            payment.breakdown.append(
                WorkedDay(
                    date=worked,
                    weekday_name=weekday_name(worked),
                    is_weekend=weekend,
                    amount=weekend_rate if weekend else weekday_rate,
                )
            )
        return payment

    async def calculate_for_period(
        self, start: date | str, end: date | str
    ) -> list[WorkerPayment]:
        """Payments for every worker marked present between ``start`` and ``end``."""
        start_day, end_day = parse_date(start), parse_date(end)
        if start_day > end_day:
            raise ValidationError("Data inicial posterior à data final")

        rows = await self._attendance.find(
            gte("data", start_day),
            lte("data", end_day),
            eq("presente", True),
            columns="diarista_id,data",
        )
        by_worker: defaultdict[str, list[str]] = defaultdict(list)
        for row in rows:
            by_worker[str(row["diarista_id"])].append(row["data"])

        payments = []
        for worker_id, dates in by_worker.items():
            try:
                payments.append(await self.calculate_for_worker(worker_id, dates))
            except NotFoundError:
                self._logger.warning(
                    "attendance_for_unknown_worker", worker_id=worker_id, days=len(dates)
                )
        return sorted(payments, key=lambda p: p.name.casefold())

    async def period_totals(self, start: date | str, end: date | str) -> PeriodTotals:
        payments = await self.calculate_for_period(start, end)
        totals = PeriodTotals(worker_count=len(payments), payments=payments)
        for p in payments:
            totals.weekday_count += p.weekday_count
            totals.weekend_count += p.weekend_count
            totals.weekday_amount += p.weekday_amount
            totals.weekend_amount += p.weekend_amount
        return totals

    async def list_active_workers(self) -> list[DailyWorker]:
        rows = await self._workers.find(eq("ativo", True), order=("nome.asc",))
        return [DailyWorker.from_row(row) for row in rows]

    async def update_rates(
        self, worker_id: str, weekday_rate: Any, weekend_rate: Any
    ) -> DailyWorker:
        weekday, weekend = to_decimal(weekday_rate), to_decimal(weekend_rate)
        if weekday is None or weekend is None:
            raise ValidationError("valorSemana e valorFimSemana são obrigatórios")
        if weekday < 0 or weekend < 0:
            raise ValidationError("Valores de diária não podem ser negativos")

        row = await self._workers.update(
            worker_id,
            {
                "valor_diaria_semana": to_json_number(weekday),
                "valor_diaria_fimsemana": to_json_number(weekend),
            },
        )
        if row is None:
            raise NotFoundError("Diarista não encontrado")
        self._logger.info(
            "daily_worker_rates_updated",
            worker_id=worker_id,
            weekday_rate=str(weekday),
            weekend_rate=str(weekend),
        )
        return DailyWorker.from_row(row)

    async def mark_attendance(
        self, worker_id: str, worked_on: date | str, present: bool = True
    ) -> dict[str, Any]:
        """Record presence; a second mark for the same day replaces the first."""
        await self._worker(worker_id)
        return await self._attendance.upsert(
            {
                "diarista_id": worker_id,
                "data": parse_date(worked_on).isoformat(),
                "presente": present,
            },
            on_conflict="diarista_id,data",
        )
