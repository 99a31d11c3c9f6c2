"""Brazilian banking calendar: weekends plus the ``feriados`` table.

All arithmetic is on civil dates (``datetime.date``) in the business
timezone, so day-of-week never depends on the host's local offset.
"""

from __future__ import annotations

import calendar
import time
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable

import structlog

from aguia_dashboard.clients.query import eq, gte, lte
from aguia_dashboard.config.holidays import HOLIDAY_TYPES, holidays_for_year
from aguia_dashboard.dates import format_br, parse_date
from aguia_dashboard.errors import BusinessDayNotFoundError, StoreError, ValidationError
from aguia_dashboard.models import BatchResult, Direction, Holiday, ItemStatus, OperationResult
from aguia_dashboard.repository import Repository

logger = structlog.get_logger(__name__)

DEFAULT_CACHE_TTL = 3600.0
MAX_ADJUST_ITERATIONS = 10

DateLike = date | datetime | str


class PaymentDateKind(str, Enum):
    """Payroll payment dates used by the monthly payroll run."""

    SALARIO_5 = "SALARIO_5"
    VALE_20 = "VALE_20"
    VT_ULTIMO_DIA = "VT_ULTIMO_DIA"
    VR_ULTIMO_DIA = "VR_ULTIMO_DIA"


class HolidayCache:
    """Holiday set with time-based expiry, replaced wholesale on refresh."""

    def __init__(
        self,
        loader: Callable[[], Awaitable[frozenset[date]]],
        ttl_seconds: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._holidays: frozenset[date] | None = None
        self._loaded_at: float | None = None

    @property
    def is_stale(self) -> bool:
        if self._holidays is None or self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self._ttl

    async def refresh_if_stale(self) -> bool:
        """Reload when expired; returns True if a reload happened."""
        if not self.is_stale:
            return False
        try:
            holidays = await self._loader()
        except StoreError as e:
            # Not cached: the next access tries the store again
            logger.error("holiday_load_failed", error=str(e))
            return False
        self._holidays = holidays
        self._loaded_at = self._clock()
        logger.debug("holiday_cache_refreshed", count=len(holidays))
        return True

    async def get(self) -> frozenset[date]:
        await self.refresh_if_stale()
        return self._holidays if self._holidays is not None else frozenset()

    def invalidate(self) -> None:
        self._holidays = None
        self._loaded_at = None


class BusinessCalendar:
    """Business-day classification and date adjustment.

    Holiday removal is a soft delete, so ``feriados`` needs a nullable
    ``deleted_at timestamptz`` column like the other tables:

        alter table feriados add column if not exists deleted_at timestamptz;

    Without it every holiday read fails and the calendar sees no holidays.
    """

    def __init__(
        self,
        holidays: Repository,
        cache: HolidayCache | None = None,
        ttl_seconds: float = DEFAULT_CACHE_TTL,
        max_iterations: int = MAX_ADJUST_ITERATIONS,
    ):
        self._holidays = holidays
        self._cache = cache or HolidayCache(self._load_holiday_dates, ttl_seconds)
        self._max_iterations = max_iterations
        self._logger = logger.bind(component="business_calendar")

    async def _load_holiday_dates(self) -> frozenset[date]:
        rows = await self._holidays.find(columns="data")
        return frozenset(parse_date(row["data"]) for row in rows if row.get("data"))

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    # === Classification ===

    @staticmethod
    def is_weekend(value: DateLike) -> bool:
        return parse_date(value).weekday() >= 5

    async def is_holiday(self, value: DateLike) -> bool:
        return parse_date(value) in await self._cache.get()

    async def is_business_day(self, value: DateLike) -> bool:
        day = parse_date(value)
        if self.is_weekend(day):
            return False
        return not await self.is_holiday(day)

    # === Adjustment ===

    async def adjust_to_business_day(
        self, value: DateLike, direction: Direction = Direction.FORWARD
    ) -> date:
        """Return ``value`` if it is a business day, else step toward one.

        Raises BusinessDayNotFoundError if no business day is reached
        within the iteration bound.
        """
        candidate = parse_date(value)
        direction = Direction(direction)
        for _ in range(self._max_iterations):
            if await self.is_business_day(candidate):
                return candidate
            candidate += timedelta(days=direction.step)
        if await self.is_business_day(candidate):
            return candidate

        self._logger.error(
            "business_day_not_found",
            start=parse_date(value).isoformat(),
            direction=direction.value,
            last_candidate=candidate.isoformat(),
        )
        raise BusinessDayNotFoundError(
            f"Nenhum dia útil encontrado em {self._max_iterations} dias a partir de "
            f"{format_br(parse_date(value))}",
            last_candidate=candidate,
        )

    async def next_business_day(self, value: DateLike) -> date:
        return await self.adjust_to_business_day(
            parse_date(value) + timedelta(days=1), Direction.FORWARD
        )

    async def previous_business_day(self, value: DateLike) -> date:
        return await self.adjust_to_business_day(
            parse_date(value) - timedelta(days=1), Direction.BACKWARD
        )

    async def count_business_days(self, start: DateLike, end: DateLike) -> int:
        """Inclusive count of business days in [start, end]."""
        current, last = parse_date(start), parse_date(end)
        count = 0
        while current <= last:
            if await self.is_business_day(current):
                count += 1
            current += timedelta(days=1)
        return count

    async def add_business_days(self, value: DateLike, days: int) -> date:
        """Step forward until ``days`` business days have been added."""
        current = parse_date(value)
        if days <= 0:
            return current
        # 3n covers weekends; the floor covers long holiday runs for small n
        limit = max(days * 3, self._max_iterations)
        added = 0
        for _ in range(limit):
            current += timedelta(days=1)
            if await self.is_business_day(current):
                added += 1
                if added == days:
                    return current

        self._logger.error(
            "add_business_days_exhausted",
            start=parse_date(value).isoformat(),
            days=days,
            added=added,
        )
        raise BusinessDayNotFoundError(
            f"Não foi possível somar {days} dias úteis a {format_br(parse_date(value))}",
            last_candidate=current,
        )

    async def last_business_day_of_month(self, year: int, month: int) -> date:
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        return await self.adjust_to_business_day(last_day, Direction.BACKWARD)

    async def payment_date(self, year: int, month: int, kind: PaymentDateKind) -> date:
        """Payroll payment date for the month, moved back to a business day."""
        kind = PaymentDateKind(kind)
        if kind in (PaymentDateKind.VT_ULTIMO_DIA, PaymentDateKind.VR_ULTIMO_DIA):
            original = date(year, month, calendar.monthrange(year, month)[1])
        elif kind is PaymentDateKind.SALARIO_5:
            original = date(year, month, 5)
        else:
            original = date(year, month, 20)
        return await self.adjust_to_business_day(original, Direction.BACKWARD)

    @staticmethod
    def describe_adjustment(original: DateLike, adjusted: DateLike) -> str:
        original_day, adjusted_day = parse_date(original), parse_date(adjusted)
        if original_day == adjusted_day:
            return format_br(adjusted_day)

        moved_back = adjusted_day < original_day
        weekday = original_day.weekday()
        if weekday == 5:
            target = "sexta-feira" if moved_back else "segunda-feira"
            reason = f"sábado → {target}"
        elif weekday == 6:
            target = "sexta-feira" if moved_back else "segunda-feira"
            reason = f"domingo → {target}"
        else:
            target = "dia útil anterior" if moved_back else "próximo dia útil"
            reason = f"feriado → {target}"
        return f"{format_br(adjusted_day)} (ajustado: {reason})"

    # === Holiday administration ===

    async def list_holidays(self, start: DateLike, end: DateLike) -> list[Holiday]:
        rows = await self._holidays.find(
            gte("data", parse_date(start)),
            lte("data", parse_date(end)),
            order=("data.asc",),
        )
        return [Holiday.from_row(row) for row in rows]

    async def add_holiday(
        self,
        value: DateLike,
        name: str,
        type: str = "municipal",
        note: str | None = None,
        recurring: bool = False,
    ) -> Holiday:
        if not name or not name.strip():
            raise ValidationError("Nome do feriado é obrigatório")
        if type not in HOLIDAY_TYPES:
            raise ValidationError(f"Tipo de feriado inválido: {type!r}")
        row = await self._holidays.insert(
            {
                "data": parse_date(value).isoformat(),
                "nome": name.strip(),
                "tipo": type,
                "recorrente": recurring,
                "observacao": note,
            }
        )
        self.invalidate_cache()
        self._logger.info("holiday_added", date=row.get("data"), name=name)
        return Holiday.from_row(row)

    async def remove_holiday(self, holiday_id: str) -> OperationResult:
        row = await self._holidays.get(holiday_id)
        if row is None:
            return OperationResult.failure("Feriado não encontrado", error="not_found")
        await self._holidays.soft_delete(holiday_id)
        self.invalidate_cache()
        self._logger.info("holiday_removed", holiday_id=holiday_id)
        return OperationResult.ok("Feriado removido com sucesso")

    async def seed_national_holidays(self, year: int) -> BatchResult:
        """Insert catalogue holidays for ``year`` that are not stored yet."""
        result = BatchResult()
        for holiday_date, definition in holidays_for_year(year):
            try:
                existing = await self._holidays.find_one(eq("data", holiday_date))
                if existing:
                    result.add(ItemStatus.DUPLICATE, reason=definition.name)
                    continue
                await self._holidays.insert(
                    {
                        "data": holiday_date.isoformat(),
                        "nome": definition.name,
                        "tipo": definition.type,
                        "recorrente": definition.recurring,
                        "observacao": definition.note,
                    }
                )
                result.add(ItemStatus.IMPORTED, reason=definition.name)
            except StoreError as e:
                self._logger.warning(
                    "holiday_seed_failed", date=holiday_date.isoformat(), error=str(e)
                )
                result.add(ItemStatus.ERROR, reason=str(e))
        if result.imported_count:
            self.invalidate_cache()
        self._logger.info(
            "holidays_seeded",
            year=year,
            imported=result.imported_count,
            duplicates=result.duplicate_count,
            errors=result.error_count,
        )
        return result
