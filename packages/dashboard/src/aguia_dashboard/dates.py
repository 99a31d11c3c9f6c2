"""Civil-date helpers anchored to the business timezone."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from aguia_dashboard.config import get_settings
from aguia_dashboard.errors import ValidationError

WEEKDAY_NAMES_PT = (
    "Segunda",
    "Terça",
    "Quarta",
    "Quinta",
    "Sexta",
    "Sábado",
    "Domingo",
)


def business_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().business_timezone)


def parse_date(value: date | datetime | str) -> date:
    """Parse a civil date.

    Plain ``YYYY-MM-DD`` strings are calendar days already. Timestamps are
    converted into the business timezone before the day is taken, so a UTC
    instant late in the evening does not shift the day.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(business_tz()).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Data inválida: {value!r}")

    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return parse_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError as exc:
        raise ValidationError(f"Data inválida: {value!r}") from exc


def today() -> date:
    """Current civil date in the business timezone."""
    return datetime.now(business_tz()).date()


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def format_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def weekday_name(value: date) -> str:
    return WEEKDAY_NAMES_PT[value.weekday()]


def parse_period(period: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` competência into (year, month)."""
    parts = period.strip().split("-") if isinstance(period, str) else []
    if len(parts) != 2 or not all(part.isdigit() for part in parts) or len(parts[0]) != 4:
        raise ValidationError(f"Competência inválida: {period!r} (use AAAA-MM)")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValidationError(f"Competência inválida: {period!r} (use AAAA-MM)")
    return year, month
