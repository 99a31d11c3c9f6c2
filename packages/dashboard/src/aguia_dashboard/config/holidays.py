"""National holiday catalogue loader (Brazilian banking calendar)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]

RuleType = Literal["fixed", "easter"]

HOLIDAY_TYPES = ("nacional", "estadual", "municipal")


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


@dataclass(frozen=True)
class HolidayRule:
    """Date rule for a holiday: fixed month/day or offset from Easter."""

    rule_type: RuleType
    month: int | None = None
    day: int | None = None
    offset: int = 0

    def date_for(self, year: int) -> date | None:
        if self.rule_type == "fixed":
            if self.month is None or self.day is None:
                return None
            return date(year, self.month, self.day)
        if self.rule_type == "easter":
            return easter_sunday(year) + timedelta(days=self.offset)
        return None


@dataclass(frozen=True)
class HolidayDefinition:
    """Catalogue entry for a holiday."""

    name: str
    rule: HolidayRule
    type: str = "nacional"
    since: int | None = None
    note: str | None = None

    def date_for(self, year: int) -> date | None:
        if self.since is not None and year < self.since:
            return None
        return self.rule.date_for(year)

    @property
    def recurring(self) -> bool:
        return self.rule.rule_type == "fixed"


def _parse_month_day(value: Any) -> tuple[int, int] | None:
    if isinstance(value, str):
        parts = value.strip().split("-")
        if len(parts) == 2 and all(part.isdigit() for part in parts):
            return int(parts[0]), int(parts[1])
    return None


def _parse_rule(item: dict[str, Any]) -> HolidayRule:
    rule_value = item.get("date_rule")
    if not rule_value:
        raise ValueError("holiday missing date_rule")
    if not isinstance(rule_value, str):
        raise ValueError("holiday date_rule must be a string")

    normalized = rule_value.strip().lower()
    if normalized == "easter":
        offset = item.get("offset", 0)
        if not isinstance(offset, int):
            raise ValueError("easter date_rule offset must be an integer")
        return HolidayRule(rule_type="easter", offset=offset)

    month_day = _parse_month_day(normalized)
    if not month_day:
        raise ValueError(f"Invalid date_rule {rule_value!r}")
    month, day = month_day
    if not (1 <= month <= 12) or not (1 <= day <= 31):
        raise ValueError(f"date_rule {rule_value!r} month/day out of range")
    return HolidayRule(rule_type="fixed", month=month, day=day)


@lru_cache
def load_holiday_catalogue() -> list[HolidayDefinition]:
    """Load national holiday definitions from YAML."""
    holidays_path = Path(__file__).resolve().parent / "feriados.yaml"
    if not holidays_path.exists():
        return []

    data = yaml.safe_load(holidays_path.read_text(encoding="utf-8"))
    if data is None:
        return []

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("feriados") or []
    else:
        raise ValueError("feriados.yaml must be a list or mapping with 'feriados'")

    if not isinstance(items, list):
        raise ValueError("feriados must be a list")

    results: list[HolidayDefinition] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"feriados[{idx}] must be a mapping")
        name = item.get("name")
        if not name:
            raise ValueError(f"feriados[{idx}] missing name")

        holiday_type = str(item.get("type", "nacional"))
        if holiday_type not in HOLIDAY_TYPES:
            raise ValueError(f"feriados[{idx}] invalid type {holiday_type!r}")

        since = item.get("since")
        if since is not None and not isinstance(since, int):
            raise ValueError(f"feriados[{idx}] since must be a year")

        results.append(
            HolidayDefinition(
                name=str(name),
                rule=_parse_rule(item),
                type=holiday_type,
                since=since,
                note=item.get("note"),
            )
        )

    return results


def holidays_for_year(year: int) -> list[tuple[date, HolidayDefinition]]:
    """Expand the catalogue into concrete dates for a year, sorted by date."""
    expanded = []
    for definition in load_holiday_catalogue():
        holiday_date = definition.date_for(year)
        if holiday_date is not None:
            expanded.append((holiday_date, definition))
    return sorted(expanded, key=lambda pair: pair[0])
