"""Tests for the national holiday catalogue."""

from datetime import date

import pytest

from aguia_dashboard.config.holidays import (
    HolidayRule,
    easter_sunday,
    holidays_for_year,
    load_holiday_catalogue,
)


@pytest.mark.parametrize(
    "year,expected",
    [
        (2023, date(2023, 4, 9)),
        (2024, date(2024, 3, 31)),
        (2025, date(2025, 4, 20)),
    ],
)
def test_easter_sunday(year, expected):
    assert easter_sunday(year) == expected


def test_catalogue_loads():
    catalogue = load_holiday_catalogue()

    names = {definition.name for definition in catalogue}
    assert "Tiradentes" in names
    assert "Corpus Christi" in names
    assert all(definition.type == "nacional" for definition in catalogue)


def test_movable_holidays_follow_easter():
    dates = {definition.name: day for day, definition in holidays_for_year(2024)}

    assert dates["Carnaval (segunda-feira)"] == date(2024, 2, 12)
    assert dates["Carnaval (terça-feira)"] == date(2024, 2, 13)
    assert dates["Sexta-feira Santa"] == date(2024, 3, 29)
    assert dates["Corpus Christi"] == date(2024, 5, 30)


def test_holidays_sorted_by_date():
    expanded = holidays_for_year(2024)

    assert [day for day, _ in expanded] == sorted(day for day, _ in expanded)
    assert expanded[0][0] == date(2024, 1, 1)
    assert expanded[-1][0] == date(2024, 12, 25)


def test_consciencia_negra_only_from_2024():
    assert len(holidays_for_year(2023)) == 12
    assert len(holidays_for_year(2024)) == 13
    assert date(2024, 11, 20) in {day for day, _ in holidays_for_year(2024)}


def test_fixed_rules_are_recurring():
    by_name = {d.name: d for d in load_holiday_catalogue()}

    assert by_name["Natal"].recurring
    assert not by_name["Sexta-feira Santa"].recurring
    assert HolidayRule(rule_type="fixed", month=9, day=7).date_for(2030) == date(2030, 9, 7)
