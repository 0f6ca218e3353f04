"""
Business-day arithmetic for deadlines.

Weekends and the fixed Brazilian national holidays are skipped. Holidays
are month/day pairs and apply to every year; movable feasts (Carnival,
Good Friday, Corpus Christi) are not considered.

All functions are pure and accept ``date`` or ``datetime`` values; the
time of day of a ``datetime`` is preserved by ``add_business_days``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from licitaflow.core.exceptions import ValidationError

FIXED_HOLIDAYS = frozenset({
    (1, 1),    # Confraternização Universal
    (4, 21),   # Tiradentes
    (5, 1),    # Dia do Trabalhador
    (9, 7),    # Independência do Brasil
    (10, 12),  # Nossa Senhora Aparecida
    (11, 2),   # Finados
    (11, 15),  # Proclamação da República
    (12, 25),  # Natal
})

_ONE_DAY = timedelta(days=1)


def is_holiday(day: date) -> bool:
    return (day.month, day.day) in FIXED_HOLIDAYS


def is_business_day(day: date) -> bool:
    """True for Monday–Friday dates that are not a fixed holiday."""
    return day.weekday() < 5 and not is_holiday(day)


def add_business_days(start: date, days: int) -> date:
    """Return the date ``days`` business days after ``start``.

    ``start`` itself is never counted. ``days == 0`` returns ``start``
    unchanged, even when ``start`` falls on a weekend or holiday.

    Raises:
        ValidationError: If ``days`` is negative.
    """
    if days < 0:
        raise ValidationError("days must be >= 0", details={"days": days})
    result = start
    added = 0
    while added < days:
        result = result + _ONE_DAY
        if is_business_day(result):
            added += 1
    return result


def business_days_between(start: date, end: date) -> int:
    """Count business days in the inclusive range ``[start, end]``."""
    current = _as_date(start)
    last = _as_date(end)
    count = 0
    while current <= last:
        if is_business_day(current):
            count += 1
        current += _ONE_DAY
    return count


def _as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
