from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pto_balances.schemas.request import LeaveRequest


def round_hours(value: float) -> float:
    """Round an hour amount to two decimals, normalising -0.0."""
    return round(value, 2) + 0.0


def count_weekdays(start_date: date, end_date: date) -> int:
    """Count Monday–Friday days in the inclusive range."""
    if end_date < start_date:
        return 0
    total_days = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    weekdays = full_weeks * 5
    current = start_date
    for _ in range(remainder):
        if current.weekday() < 5:
            weekdays += 1
        current += timedelta(days=1)
    return weekdays


def _fraction_in_year(start_date: date, end_date: date, year: int) -> float:
    """Share of the request's working days that fall inside the year.

    Falls back to calendar days when the range contains no weekdays.
    """
    year_start = date(year, 1, 1)
    year_end = date(year, 12, 31)
    overlap_start = max(start_date, year_start)
    overlap_end = min(end_date, year_end)
    if overlap_start > overlap_end:
        return 0.0

    total = count_weekdays(start_date, end_date)
    if total > 0:
        return count_weekdays(overlap_start, overlap_end) / total

    total_days = (end_date - start_date).days + 1
    return ((overlap_end - overlap_start).days + 1) / total_days


def hours_in_year(request: LeaveRequest, year: int, *, split_cross_year: bool) -> float:
    """Hours of the request attributed to the given year.

    Without splitting, all hours belong to the start date's year.
    """
    if not split_cross_year or request.start_date.year == request.end_date.year:
        return request.hours_requested if request.start_date.year == year else 0.0
    return request.hours_requested * _fraction_in_year(request.start_date, request.end_date, year)
