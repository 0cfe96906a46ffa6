"""Budget period and week-slot calculations"""

import calendar
from datetime import date, timedelta
from typing import List, Optional, Tuple

from household_budget.domain.exceptions import NotFoundError, ValidationError
from household_budget.domain.models import PeriodType, WeekWindow
from household_budget.utils.date_utils import monday_of


def week_bounds(any_day: date) -> Tuple[date, date]:
    """Monday and Sunday of the ISO week containing any_day"""
    start = monday_of(any_day)
    return start, start + timedelta(days=6)


def period_bounds(
    period_type: str,
    anchor: date,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> Tuple[date, date]:
    """
    Resolve the first and last day of a budget period.

    Monthly, quarterly and yearly periods are the calendar period containing
    anchor. Custom periods take explicit dates.

    Raises:
        ValidationError: Unknown period type, or custom period without valid dates
    """
    try:
        kind = PeriodType(period_type)
    except ValueError as e:
        raise ValidationError(f"Invalid period type: {period_type!r}") from e

    if kind == PeriodType.MONTHLY:
        last_day = calendar.monthrange(anchor.year, anchor.month)[1]
        return date(anchor.year, anchor.month, 1), date(anchor.year, anchor.month, last_day)

    if kind == PeriodType.QUARTERLY:
        first_month = 3 * ((anchor.month - 1) // 3) + 1
        last_month = first_month + 2
        last_day = calendar.monthrange(anchor.year, last_month)[1]
        return date(anchor.year, first_month, 1), date(anchor.year, last_month, last_day)

    if kind == PeriodType.YEARLY:
        return date(anchor.year, 1, 1), date(anchor.year, 12, 31)

    if custom_start is None or custom_end is None:
        raise ValidationError("Start and end dates required for custom period")
    if custom_end < custom_start:
        raise ValidationError("Custom period end date is before its start date")
    return custom_start, custom_end


def calendar_anchors(start: date) -> Tuple[int, int, int]:
    """(year, month, quarter) of a period start, used for display and filtering"""
    return start.year, start.month, (start.month - 1) // 3 + 1


def week_plan(period_start: date, period_end: date) -> List[WeekWindow]:
    """
    Split a period into numbered Monday-aligned weeks.

    The first week starts on the Monday on or before period_start. Each
    week ends on its Sunday, clipped to period_end.
    """
    weeks = []
    week_start = monday_of(period_start)
    week_number = 1

    while week_start <= period_end:
        week_end = min(week_start + timedelta(days=6), period_end)
        weeks.append(WeekWindow(week_number=week_number, start=week_start, end=week_end))
        week_number += 1
        week_start += timedelta(days=7)

    return weeks


def find_week(period_start: date, period_end: date, week_number: int) -> WeekWindow:
    for week in week_plan(period_start, period_end):
        if week.week_number == week_number:
            return week
    raise NotFoundError(f"Week {week_number} not found in budget period")


def default_weekly_amount(total_cents: int, weeks: int, weekly_amount_cents: Optional[int] = None) -> int:
    """Explicit weekly amount when configured, otherwise the total split evenly (rounded down)"""
    if weekly_amount_cents:
        return weekly_amount_cents
    if weeks <= 0:
        return 0
    return total_cents // weeks
