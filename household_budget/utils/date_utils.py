"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta


def monday_of(any_day: date) -> date:
    """Monday of the ISO week containing any_day"""
    return any_day - timedelta(days=any_day.weekday())


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping the day to the last day of the target month"""
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)
