"""Recurring payment schedule generation"""

from datetime import date, timedelta
from typing import Optional

from household_budget.domain.models import Frequency
from household_budget.utils.date_utils import add_months

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def next_due_date(due_date: date, frequency: str) -> Optional[date]:
    """
    Due date of the occurrence after due_date.

    Month-based frequencies clamp to the end of shorter months
    (Jan 31 monthly -> Feb 28/29). Returns None for one-off payments.
    """
    kind = Frequency(frequency)

    if kind == Frequency.ONCE:
        return None
    if kind == Frequency.WEEKLY:
        return due_date + timedelta(days=7)
    if kind == Frequency.BIWEEKLY:
        return due_date + timedelta(days=14)
    return add_months(due_date, _MONTH_STEPS[kind])


def next_occurrence(
    due_date: date,
    frequency: str,
    is_recurring: bool,
    recurring_end_date: Optional[date] = None,
) -> Optional[date]:
    """Next due date of a recurring payment, or None when the series has ended"""
    if not is_recurring:
        return None

    next_date = next_due_date(due_date, frequency)
    if next_date is None:
        return None
    if recurring_end_date is not None and next_date > recurring_end_date:
        return None
    return next_date
