"""Unit tests for recurring payment scheduling"""

from datetime import date
from household_budget.domain.recurrence import next_due_date, next_occurrence


def test_next_due_date_by_frequency():
    due = date(2024, 1, 31)
    assert next_due_date(due, "once") is None
    assert next_due_date(due, "weekly") == date(2024, 2, 7)
    assert next_due_date(due, "biweekly") == date(2024, 2, 14)
    assert next_due_date(due, "monthly") == date(2024, 2, 29)
    assert next_due_date(due, "quarterly") == date(2024, 4, 30)
    assert next_due_date(due, "yearly") == date(2025, 1, 31)


def test_next_occurrence_requires_recurring_flag():
    assert next_occurrence(date(2024, 3, 1), "monthly", False) is None
    assert next_occurrence(date(2024, 3, 1), "monthly", True) == date(2024, 4, 1)


def test_next_occurrence_stops_at_end_date():
    assert next_occurrence(date(2024, 3, 1), "monthly", True, date(2024, 3, 31)) is None
    assert next_occurrence(date(2024, 3, 1), "monthly", True, date(2024, 4, 1)) == date(2024, 4, 1)
