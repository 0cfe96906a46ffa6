"""Unit tests for budget periods and week plans"""

import pytest
from datetime import date, timedelta
from household_budget.domain.exceptions import NotFoundError, ValidationError
from household_budget.domain.periods import (
    calendar_anchors,
    default_weekly_amount,
    find_week,
    period_bounds,
    week_bounds,
    week_plan,
)
from household_budget.utils.date_utils import add_months, monday_of


def test_monday_of():
    assert monday_of(date(2024, 3, 4)) == date(2024, 3, 4)  # Monday
    assert monday_of(date(2024, 3, 10)) == date(2024, 3, 4)  # Sunday
    assert monday_of(date(2024, 3, 1)) == date(2024, 2, 26)  # Friday


def test_week_bounds():
    assert week_bounds(date(2024, 3, 6)) == (date(2024, 3, 4), date(2024, 3, 10))


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


def test_period_bounds_calendar_periods():
    anchor = date(2024, 5, 17)
    assert period_bounds("monthly", anchor) == (date(2024, 5, 1), date(2024, 5, 31))
    assert period_bounds("quarterly", anchor) == (date(2024, 4, 1), date(2024, 6, 30))
    assert period_bounds("yearly", anchor) == (date(2024, 1, 1), date(2024, 12, 31))


def test_period_bounds_custom():
    start, end = date(2024, 5, 3), date(2024, 5, 20)
    assert period_bounds("custom", date(2024, 1, 1), start, end) == (start, end)


def test_period_bounds_custom_requires_valid_dates():
    with pytest.raises(ValidationError):
        period_bounds("custom", date(2024, 1, 1))
    with pytest.raises(ValidationError):
        period_bounds("custom", date(2024, 1, 1), date(2024, 5, 20), date(2024, 5, 3))


def test_period_bounds_unknown_type():
    with pytest.raises(ValidationError):
        period_bounds("fortnightly", date(2024, 1, 1))


def test_calendar_anchors():
    assert calendar_anchors(date(2024, 8, 1)) == (2024, 8, 3)


def test_week_plan_march_2024():
    """March 2024 starts on a Friday: first week begins on Monday Feb 26"""
    plan = week_plan(date(2024, 3, 1), date(2024, 3, 31))

    assert len(plan) == 5
    assert plan[0].week_number == 1
    assert plan[0].start == date(2024, 2, 26)
    assert plan[0].end == date(2024, 3, 3)
    assert plan[-1].start == date(2024, 3, 25)
    assert plan[-1].end == date(2024, 3, 31)


def test_week_plan_clips_last_week_to_period_end():
    plan = week_plan(date(2024, 4, 1), date(2024, 4, 30))

    assert plan[-1].start == date(2024, 4, 29)
    assert plan[-1].end == date(2024, 4, 30)
    assert all(w.start.weekday() == 0 for w in plan)
    assert all(w.end - w.start <= timedelta(days=6) for w in plan)


def test_find_week():
    week = find_week(date(2024, 3, 1), date(2024, 3, 31), 2)
    assert week.start == date(2024, 3, 4)

    with pytest.raises(NotFoundError):
        find_week(date(2024, 3, 1), date(2024, 3, 31), 6)


def test_default_weekly_amount():
    assert default_weekly_amount(300000, 5) == 60000
    assert default_weekly_amount(100001, 4) == 25000  # rounds down
    assert default_weekly_amount(300000, 5, weekly_amount_cents=70000) == 70000
    assert default_weekly_amount(300000, 0) == 0
