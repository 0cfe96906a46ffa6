"""Service tests for main budgets and week slot materialization"""

import uuid
import pytest
from datetime import date
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from household_budget.domain.exceptions import NotFoundError, ValidationError
from household_budget.domain.models import RecalculationPolicy
from household_budget.infrastructure.database.models import WeeklyBudget, WeekSlot
from household_budget.infrastructure.database.repositories import WeeklyBudgetRepository
from household_budget.services import budgets, ledger, payments, reconciliation

TODAY = date(2024, 3, 12)


def make_main(db: Session, **overrides):
    data = {
        "name": "March",
        "total_budget_cents": 300000,
        "period_type": "monthly",
        "anchor_date": date(2024, 3, 15),
        "household_id": "hh-rivera",
        "share_with_household": True,
        "categories": [
            {"category_id": "groceries", "default_allocation_cents": 20000},
            {"category_id": "utilities", "percentage": 25},
        ],
    }
    data.update(overrides)
    return budgets.create_main_budget(db, "user-ana", **data)


def weekly_count(db: Session, main_id) -> int:
    return db.scalar(select(func.count()).select_from(WeeklyBudget).where(WeeklyBudget.parent_budget_id == main_id))


def test_create_main_budget_period_and_anchors(db: Session):
    main = make_main(db)

    assert main.period_start == date(2024, 3, 1)
    assert main.period_end == date(2024, 3, 31)
    assert (main.period_year, main.period_month, main.period_quarter) == (2024, 3, 1)
    assert main.status == "active"
    assert main.currency == "USD"
    assert main.slots == []
    assert {c.category_id for c in main.categories} == {"groceries", "utilities"}


def test_create_custom_main_budget_requires_dates(db: Session):
    with pytest.raises(ValidationError):
        make_main(db, period_type="custom")

    main = make_main(db, period_type="custom", start_date=date(2024, 3, 6), end_date=date(2024, 3, 20))
    assert (main.period_start, main.period_end) == (date(2024, 3, 6), date(2024, 3, 20))


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": " "},
        {"total_budget_cents": -5},
        {"status": "frozen"},
        {"recalculation_policy": "sometimes"},
        {"categories": [{"category_id": "a"}, {"category_id": "a"}]},
        {"categories": [{"category_id": "a", "percentage": 120}]},
        {"household_id": None},
    ],
)
def test_create_main_budget_validation(db: Session, overrides):
    with pytest.raises(ValidationError):
        make_main(db, **overrides)


def test_materialize_week_creates_weekly_budget(db: Session):
    main = make_main(db)

    weekly, created = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    assert created is True
    assert weekly.parent_budget_id == main.id
    assert weekly.week_number == 2
    assert weekly.week_start == date(2024, 3, 4)
    assert weekly.week_end == date(2024, 3, 10)
    assert weekly.creation_mode == "fromMainBudget"
    assert weekly.is_shared is True
    assert weekly.household_id == "hh-rivera"
    # 300000 over five planned weeks
    assert weekly.total_budget_cents == 60000
    assert {e.category_id: e.allocation_cents for e in weekly.entries} == {"groceries": 20000, "utilities": 15000}

    slot = main.slots[0]
    assert slot.week_number == 2
    assert slot.weekly_budget_id == weekly.id
    assert slot.status == "active"


def test_materialize_uses_weekly_amount_and_explicit_allocation(db: Session):
    main = make_main(db, weekly_amount_cents=55000)

    weekly, _ = budgets.materialize_week_slot(db, main.id, 1, today=TODAY)
    assert weekly.total_budget_cents == 55000

    weekly, _ = budgets.materialize_week_slot(db, main.id, 3, allocated_cents=70000, today=TODAY)
    assert weekly.total_budget_cents == 70000


def test_materialize_is_idempotent(db: Session):
    main = make_main(db)

    first, created_first = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)
    second, created_second = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert weekly_count(db, main.id) == 1


def test_materialize_exactly_once_across_sessions(db: Session, second_session: Session):
    """A caller holding a stale view of the main budget still gets the existing week"""
    main = make_main(db)
    db.commit()

    stale_main = budgets.get_main_budget(second_session, main.id)
    assert stale_main.slots == []

    weekly, created = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)
    db.commit()

    other_weekly, other_created = budgets.materialize_week_slot(second_session, main.id, 2, today=TODAY)
    second_session.commit()

    assert created is True
    assert other_created is False
    assert other_weekly.id == weekly.id
    assert weekly_count(db, main.id) == 1
    assert db.scalar(select(func.count()).select_from(WeekSlot).where(WeekSlot.main_budget_id == main.id)) == 1


def test_materialize_adopts_weekly_budget_written_by_racing_caller(db: Session):
    """The weekly budget row exists but the slot was never linked"""
    main = make_main(db)
    racing_id = uuid.uuid4()
    WeeklyBudgetRepository(db).insert_materialized_if_absent(
        {
            "id": racing_id,
            "owner_id": "user-luis",
            "household_id": "hh-rivera",
            "is_shared": True,
            "parent_budget_id": main.id,
            "week_number": 3,
            "week_start": date(2024, 3, 11),
            "week_end": date(2024, 3, 17),
            "total_budget_cents": 60000,
            "scheduled_cents": 0,
            "spent_cents": 0,
            "creation_mode": "fromMainBudget",
        }
    )
    db.commit()

    weekly, created = budgets.materialize_week_slot(db, main.id, 3, today=TODAY)

    assert created is False
    assert weekly.id == racing_id
    assert budgets.get_main_budget(db, main.id).slots[0].weekly_budget_id == racing_id
    assert weekly_count(db, main.id) == 1


def test_materialize_syncs_started_week(db: Session):
    main = make_main(db)
    record = payments.create_payment(
        db, "user-luis", name="Phone", amount_cents=4500, category_id="phone", due_date=date(2024, 3, 5),
        household_id="hh-rivera",
    )

    weekly, _ = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    entry = ledger.find_entry(weekly, "phone")
    assert entry is not None
    assert entry.snapshots[0].payment_record_id == record.id
    assert weekly.scheduled_cents == 4500


def test_materialize_future_week_skips_sync(db: Session):
    main = make_main(db)
    payments.create_payment(
        db, "user-ana", name="Rent", amount_cents=90000, category_id="rent", due_date=date(2024, 3, 26)
    )

    weekly, _ = budgets.materialize_week_slot(db, main.id, 5, today=TODAY)

    assert ledger.find_entry(weekly, "rent") is None


def test_materialize_unknown_week_or_budget(db: Session):
    main = make_main(db)

    with pytest.raises(NotFoundError):
        budgets.materialize_week_slot(db, main.id, 6, today=TODAY)
    with pytest.raises(NotFoundError):
        budgets.materialize_week_slot(db, uuid.uuid4(), 1, today=TODAY)


def test_recalculate_materialized_policy_overwrites_with_partial_sum(db: Session):
    main = make_main(db, recalculation_policy="materialized")
    budgets.materialize_week_slot(db, main.id, 1, allocated_cents=70000, today=TODAY)

    result = budgets.recalculate_main_budget_total(db, main.id)

    assert result.policy == RecalculationPolicy.MATERIALIZED
    assert result.previous_total_cents == 300000
    assert result.computed_total_cents == 70000
    assert result.applied is True
    assert main.total_budget_cents == 70000


def test_recalculate_fully_planned_waits_for_every_week(db: Session):
    main = make_main(db, recalculation_policy="fully_planned")
    budgets.materialize_week_slot(db, main.id, 1, allocated_cents=70000, today=TODAY)

    result = budgets.recalculate_main_budget_total(db, main.id)

    assert result.applied is False
    assert result.computed_total_cents == 70000
    assert (result.materialized_weeks, result.planned_weeks) == (1, 5)
    assert main.total_budget_cents == 300000

    for week_number in range(2, 6):
        budgets.materialize_week_slot(db, main.id, week_number, allocated_cents=60000, today=TODAY)

    result = budgets.recalculate_main_budget_total(db, main.id)

    assert result.applied is True
    assert main.total_budget_cents == 70000 + 4 * 60000


def test_recalculate_default_policy_comes_from_settings(db: Session):
    main = make_main(db)
    result = budgets.recalculate_main_budget_total(db, main.id)
    assert result.policy == RecalculationPolicy.FULLY_PLANNED


@pytest.mark.parametrize("policy", ["materialized", "fully_planned"])
def test_recalculate_never_overwrites_with_zero(db: Session, policy):
    main = make_main(db, recalculation_policy=policy, period_type="custom",
                     start_date=date(2024, 3, 4), end_date=date(2024, 3, 10))
    budgets.materialize_week_slot(db, main.id, 1, allocated_cents=0, today=TODAY)

    result = budgets.recalculate_main_budget_total(db, main.id)

    assert result.computed_total_cents == 0
    assert result.applied is False
    assert main.total_budget_cents == 300000


def test_update_slot_allocation_follows_weekly_total(db: Session):
    main = make_main(db)
    weekly, _ = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    slot = budgets.update_slot_allocation(db, main.id, 2, 45000)

    assert slot.allocated_cents == 45000
    assert weekly.total_budget_cents == 45000


def test_weekly_total_change_updates_slot(db: Session):
    main = make_main(db)
    weekly, _ = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    budgets.update_weekly_budget(db, weekly.id, {"total_budget_cents": 52000})

    assert budgets.get_main_budget(db, main.id).slots[0].allocated_cents == 52000


def test_update_main_budget_total_only_in_draft(db: Session):
    main = make_main(db)
    with pytest.raises(ValidationError):
        budgets.update_main_budget(db, main.id, {"total_budget_cents": 1000})

    budgets.set_main_budget_status(db, main.id, "draft")
    budgets.update_main_budget(db, main.id, {"total_budget_cents": 1000, "name": "March plan"})

    assert main.total_budget_cents == 1000
    assert main.name == "March plan"


def test_cleanup_future_weeks(db: Session):
    main = make_main(db)
    budgets.materialize_week_slot(db, main.id, 2, today=TODAY)
    budgets.materialize_week_slot(db, main.id, 4, today=TODAY)
    budgets.materialize_week_slot(db, main.id, 5, today=TODAY)

    deleted = budgets.cleanup_future_weeks(db, main.id, today=TODAY)

    assert deleted == 2
    slots = {s.week_number: s for s in budgets.get_main_budget(db, main.id).slots}
    assert slots[2].weekly_budget_id is not None
    assert slots[4].weekly_budget_id is None
    assert slots[4].status == "pending"
    assert weekly_count(db, main.id) == 1


def test_delete_main_budget_cascades_weeks(db: Session):
    main = make_main(db)
    budgets.materialize_week_slot(db, main.id, 1, today=TODAY)
    budgets.materialize_week_slot(db, main.id, 2, today=TODAY)
    main_id = main.id

    assert budgets.delete_main_budget(db, main_id) == 2
    assert weekly_count(db, main_id) == 0
    with pytest.raises(NotFoundError):
        budgets.get_main_budget(db, main_id)


def test_summary_and_propagation(db: Session):
    main = make_main(db)
    weekly, _ = budgets.materialize_week_slot(db, main.id, 2, today=TODAY)
    record, _, _ = budgets.add_payment_to_category(
        db, weekly.id, "groceries", "user-ana", name="Market", amount_cents=12000, scheduled_date=date(2024, 3, 5)
    )
    budgets.set_budget_payment_status(db, weekly.id, record.id, "paid", "user-ana", today=date(2024, 3, 5))

    reconciliation.propagate_to_main_budget(db, main.id, today=TODAY)
    summary = budgets.main_budget_summary(db, main.id, today=TODAY)

    assert main.total_spent_cents == 12000
    assert main.total_allocated_cents == 60000
    assert main.weekly_average_cents == 12000 // 5
    assert main.slots[0].spent_cents == 12000
    assert main.slots[0].status == "completed"

    assert summary.planned_weeks == 5
    assert summary.materialized_weeks == 1
    assert summary.elapsed_weeks == 3
    assert summary.total_spent_cents == 12000
    assert summary.average_weekly_spend_cents == 4000
    assert summary.projected_spend_cents == 20000
    assert summary.on_track is True
    assert summary.categories == {"groceries": 12000, "utilities": 0}
    assert summary.weeks[1].weekly_budget_id == str(weekly.id)
    assert summary.weeks[0].allocated_cents == 60000


def test_materialize_rejects_week_the_owner_already_budgets(db: Session):
    main = make_main(db)
    standalone = budgets.create_weekly_budget(db, "user-ana", date(2024, 3, 6), 50000)

    with pytest.raises(ValidationError):
        budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    assert weekly_count(db, main.id) == 0
    # Weeks the owner has not budgeted still materialize
    weekly, created = budgets.materialize_week_slot(db, main.id, 3, today=TODAY)
    assert created is True
    assert weekly.id != standalone.id


def test_partial_first_week_overlaps_standalone_week(db: Session):
    main = make_main(db)
    # Monday 2024-02-26 .. Sunday 2024-03-03 covers week 1 (Mar 1-3)
    budgets.create_weekly_budget(db, "user-ana", date(2024, 2, 28), 50000)

    with pytest.raises(ValidationError):
        budgets.materialize_week_slot(db, main.id, 1, today=TODAY)


def test_standalone_week_rejected_over_materialized_week(db: Session):
    main = make_main(db)
    budgets.materialize_week_slot(db, main.id, 1, today=TODAY)

    with pytest.raises(ValidationError):
        budgets.create_weekly_budget(db, "user-ana", date(2024, 2, 28), 50000)


def test_standalone_payment_keeps_a_single_snapshot(db: Session):
    main = make_main(db)
    standalone = budgets.create_weekly_budget(db, "user-ana", date(2024, 3, 4), 100000, [("rent", 90000)])
    rent, _, _ = budgets.add_payment_to_category(
        db, standalone.id, "rent", "user-ana", name="Rent", amount_cents=90000, scheduled_date=date(2024, 3, 5)
    )

    with pytest.raises(ValidationError):
        budgets.materialize_week_slot(db, main.id, 2, today=TODAY)

    assert len(WeeklyBudgetRepository(db).snapshots_referencing(rent.id)) == 1
    assert rent.weekly_budget_id == standalone.id
