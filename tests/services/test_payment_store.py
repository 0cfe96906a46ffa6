"""Service tests for the payment record store"""

import uuid
import pytest
from datetime import date
from sqlalchemy.orm import Session
from household_budget.domain.exceptions import ConflictError, NotFoundError, ValidationError
from household_budget.infrastructure.database.models import PaymentRecord
from household_budget.services import budgets, payments

WEEK_START = date(2024, 3, 4)


def make_payment(db: Session, owner_id="user-ana", **overrides) -> PaymentRecord:
    data = {
        "name": "Electricity",
        "amount_cents": 8550,
        "category_id": "utilities",
        "due_date": date(2024, 3, 6),
    }
    data.update(overrides)
    return payments.create_payment(db, owner_id, **data)


def test_create_payment_defaults(db: Session):
    record = make_payment(db)

    assert record.id is not None
    assert record.status == "pending"
    assert record.frequency == "once"
    assert record.kind == "expense"
    assert record.paid_date is None
    assert record.weekly_budget_id is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "  "},
        {"amount_cents": -1},
        {"category_id": ""},
        {"frequency": "hourly"},
        {"kind": "transfer"},
        {"due_date": None},
        {"is_recurring": True, "frequency": "monthly", "recurring_end_date": date(2024, 3, 1)},
    ],
)
def test_create_payment_validation(db: Session, overrides):
    with pytest.raises(ValidationError):
        make_payment(db, **overrides)


def test_update_payment(db: Session):
    record = make_payment(db)

    updated = payments.update_payment(db, record.id, {"name": "Power", "amount_cents": 9000})

    assert updated.name == "Power"
    assert updated.amount_cents == 9000


def test_update_payment_rejects_status_patch(db: Session):
    record = make_payment(db)
    with pytest.raises(ValidationError):
        payments.update_payment(db, record.id, {"status": "paid"})


def test_update_unknown_payment(db: Session):
    with pytest.raises(NotFoundError):
        payments.update_payment(db, uuid.uuid4(), {"name": "x"})


def test_mark_paid_defaults_payer_to_acting_user(db: Session):
    record = make_payment(db)

    record, next_record = payments.set_status(db, record.id, "paid", "user-luis", today=date(2024, 3, 6))

    assert record.status == "paid"
    assert record.paid_date == date(2024, 3, 6)
    assert record.paid_by == "user-luis"
    assert next_record is None


def test_mark_paid_with_explicit_payer(db: Session):
    record = make_payment(db)

    record, _ = payments.set_status(db, record.id, "paid", "user-luis", paid_by="user-sofia")

    assert record.paid_by == "user-sofia"


def test_reverting_paid_clears_payment_fields(db: Session):
    record = make_payment(db)
    payments.set_status(db, record.id, "paid", "user-luis")

    record, _ = payments.set_status(db, record.id, "pending", "user-luis")

    assert record.status == "pending"
    assert record.paid_date is None
    assert record.paid_by is None


def test_repaying_keeps_original_paid_date(db: Session):
    record = make_payment(db)
    payments.set_status(db, record.id, "paid", "user-luis", today=date(2024, 3, 6))

    record, next_record = payments.set_status(
        db, record.id, "paid", "user-luis", paid_by="user-sofia", today=date(2024, 3, 8)
    )

    assert record.paid_date == date(2024, 3, 6)
    assert record.paid_by == "user-sofia"
    assert next_record is None


def test_cancelled_is_terminal(db: Session):
    record = make_payment(db)
    payments.set_status(db, record.id, "cancelled", "user-ana")

    with pytest.raises(ValidationError):
        payments.set_status(db, record.id, "paid", "user-ana")


def test_paying_recurring_payment_schedules_next_occurrence(db: Session):
    record = make_payment(db, frequency="monthly", is_recurring=True, due_date=date(2024, 1, 31))

    _, next_record = payments.set_status(db, record.id, "paid", "user-ana")

    assert next_record is not None
    assert next_record.due_date == date(2024, 2, 29)
    assert next_record.status == "pending"
    assert next_record.is_recurring is True
    assert next_record.amount_cents == record.amount_cents


def test_next_occurrence_not_duplicated(db: Session):
    record = make_payment(db, frequency="weekly", is_recurring=True)
    make_payment(db, frequency="weekly", is_recurring=True, due_date=date(2024, 3, 13))

    _, next_record = payments.set_status(db, record.id, "paid", "user-ana")

    assert next_record is None


def test_recurring_series_ends(db: Session):
    record = make_payment(
        db, frequency="weekly", is_recurring=True, recurring_end_date=date(2024, 3, 10)
    )

    _, next_record = payments.set_status(db, record.id, "paid", "user-ana")

    assert next_record is None


def test_list_by_date_range_is_inclusive_and_scoped(db: Session):
    make_payment(db, name="Start", due_date=date(2024, 3, 4))
    make_payment(db, name="End", due_date=date(2024, 3, 10))
    make_payment(db, name="Outside", due_date=date(2024, 3, 11))
    make_payment(db, owner_id="user-luis", name="Luis personal", due_date=date(2024, 3, 5))
    make_payment(db, owner_id="user-luis", name="Luis shared", due_date=date(2024, 3, 5), household_id="hh-rivera")

    own = payments.list_by_date_range(db, date(2024, 3, 4), date(2024, 3, 10), owner_id="user-ana")
    assert [r.name for r in own] == ["Start", "End"]

    shared = payments.list_by_date_range(
        db, date(2024, 3, 4), date(2024, 3, 10), owner_id="user-ana", household_id="hh-rivera"
    )
    assert {r.name for r in shared} == {"Start", "End", "Luis shared"}


def test_list_by_date_range_rejects_inverted_range(db: Session):
    with pytest.raises(ValidationError):
        payments.list_by_date_range(db, date(2024, 3, 10), date(2024, 3, 4))


def test_flag_overdue(db: Session):
    late = make_payment(db, due_date=date(2024, 3, 1))
    paid = make_payment(db, due_date=date(2024, 3, 1))
    payments.set_status(db, paid.id, "paid", "user-ana")
    make_payment(db, due_date=date(2024, 3, 20))

    flagged = payments.flag_overdue(db, today=date(2024, 3, 5))

    assert [r.id for r in flagged] == [late.id]
    assert late.status == "overdue"


def test_delete_referenced_payment_requires_force(db: Session):
    budget = budgets.create_weekly_budget(db, "user-ana", WEEK_START, 50000, [("utilities", 20000)])
    record, _, _ = budgets.add_payment_to_category(
        db, budget.id, "utilities", "user-ana", name="Water", amount_cents=3000, scheduled_date=date(2024, 3, 5)
    )

    with pytest.raises(ConflictError):
        payments.delete_payment(db, record.id)

    removed = payments.delete_payment(db, record.id, force=True)

    assert removed == 1
    assert budget.scheduled_cents == 0
    assert budget.entries[0].snapshots == []


def test_delete_unreferenced_payment(db: Session):
    record = make_payment(db)
    assert payments.delete_payment(db, record.id) == 0
    with pytest.raises(NotFoundError):
        payments.get_payment(db, record.id)
