"""PaymentRecord store - source-of-truth writes for scheduled and recurring payments

Writes here never touch the payment snapshots cached in weekly budgets.
Callers propagate a write with reconciliation.refresh_snapshots afterwards,
since a record may not be attached to any budget at all.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from household_budget.domain.exceptions import ConflictError, NotFoundError, ValidationError
from household_budget.domain.models import Frequency, PaymentStatus
from household_budget.domain.recurrence import next_occurrence
from household_budget.domain.status import check_transition, is_overdue
from household_budget.infrastructure.database.models import PaymentRecord
from household_budget.infrastructure.database.repositories import (
    PaymentRecordRepository,
    WeeklyBudgetRepository,
)
from household_budget.services import ledger

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = {
    "name",
    "amount_cents",
    "category_id",
    "due_date",
    "frequency",
    "notes",
    "is_recurring",
    "recurring_end_date",
}

PAYMENT_KINDS = {"expense", "income"}


def _clean_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Payment name is required")
    return name.strip()


def _check_amount(amount_cents: Any) -> int:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("Payment amount is required")
    if amount_cents < 0:
        raise ValidationError("Payment amount must be non-negative")
    return amount_cents


def _check_frequency(frequency: str) -> str:
    try:
        return Frequency(frequency).value
    except ValueError as e:
        raise ValidationError(f"Invalid frequency: {frequency!r}") from e


def _check_category(category_id: Optional[str]) -> str:
    if not category_id:
        raise ValidationError("Payment category is required")
    return category_id


def get_payment(db: Session, payment_id: uuid.UUID) -> PaymentRecord:
    record = PaymentRecordRepository(db).get(payment_id)
    if record is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return record


def create_payment(
    db: Session,
    owner_id: str,
    *,
    name: str,
    amount_cents: int,
    category_id: str,
    due_date: date,
    frequency: str = "once",
    kind: str = "expense",
    notes: Optional[str] = None,
    is_recurring: bool = False,
    recurring_end_date: Optional[date] = None,
    household_id: Optional[str] = None,
    scheduled_from_budget_id: Optional[uuid.UUID] = None,
    scheduled_from_category_id: Optional[str] = None,
) -> PaymentRecord:
    """
    Create a pending payment record.

    Budget-scoped creation passes scheduled_from_budget_id and
    scheduled_from_category_id; that back-reference is what makes removal
    from the budget cascade to the record.

    Raises:
        ValidationError: Missing name/category/due date, negative amount, bad frequency or kind
    """
    if due_date is None:
        raise ValidationError("Payment due date is required")
    if kind not in PAYMENT_KINDS:
        raise ValidationError(f"Invalid payment kind: {kind!r}")
    if recurring_end_date is not None and recurring_end_date < due_date:
        raise ValidationError("Recurring end date is before the due date")

    record = PaymentRecord(
        id=uuid.uuid4(),
        owner_id=owner_id,
        household_id=household_id,
        name=_clean_name(name),
        amount_cents=_check_amount(amount_cents),
        category_id=_check_category(category_id),
        kind=kind,
        due_date=due_date,
        frequency=_check_frequency(frequency),
        status=PaymentStatus.PENDING.value,
        notes=notes,
        is_recurring=is_recurring,
        recurring_end_date=recurring_end_date,
        weekly_budget_id=scheduled_from_budget_id,
        scheduled_from_budget_id=scheduled_from_budget_id,
        scheduled_from_category_id=scheduled_from_category_id,
    )
    return PaymentRecordRepository(db).add(record)


def update_payment(db: Session, payment_id: uuid.UUID, changes: Dict[str, Any]) -> PaymentRecord:
    """
    Apply a partial update to a payment record.

    Raises:
        NotFoundError: Unknown payment
        ValidationError: Unknown or non-patchable field, invalid value
    """
    record = get_payment(db, payment_id)

    unknown = set(changes) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    if "name" in changes:
        record.name = _clean_name(changes["name"])
    if "amount_cents" in changes:
        record.amount_cents = _check_amount(changes["amount_cents"])
    if "category_id" in changes:
        record.category_id = _check_category(changes["category_id"])
    if "due_date" in changes:
        if changes["due_date"] is None:
            raise ValidationError("Payment due date is required")
        record.due_date = changes["due_date"]
    if "frequency" in changes:
        record.frequency = _check_frequency(changes["frequency"])
    if "notes" in changes:
        record.notes = changes["notes"]
    if "is_recurring" in changes:
        record.is_recurring = bool(changes["is_recurring"])
    if "recurring_end_date" in changes:
        record.recurring_end_date = changes["recurring_end_date"]

    if record.recurring_end_date is not None and record.recurring_end_date < record.due_date:
        raise ValidationError("Recurring end date is before the due date")

    db.flush()
    return record


def set_status(
    db: Session,
    payment_id: uuid.UUID,
    status: str,
    acting_user_id: str,
    paid_by: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[PaymentRecord, Optional[PaymentRecord]]:
    """
    Move a payment through its lifecycle.

    Marking paid stamps the paid date and defaults the payer to the acting
    user; leaving paid clears both. Paying a recurring payment schedules
    its next occurrence.

    Returns:
        (updated record, next occurrence or None)

    Raises:
        NotFoundError: Unknown payment
        ValidationError: Transition not allowed
    """
    today = today or date.today()
    record = get_payment(db, payment_id)
    previous = record.status
    target = check_transition(previous, status)

    if target == PaymentStatus.PAID:
        if previous != PaymentStatus.PAID.value:
            record.paid_date = today
            record.paid_by = paid_by or acting_user_id
        elif paid_by:
            record.paid_by = paid_by
    else:
        record.paid_date = None
        record.paid_by = None
    record.status = target.value

    next_record = None
    if target == PaymentStatus.PAID and previous != PaymentStatus.PAID.value:
        next_record = _schedule_next_occurrence(db, record)

    db.flush()
    logger.info(
        "Payment status changed",
        extra={"payment_id": str(record.id), "from_status": previous, "to_status": target.value},
    )
    return record, next_record


def _schedule_next_occurrence(db: Session, record: PaymentRecord) -> Optional[PaymentRecord]:
    next_date = next_occurrence(record.due_date, record.frequency, record.is_recurring, record.recurring_end_date)
    if next_date is None:
        return None

    repo = PaymentRecordRepository(db)
    if repo.occurrence_exists(record.owner_id, record.name, record.category_id, next_date):
        return None

    return create_payment(
        db,
        record.owner_id,
        name=record.name,
        amount_cents=record.amount_cents,
        category_id=record.category_id,
        due_date=next_date,
        frequency=record.frequency,
        kind=record.kind,
        notes=record.notes,
        is_recurring=record.is_recurring,
        recurring_end_date=record.recurring_end_date,
        household_id=record.household_id,
    )


def delete_payment(db: Session, payment_id: uuid.UUID, force: bool = False) -> int:
    """
    Delete a payment record.

    Returns:
        Number of snapshots removed along with it (only when forced)

    Raises:
        NotFoundError: Unknown payment
        ConflictError: Record still referenced by budget snapshots and force is not set
    """
    record = get_payment(db, payment_id)
    snapshots = WeeklyBudgetRepository(db).snapshots_referencing(record.id)

    if snapshots and not force:
        raise ConflictError(
            f"Payment {payment_id} is referenced by {len(snapshots)} budget snapshot(s)"
        )

    for snapshot in snapshots:
        ledger.remove_snapshot(snapshot)

    PaymentRecordRepository(db).delete(record)
    return len(snapshots)


def list_by_date_range(
    db: Session,
    start: date,
    end: date,
    owner_id: Optional[str] = None,
    household_id: Optional[str] = None,
) -> List[PaymentRecord]:
    if end < start:
        raise ValidationError("Range end is before range start")
    return PaymentRecordRepository(db).list_by_date_range(start, end, owner_id, household_id)


def flag_overdue(db: Session, today: Optional[date] = None) -> List[PaymentRecord]:
    """Time-triggered pending -> overdue for every payment whose due date has passed"""
    today = today or date.today()
    flagged = []
    for record in PaymentRecordRepository(db).list_pending_due_before(today):
        if is_overdue(record.status, record.due_date, today):
            record.status = PaymentStatus.OVERDUE.value
            flagged.append(record)
    db.flush()
    return flagged
