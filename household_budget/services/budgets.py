"""Weekly and main budget aggregates - category allocations, payment scheduling, week slots"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from household_budget.config import settings
from household_budget.domain.attribution import paid_by_from_raw
from household_budget.domain.exceptions import NotFoundError, ValidationError
from household_budget.domain.models import (
    BudgetTotals,
    MainBudgetStatus,
    MainBudgetSummary,
    PaidBy,
    PaymentStatus,
    PeriodType,
    RecalculationPolicy,
    RecalculationResult,
    ReconciliationWarning,
    Resolved,
    SlotStatus,
    WeekProgress,
)
from household_budget.domain.periods import (
    calendar_anchors,
    default_weekly_amount,
    find_week,
    period_bounds,
    week_bounds,
    week_plan,
)
from household_budget.domain.status import check_transition
from household_budget.domain.totals import (
    allocation_warnings,
    budget_totals,
    sum_contributions,
    would_exceed_allocation,
)
from household_budget.infrastructure.database.models import (
    CategoryLedgerEntry,
    MainBudget,
    MainBudgetCategory,
    PaymentRecord,
    PaymentSnapshot,
    WeeklyBudget,
    WeekSlot,
)
from household_budget.infrastructure.database.repositories import (
    MainBudgetRepository,
    PaymentRecordRepository,
    WeeklyBudgetRepository,
)
from household_budget.infrastructure.observability.logging import log_materialization
from household_budget.infrastructure.observability.metrics import record_materialization, record_warnings
from household_budget.services import ledger, payments, reconciliation

logger = logging.getLogger(__name__)

CREATION_MODES = {"manual", "fromMainBudget", "template"}


def _check_cents(value: Any, label: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{label} is required")
    if value < 0:
        raise ValidationError(f"{label} must be non-negative")
    return value


# Weekly budgets


def get_weekly_budget(db: Session, budget_id: uuid.UUID) -> WeeklyBudget:
    budget = WeeklyBudgetRepository(db).get(budget_id)
    if budget is None:
        raise NotFoundError(f"Weekly budget {budget_id} not found")
    return budget


def create_weekly_budget(
    db: Session,
    owner_id: str,
    week_start: date,
    total_budget_cents: int,
    categories: Iterable[Tuple[str, int]] = (),
    household_id: Optional[str] = None,
    is_shared: bool = False,
    creation_mode: str = "manual",
) -> WeeklyBudget:
    """
    Create a standalone weekly budget.

    week_start is normalized to the Monday of its week.

    Raises:
        ValidationError: Budget already exists for this owner and week, duplicate categories,
            negative amounts, sharing without a household
    """
    if week_start is None:
        raise ValidationError("Week start date is required")
    if creation_mode not in CREATION_MODES:
        raise ValidationError(f"Invalid creation mode: {creation_mode!r}")
    if is_shared and not household_id:
        raise ValidationError("A shared budget needs a household")

    monday, sunday = week_bounds(week_start)
    repo = WeeklyBudgetRepository(db)
    if repo.list_overlapping_for_owner(owner_id, monday, sunday):
        raise ValidationError(f"Weekly budget already exists for week starting {monday.isoformat()}")

    categories = list(categories)
    category_ids = [category_id for category_id, _ in categories]
    if len(set(category_ids)) != len(category_ids):
        raise ValidationError("Duplicate categories in weekly budget")

    budget = WeeklyBudget(
        id=uuid.uuid4(),
        owner_id=owner_id,
        household_id=household_id,
        is_shared=is_shared,
        week_start=monday,
        week_end=sunday,
        total_budget_cents=_check_cents(total_budget_cents, "Total budget"),
        scheduled_cents=0,
        spent_cents=0,
        creation_mode=creation_mode,
    )
    for position, (category_id, allocation_cents) in enumerate(categories):
        if not category_id:
            raise ValidationError("Category id is required")
        budget.entries.append(
            CategoryLedgerEntry(
                category_id=category_id,
                allocation_cents=_check_cents(allocation_cents, "Category allocation"),
                position=position,
            )
        )

    return repo.add(budget)


def update_weekly_budget(db: Session, budget_id: uuid.UUID, changes: Dict[str, Any]) -> WeeklyBudget:
    """
    Update the total, sharing or household of a weekly budget.

    A materialized week keeps its main budget slot allocation in step with
    its total.
    """
    budget = get_weekly_budget(db, budget_id)

    unknown = set(changes) - {"total_budget_cents", "is_shared", "household_id"}
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    if "household_id" in changes:
        budget.household_id = changes["household_id"]
    if "is_shared" in changes:
        budget.is_shared = bool(changes["is_shared"])
    if budget.is_shared and not budget.household_id:
        raise ValidationError("A shared budget needs a household")

    if "total_budget_cents" in changes:
        budget.total_budget_cents = _check_cents(changes["total_budget_cents"], "Total budget")
        if budget.parent_budget_id is not None:
            slot = MainBudgetRepository(db).get_slot(budget.parent_budget_id, budget.week_number)
            if slot is not None:
                slot.allocated_cents = budget.total_budget_cents

    db.flush()
    return budget


def delete_weekly_budget(db: Session, budget_id: uuid.UUID) -> int:
    """
    Delete a weekly budget.

    Payment records created through this budget go with it; standalone
    records only lose their link. A main budget slot pointing at it is
    reset to pending.

    Returns:
        Number of payment records deleted
    """
    budget = get_weekly_budget(db, budget_id)
    record_repo = PaymentRecordRepository(db)

    for slot in MainBudgetRepository(db).slots_linked_to(budget.id):
        slot.weekly_budget = None
        slot.spent_cents = 0
        slot.status = SlotStatus.PENDING.value

    created_here = record_repo.list_scheduled_from(budget.id)
    for record in record_repo.list_linked_to(budget.id):
        record.weekly_budget_id = None
    db.flush()

    WeeklyBudgetRepository(db).delete(budget)

    for record in created_here:
        payments.delete_payment(db, record.id, force=True)

    logger.info(
        "Weekly budget deleted",
        extra={"budget_id": str(budget_id), "records_deleted": len(created_here)},
    )
    return len(created_here)


def upsert_category(
    db: Session, budget_id: uuid.UUID, category_id: str, allocation_cents: int
) -> Tuple[CategoryLedgerEntry, bool]:
    """Add a category to a budget or change its allocation; returns (entry, created)"""
    budget = get_weekly_budget(db, budget_id)
    if not category_id:
        raise ValidationError("Category id is required")
    allocation_cents = _check_cents(allocation_cents, "Category allocation")

    entry = ledger.find_entry(budget, category_id)
    if entry is not None:
        entry.allocation_cents = allocation_cents
        db.flush()
        return entry, False

    return WeeklyBudgetRepository(db).add_entry(budget, category_id, allocation_cents), True


def add_payment_to_category(
    db: Session,
    budget_id: uuid.UUID,
    category_id: str,
    acting_user_id: str,
    *,
    name: str,
    amount_cents: int,
    scheduled_date: date,
    frequency: str = "once",
    notes: Optional[str] = None,
    is_recurring: bool = False,
    recurring_end_date: Optional[date] = None,
) -> Tuple[PaymentRecord, PaymentSnapshot, List[ReconciliationWarning]]:
    """
    Schedule a payment from inside a budget.

    The canonical record is created first, carrying a back-reference to
    this budget and category, then copied into the category's ledger.
    Exceeding the category allocation is reported as a warning.

    Raises:
        NotFoundError: Budget or category not found
        ValidationError: Invalid payment data or date outside the budget's week
    """
    budget = get_weekly_budget(db, budget_id)
    entry = ledger.require_entry(budget, category_id)

    if scheduled_date is None or not budget.week_start <= scheduled_date <= budget.week_end:
        raise ValidationError(
            f"Scheduled date must fall between {budget.week_start.isoformat()} and {budget.week_end.isoformat()}"
        )

    already_scheduled, _ = sum_contributions(entry.snapshots)
    record = payments.create_payment(
        db,
        acting_user_id,
        name=name,
        amount_cents=amount_cents,
        category_id=category_id,
        due_date=scheduled_date,
        frequency=frequency,
        notes=notes,
        is_recurring=is_recurring,
        recurring_end_date=recurring_end_date,
        household_id=budget.household_id,
        scheduled_from_budget_id=budget.id,
        scheduled_from_category_id=category_id,
    )
    snapshot = ledger.append_snapshot(entry, record)
    db.flush()

    warnings = []
    if would_exceed_allocation(entry.allocation_cents, already_scheduled, record.amount_cents):
        warnings.append(
            ReconciliationWarning(
                code="allocation_exceeded",
                message=(
                    f"Category {category_id} scheduled {already_scheduled + record.amount_cents} "
                    f"exceeds allocation {entry.allocation_cents}"
                ),
                category_id=category_id,
                payment_record_id=str(record.id),
            )
        )
        record_warnings(warnings)

    return record, snapshot, warnings


def _drop_snapshot(db: Session, budget: WeeklyBudget, snapshot: PaymentSnapshot) -> bool:
    """Remove a snapshot; delete its record if the record was created through this budget"""
    record = PaymentRecordRepository(db).get(snapshot.payment_record_id) if snapshot.payment_record_id else None
    ledger.remove_snapshot(snapshot)
    db.flush()

    if record is None:
        return False
    if ledger.was_created_through(record, budget):
        payments.delete_payment(db, record.id, force=True)
        return True

    if record.weekly_budget_id == budget.id:
        record.weekly_budget_id = None
    return False


def remove_category(db: Session, budget_id: uuid.UUID, category_id: str) -> int:
    """
    Remove a category and its snapshots from a budget.

    Returns:
        Number of payment records deleted along with it
    """
    budget = get_weekly_budget(db, budget_id)
    entry = ledger.require_entry(budget, category_id)

    deleted = 0
    for snapshot in list(entry.snapshots):
        if _drop_snapshot(db, budget, snapshot):
            deleted += 1

    budget.entries.remove(entry)
    db.flush()
    return deleted


def _require_snapshot(
    budget: WeeklyBudget, payment_id: uuid.UUID, category_id: Optional[str] = None
) -> Tuple[CategoryLedgerEntry, PaymentSnapshot]:
    found = ledger.find_snapshot(budget, payment_id, category_id)
    if found is None:
        raise NotFoundError(f"Payment {payment_id} not found in budget")
    return found


def remove_payment(db: Session, budget_id: uuid.UUID, category_id: str, payment_id: uuid.UUID) -> bool:
    """
    Remove one payment from a budget category.

    payment_id may be the snapshot id or the record id.

    Returns:
        True when the underlying record was deleted too
    """
    budget = get_weekly_budget(db, budget_id)
    ledger.require_entry(budget, category_id)
    _, snapshot = _require_snapshot(budget, payment_id, category_id)
    return _drop_snapshot(db, budget, snapshot)


def _live_record(db: Session, snapshot: PaymentSnapshot) -> Optional[PaymentRecord]:
    if snapshot.payment_record_id is None:
        return None
    return PaymentRecordRepository(db).get(snapshot.payment_record_id)


def update_budget_payment(
    db: Session, budget_id: uuid.UUID, payment_id: uuid.UUID, changes: Dict[str, Any]
) -> PaymentSnapshot:
    """
    Budget-scoped payment edit.

    Linked snapshots are edited through their record, so every budget
    copying the record sees the change. Orphaned snapshots are edited in
    place.
    """
    budget = get_weekly_budget(db, budget_id)
    _, snapshot = _require_snapshot(budget, payment_id)

    record = _live_record(db, snapshot)
    if record is not None:
        payments.update_payment(db, record.id, changes)
        reconciliation.refresh_snapshots(db, record)
        return snapshot

    unknown = set(changes) - {"name", "amount_cents", "due_date"}
    if unknown:
        raise ValidationError(f"Fields cannot be updated on an unlinked payment: {', '.join(sorted(unknown))}")

    before = ledger.contribution(snapshot)
    if "name" in changes:
        if not changes["name"] or not str(changes["name"]).strip():
            raise ValidationError("Payment name is required")
        snapshot.name = str(changes["name"]).strip()
    if "amount_cents" in changes:
        snapshot.amount_cents = _check_cents(changes["amount_cents"], "Payment amount")
    if "due_date" in changes:
        if changes["due_date"] is None:
            raise ValidationError("Payment due date is required")
        snapshot.scheduled_date = changes["due_date"]
    ledger.adjust_budget_totals(budget, before, ledger.contribution(snapshot))

    db.flush()
    return snapshot


def _payer_name(payer: Optional[PaidBy], payer_id: str) -> Optional[str]:
    if isinstance(payer, Resolved) and payer.id == payer_id:
        return payer.name
    return None


def set_budget_payment_status(
    db: Session,
    budget_id: uuid.UUID,
    payment_id: uuid.UUID,
    status: str,
    acting_user_id: str,
    paid_by: Any = None,
    today: Optional[date] = None,
) -> Tuple[PaymentSnapshot, Optional[PaymentRecord]]:
    """
    Budget-scoped status change.

    paid_by may be a bare member id or an embedded {"_id", "name"} document.

    Returns:
        (snapshot, next occurrence created by paying a recurring record or None)
    """
    today = today or date.today()
    budget = get_weekly_budget(db, budget_id)
    _, snapshot = _require_snapshot(budget, payment_id)

    payer = paid_by_from_raw(paid_by)
    payer_id = payer.id if payer is not None else None

    record = _live_record(db, snapshot)
    if record is not None:
        _, next_record = payments.set_status(db, record.id, status, acting_user_id, payer_id, today)
        reconciliation.refresh_snapshots(db, record, payer)
        return snapshot, next_record

    before = ledger.contribution(snapshot)
    previous = snapshot.status
    target = check_transition(previous, status)
    if target == PaymentStatus.PAID:
        if previous != PaymentStatus.PAID.value:
            snapshot.paid_date = today
            snapshot.paid_by_id = payer_id or acting_user_id
            snapshot.paid_by_name = _payer_name(payer, snapshot.paid_by_id)
        elif payer_id and payer_id != snapshot.paid_by_id:
            snapshot.paid_by_id = payer_id
            snapshot.paid_by_name = _payer_name(payer, payer_id)
    else:
        snapshot.paid_date = None
        snapshot.paid_by_id = None
        snapshot.paid_by_name = None
    snapshot.status = target.value
    ledger.adjust_budget_totals(budget, before, ledger.contribution(snapshot))

    db.flush()
    return snapshot, None


def budget_view(db: Session, budget: WeeklyBudget) -> Tuple[BudgetTotals, List[ReconciliationWarning]]:
    """Totals recomputed from the ledger plus every soft warning for the budget"""
    totals = budget_totals(budget.total_budget_cents, budget.entries)
    warnings = allocation_warnings(totals) + reconciliation.orphan_warnings(db, budget)
    return totals, warnings


# Main budgets


def get_main_budget(db: Session, main_budget_id: uuid.UUID) -> MainBudget:
    main = MainBudgetRepository(db).get(main_budget_id)
    if main is None:
        raise NotFoundError(f"Main budget {main_budget_id} not found")
    return main


def list_main_budgets(db: Session, owner_id: str) -> List[MainBudget]:
    return MainBudgetRepository(db).list_for_owner(owner_id)


def _check_policy(policy: Optional[str]) -> Optional[str]:
    if policy is None:
        return None
    try:
        return RecalculationPolicy(policy).value
    except ValueError as e:
        raise ValidationError(f"Invalid recalculation policy: {policy!r}") from e


def _category_templates(categories: Iterable[Dict[str, Any]]) -> List[MainBudgetCategory]:
    templates = []
    seen = set()
    for category in categories:
        category_id = category.get("category_id")
        if not category_id:
            raise ValidationError("Category id is required")
        if category_id in seen:
            raise ValidationError("Duplicate categories in main budget")
        seen.add(category_id)

        default_allocation = category.get("default_allocation_cents")
        if default_allocation is not None:
            _check_cents(default_allocation, "Category allocation")
        percentage = category.get("percentage")
        if percentage is not None and not 0 <= percentage <= 100:
            raise ValidationError("Category percentage must be between 0 and 100")

        templates.append(
            MainBudgetCategory(
                category_id=category_id,
                default_allocation_cents=default_allocation,
                percentage=percentage,
            )
        )
    return templates


def create_main_budget(
    db: Session,
    owner_id: str,
    *,
    name: str,
    total_budget_cents: int,
    period_type: str = "monthly",
    anchor_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    description: Optional[str] = None,
    currency: Optional[str] = None,
    weekly_amount_cents: Optional[int] = None,
    household_id: Optional[str] = None,
    share_with_household: bool = False,
    recalculation_policy: Optional[str] = None,
    status: str = "active",
    categories: Iterable[Dict[str, Any]] = (),
    today: Optional[date] = None,
) -> MainBudget:
    """
    Create a main budget for a calendar or custom period.

    No week slots are created here; weeks materialize on demand.

    Raises:
        ValidationError: Missing name, bad period, negative amounts, bad status or policy
    """
    if not name or not name.strip():
        raise ValidationError("Budget name is required")
    if share_with_household and not household_id:
        raise ValidationError("A shared budget needs a household")
    try:
        status = MainBudgetStatus(status).value
    except ValueError as e:
        raise ValidationError(f"Invalid budget status: {status!r}") from e

    period_start, period_end = period_bounds(period_type, anchor_date or today or date.today(), start_date, end_date)
    year, month, quarter = calendar_anchors(period_start)

    main = MainBudget(
        id=uuid.uuid4(),
        owner_id=owner_id,
        household_id=household_id,
        name=name.strip(),
        description=description,
        period_type=PeriodType(period_type).value,
        period_start=period_start,
        period_end=period_end,
        period_year=year,
        period_month=month,
        period_quarter=quarter,
        total_budget_cents=_check_cents(total_budget_cents, "Total budget"),
        currency=currency or settings.currency,
        status=status,
        weekly_amount_cents=(
            _check_cents(weekly_amount_cents, "Weekly amount") if weekly_amount_cents is not None else None
        ),
        share_with_household=share_with_household,
        recalculation_policy=_check_policy(recalculation_policy),
        total_allocated_cents=0,
        total_spent_cents=0,
        weekly_average_cents=0,
    )
    main.categories.extend(_category_templates(categories))
    return MainBudgetRepository(db).add(main)


def update_main_budget(db: Session, main_budget_id: uuid.UUID, changes: Dict[str, Any]) -> MainBudget:
    """
    Update descriptive and planning fields of a main budget.

    The total can only be edited by hand while the budget is a draft;
    afterwards it follows recalculate_main_budget_total.
    """
    main = get_main_budget(db, main_budget_id)

    allowed = {
        "name",
        "description",
        "weekly_amount_cents",
        "share_with_household",
        "recalculation_policy",
        "total_budget_cents",
    }
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    if "name" in changes:
        if not changes["name"] or not changes["name"].strip():
            raise ValidationError("Budget name is required")
        main.name = changes["name"].strip()
    if "description" in changes:
        main.description = changes["description"]
    if "weekly_amount_cents" in changes:
        weekly = changes["weekly_amount_cents"]
        main.weekly_amount_cents = _check_cents(weekly, "Weekly amount") if weekly is not None else None
    if "share_with_household" in changes:
        if changes["share_with_household"] and not main.household_id:
            raise ValidationError("A shared budget needs a household")
        main.share_with_household = bool(changes["share_with_household"])
    if "recalculation_policy" in changes:
        main.recalculation_policy = _check_policy(changes["recalculation_policy"])
    if "total_budget_cents" in changes:
        if main.status != MainBudgetStatus.DRAFT.value:
            raise ValidationError("Total can only be edited while the budget is a draft")
        main.total_budget_cents = _check_cents(changes["total_budget_cents"], "Total budget")

    db.flush()
    return main


def set_main_budget_status(db: Session, main_budget_id: uuid.UUID, status: str) -> MainBudget:
    main = get_main_budget(db, main_budget_id)
    try:
        main.status = MainBudgetStatus(status).value
    except ValueError as e:
        raise ValidationError(f"Invalid budget status: {status!r}") from e
    db.flush()
    return main


def delete_main_budget(db: Session, main_budget_id: uuid.UUID) -> int:
    """
    Delete a main budget and every weekly budget materialized from it.

    Returns:
        Number of weekly budgets deleted
    """
    main = get_main_budget(db, main_budget_id)
    weeklies = WeeklyBudgetRepository(db).list_by_parent(main.id)
    for weekly in weeklies:
        delete_weekly_budget(db, weekly.id)

    MainBudgetRepository(db).delete(main)
    return len(weeklies)


def _seed_allocation(template: MainBudgetCategory, week_allocation_cents: int) -> int:
    if template.default_allocation_cents is not None:
        return template.default_allocation_cents
    if template.percentage:
        share = Decimal(str(template.percentage)) * week_allocation_cents / 100
        return int(share.to_integral_value(rounding=ROUND_FLOOR))
    return settings.default_category_allocation_cents


def materialize_week_slot(
    db: Session,
    main_budget_id: uuid.UUID,
    week_number: int,
    allocated_cents: Optional[int] = None,
    today: Optional[date] = None,
) -> Tuple[WeeklyBudget, bool]:
    """
    Get or create the weekly budget behind one week of a main budget.

    Safe under concurrent callers: the slot and the weekly budget are each
    written with a conditional insert on their unique week key, and the
    slot is linked with a compare-and-set update, so exactly one weekly
    budget ever exists per slot.

    Returns:
        (weekly budget, True if this call created it)

    Raises:
        NotFoundError: Unknown main budget, or week number outside the period
        ValidationError: The owner already has another weekly budget overlapping the week
    """
    today = today or date.today()
    main = get_main_budget(db, main_budget_id)
    plan = week_plan(main.period_start, main.period_end)
    week = find_week(main.period_start, main.period_end, week_number)

    if allocated_cents is None:
        allocated_cents = default_weekly_amount(main.total_budget_cents, len(plan), main.weekly_amount_cents)
    _check_cents(allocated_cents, "Week allocation")

    main_repo = MainBudgetRepository(db)
    weekly_repo = WeeklyBudgetRepository(db)

    main_repo.insert_slot_if_absent(
        {
            "id": uuid.uuid4(),
            "main_budget_id": main.id,
            "week_number": week.week_number,
            "weekly_budget_id": None,
            "start_date": week.start,
            "end_date": week.end,
            "allocated_cents": allocated_cents,
            "spent_cents": 0,
            "status": SlotStatus.PENDING.value,
        }
    )
    slot = main_repo.get_slot(main.id, week.week_number)

    dangling_id = None
    if slot.weekly_budget_id is not None:
        existing = weekly_repo.get(slot.weekly_budget_id)
        if existing is not None:
            record_materialization(False)
            return existing, False
        dangling_id = slot.weekly_budget_id

    clashing = [
        b
        for b in weekly_repo.list_overlapping_for_owner(main.owner_id, week.start, week.end)
        if not (b.parent_budget_id == main.id and b.week_number == week.week_number)
    ]
    if clashing:
        raise ValidationError(
            f"Weekly budget {clashing[0].id} already covers week {week.week_number} "
            f"({week.start.isoformat()} to {week.end.isoformat()}) for this owner"
        )

    new_id = uuid.uuid4()
    weekly_repo.insert_materialized_if_absent(
        {
            "id": new_id,
            "owner_id": main.owner_id,
            "household_id": main.household_id,
            "is_shared": bool(main.share_with_household and main.household_id),
            "parent_budget_id": main.id,
            "week_number": week.week_number,
            "week_start": week.start,
            "week_end": week.end,
            "total_budget_cents": slot.allocated_cents,
            "scheduled_cents": 0,
            "spent_cents": 0,
            "creation_mode": "fromMainBudget",
        }
    )
    weekly = weekly_repo.get_by_parent_week(main.id, week.week_number)
    created = weekly.id == new_id

    if created:
        for template in main.categories:
            weekly_repo.add_entry(weekly, template.category_id, _seed_allocation(template, slot.allocated_cents))
        if week.start <= today:
            reconciliation.sync_categories(db, weekly.id)

    main_repo.link_slot(slot.id, weekly.id, expected_current=dangling_id)
    db.flush()
    db.expire(slot)
    db.expire(main, ["slots"])

    record_materialization(created)
    log_materialization(str(main.id), week.week_number, str(weekly.id), created)
    return weekly, created


def update_slot_allocation(
    db: Session, main_budget_id: uuid.UUID, week_number: int, allocated_cents: int
) -> WeekSlot:
    """Set one week's allocation; a materialized week's budget total follows it"""
    main = get_main_budget(db, main_budget_id)
    week = find_week(main.period_start, main.period_end, week_number)
    _check_cents(allocated_cents, "Week allocation")

    repo = MainBudgetRepository(db)
    repo.insert_slot_if_absent(
        {
            "id": uuid.uuid4(),
            "main_budget_id": main.id,
            "week_number": week.week_number,
            "weekly_budget_id": None,
            "start_date": week.start,
            "end_date": week.end,
            "allocated_cents": allocated_cents,
            "spent_cents": 0,
            "status": SlotStatus.PENDING.value,
        }
    )
    slot = repo.get_slot(main.id, week.week_number)
    slot.allocated_cents = allocated_cents

    if slot.weekly_budget is not None:
        slot.weekly_budget.total_budget_cents = allocated_cents

    db.flush()
    db.expire(main, ["slots"])
    return slot


def recalculate_main_budget_total(db: Session, main_budget_id: uuid.UUID) -> RecalculationResult:
    """
    Recompute a main budget's total from its materialized week allocations.

    The sum only covers slots with a weekly budget and a positive
    allocation, and a zero sum never overwrites the total. Under the
    fully_planned policy the total is also left alone until every week of
    the period has been materialized.
    """
    main = get_main_budget(db, main_budget_id)
    db.expire(main, ["slots"])
    policy = RecalculationPolicy(main.recalculation_policy or settings.recalculation_policy)
    plan = week_plan(main.period_start, main.period_end)

    materialized = [slot for slot in main.slots if slot.weekly_budget is not None]
    computed = sum(slot.allocated_cents for slot in materialized if slot.allocated_cents > 0)

    applied = computed > 0
    if policy == RecalculationPolicy.FULLY_PLANNED:
        planned_numbers = {week.week_number for week in plan}
        applied = applied and planned_numbers <= {slot.week_number for slot in materialized}

    previous = main.total_budget_cents
    if applied:
        main.total_budget_cents = computed
        db.flush()

    logger.info(
        "Main budget total recalculated",
        extra={
            "main_budget_id": str(main.id),
            "policy": policy.value,
            "previous_total_cents": previous,
            "computed_total_cents": computed,
            "applied": applied,
        },
    )
    return RecalculationResult(
        previous_total_cents=previous,
        computed_total_cents=computed,
        applied=applied,
        policy=policy,
        materialized_weeks=len(materialized),
        planned_weeks=len(plan),
    )


def cleanup_future_weeks(db: Session, main_budget_id: uuid.UUID, today: Optional[date] = None) -> int:
    """
    Drop materialized weekly budgets for weeks that have not started yet.

    Returns:
        Number of weekly budgets deleted
    """
    today = today or date.today()
    main = get_main_budget(db, main_budget_id)

    future = [
        weekly for weekly in WeeklyBudgetRepository(db).list_by_parent(main.id) if weekly.week_start > today
    ]
    for weekly in future:
        delete_weekly_budget(db, weekly.id)

    db.flush()
    db.expire(main, ["slots"])
    return len(future)


def main_budget_summary(db: Session, main_budget_id: uuid.UUID, today: Optional[date] = None) -> MainBudgetSummary:
    """
    Progress of a main budget across its planned weeks.

    Weeks without a slot report the default weekly allocation. The
    projection extends the average spend of elapsed weeks over the whole
    period.
    """
    today = today or date.today()
    main = get_main_budget(db, main_budget_id)
    plan = week_plan(main.period_start, main.period_end)
    default_allocation = default_weekly_amount(main.total_budget_cents, len(plan), main.weekly_amount_cents)
    slots = {slot.week_number: slot for slot in main.slots}

    weeks = []
    categories: Dict[str, int] = defaultdict(int)
    total_allocated = 0
    materialized = 0

    for week in plan:
        slot = slots.get(week.week_number)
        weekly = slot.weekly_budget if slot is not None else None

        spent = weekly.spent_cents if weekly is not None else 0
        if weekly is not None:
            materialized += 1
            total_allocated += slot.allocated_cents
            for entry in weekly.entries:
                categories[entry.category_id] += sum_contributions(entry.snapshots)[1]

        weeks.append(
            WeekProgress(
                week_number=week.week_number,
                start=week.start,
                end=week.end,
                allocated_cents=slot.allocated_cents if slot is not None else default_allocation,
                spent_cents=spent,
                status=slot.status if slot is not None else SlotStatus.PENDING.value,
                weekly_budget_id=str(weekly.id) if weekly is not None else None,
            )
        )

    total_spent = sum(w.spent_cents for w in weeks)
    elapsed = sum(1 for w in weeks if w.start <= today)
    average = total_spent // elapsed if elapsed else 0
    projected = average * len(plan)

    return MainBudgetSummary(
        total_budget_cents=main.total_budget_cents,
        total_allocated_cents=total_allocated,
        total_spent_cents=total_spent,
        remaining_cents=main.total_budget_cents - total_spent,
        planned_weeks=len(plan),
        materialized_weeks=materialized,
        elapsed_weeks=elapsed,
        average_weekly_spend_cents=average,
        projected_spend_cents=projected,
        on_track=projected <= main.total_budget_cents,
        weeks=weeks,
        categories=dict(categories),
    )
