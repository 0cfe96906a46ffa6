"""ORM and domain objects -> response schemas"""

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.config import settings
from household_budget.domain.attribution import resolve, snapshot_payer
from household_budget.domain.models import HouseholdRoster, PayerTotal, Resolved, ReconciliationWarning
from household_budget.domain.periods import week_plan
from household_budget.infrastructure.database.models import MainBudget, PaymentRecord, PaymentSnapshot, WeeklyBudget
from household_budget.infrastructure.observability.metrics import record_warnings
from household_budget.services import budgets
from household_budget.utils.money import from_cents


def _str(value) -> Optional[str]:
    return str(value) if value is not None else None


def warnings_out(warnings: Iterable[ReconciliationWarning]) -> List[schemas.WarningSchema]:
    return [
        schemas.WarningSchema(
            code=w.code,
            message=w.message,
            category_id=w.category_id,
            payment_record_id=w.payment_record_id,
        )
        for w in warnings
    ]


def payment_out(record: PaymentRecord) -> schemas.PaymentResponse:
    return schemas.PaymentResponse(
        id=str(record.id),
        owner_id=record.owner_id,
        household_id=record.household_id,
        name=record.name,
        amount=from_cents(record.amount_cents),
        category_id=record.category_id,
        kind=record.kind,
        due_date=record.due_date,
        frequency=record.frequency,
        status=record.status,
        paid_date=record.paid_date,
        paid_by=record.paid_by,
        notes=record.notes,
        is_recurring=record.is_recurring,
        recurring_end_date=record.recurring_end_date,
        weekly_budget_id=_str(record.weekly_budget_id),
        scheduled_from_budget_id=_str(record.scheduled_from_budget_id),
    )


def snapshot_out(snapshot: PaymentSnapshot, roster: Optional[HouseholdRoster] = None) -> schemas.SnapshotSchema:
    """With a roster, unresolved payers are resolved for display (falling back to the placeholder)"""
    payer = snapshot_payer(snapshot)
    if payer is not None and roster is not None:
        payer = resolve(roster, payer)

    paid_by = None
    if payer is not None:
        resolved = isinstance(payer, Resolved)
        paid_by = schemas.PaidBySchema(id=payer.id, name=payer.name if resolved else None, resolved=resolved)

    return schemas.SnapshotSchema(
        id=str(snapshot.id),
        payment_record_id=_str(snapshot.payment_record_id),
        name=snapshot.name,
        amount=from_cents(snapshot.amount_cents),
        scheduled_date=snapshot.scheduled_date,
        status=snapshot.status,
        paid_date=snapshot.paid_date,
        paid_by=paid_by,
        link_unresolved=snapshot.link_unresolved,
    )


def weekly_budget_out(
    db: Session,
    budget: WeeklyBudget,
    roster: Optional[HouseholdRoster] = None,
    extra_warnings: Iterable[ReconciliationWarning] = (),
) -> schemas.WeeklyBudgetResponse:
    totals, warnings = budgets.budget_view(db, budget)
    warnings = list(extra_warnings) + warnings
    record_warnings(warnings)
    by_category = {c.category_id: c for c in totals.categories}

    categories = []
    for entry in budget.entries:
        category = by_category[entry.category_id]
        categories.append(
            schemas.CategoryEntrySchema(
                category_id=entry.category_id,
                allocated=from_cents(category.allocated_cents),
                scheduled=from_cents(category.scheduled_cents),
                spent=from_cents(category.spent_cents),
                remaining=from_cents(category.remaining_cents),
                percentage_used=category.percentage_used,
                payments=[snapshot_out(s, roster) for s in entry.snapshots],
            )
        )

    return schemas.WeeklyBudgetResponse(
        id=str(budget.id),
        owner_id=budget.owner_id,
        household_id=budget.household_id,
        is_shared=budget.is_shared,
        parent_budget_id=_str(budget.parent_budget_id),
        week_number=budget.week_number,
        week_start=budget.week_start,
        week_end=budget.week_end,
        creation_mode=budget.creation_mode,
        total_budget=from_cents(totals.total_budget_cents),
        total_allocated=from_cents(totals.total_allocated_cents),
        total_scheduled=from_cents(totals.total_scheduled_cents),
        total_spent=from_cents(totals.total_spent_cents),
        remaining=from_cents(totals.remaining_cents),
        categories=categories,
        warnings=warnings_out(warnings),
    )


def payer_totals_out(totals: Iterable[PayerTotal]) -> List[schemas.PayerTotalSchema]:
    return [
        schemas.PayerTotalSchema(
            member_id=t.payer.id,
            name=t.payer.name,
            amount=from_cents(t.amount_cents),
            payment_count=t.payment_count,
        )
        for t in totals
    ]


def main_budget_out(main: MainBudget) -> schemas.MainBudgetResponse:
    return schemas.MainBudgetResponse(
        id=str(main.id),
        owner_id=main.owner_id,
        household_id=main.household_id,
        name=main.name,
        description=main.description,
        period_type=main.period_type,
        period_start=main.period_start,
        period_end=main.period_end,
        period_year=main.period_year,
        period_month=main.period_month,
        period_quarter=main.period_quarter,
        total_budget=from_cents(main.total_budget_cents),
        currency=main.currency,
        status=main.status,
        weekly_amount=from_cents(main.weekly_amount_cents) if main.weekly_amount_cents is not None else None,
        share_with_household=main.share_with_household,
        recalculation_policy=main.recalculation_policy or settings.recalculation_policy,
        total_allocated=from_cents(main.total_allocated_cents),
        total_spent=from_cents(main.total_spent_cents),
        weekly_average=from_cents(main.weekly_average_cents),
        planned_weeks=len(week_plan(main.period_start, main.period_end)),
        slots=[
            schemas.WeekSlotSchema(
                week_number=slot.week_number,
                start_date=slot.start_date,
                end_date=slot.end_date,
                allocated=from_cents(slot.allocated_cents),
                spent=from_cents(slot.spent_cents),
                status=slot.status,
                weekly_budget_id=_str(slot.weekly_budget_id),
            )
            for slot in main.slots
        ],
    )
