"""/v1/main-budgets - period budgets and their lazily materialized weeks"""

from datetime import date
from typing import List
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.api.v1.serializers import main_budget_out, weekly_budget_out
from household_budget.api.dependencies import get_acting_user, get_session, parse_uuid
from household_budget.services import budgets, reconciliation
from household_budget.utils.money import from_cents, to_cents

router = APIRouter()


@router.post("/main-budgets", response_model=schemas.MainBudgetResponse, status_code=201)
def create_main_budget(
    body: schemas.MainBudgetCreateRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    main = budgets.create_main_budget(
        db,
        acting_user,
        name=body.name,
        total_budget_cents=to_cents(body.total_budget),
        period_type=body.period_type,
        anchor_date=body.anchor_date,
        start_date=body.start_date,
        end_date=body.end_date,
        description=body.description,
        currency=body.currency,
        weekly_amount_cents=to_cents(body.weekly_amount) if body.weekly_amount is not None else None,
        household_id=body.household_id,
        share_with_household=body.share_with_household,
        recalculation_policy=body.recalculation_policy,
        status=body.status,
        categories=[
            {
                "category_id": c.category_id,
                "default_allocation_cents": (
                    to_cents(c.default_allocation) if c.default_allocation is not None else None
                ),
                "percentage": c.percentage,
            }
            for c in body.categories
        ],
    )
    db.commit()
    return main_budget_out(main)


@router.get("/main-budgets", response_model=List[schemas.MainBudgetResponse])
def list_main_budgets(db: Session = Depends(get_session), acting_user: str = Depends(get_acting_user)):
    return [main_budget_out(main) for main in budgets.list_main_budgets(db, acting_user)]


@router.get("/main-budgets/{main_budget_id}", response_model=schemas.MainBudgetResponse)
def get_main_budget(main_budget_id: str, db: Session = Depends(get_session)):
    return main_budget_out(budgets.get_main_budget(db, parse_uuid(main_budget_id, "budget ID")))


@router.patch("/main-budgets/{main_budget_id}", response_model=schemas.MainBudgetResponse)
def update_main_budget(
    main_budget_id: str,
    body: schemas.MainBudgetUpdateRequest,
    db: Session = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    if "total_budget" in changes:
        changes["total_budget_cents"] = to_cents(changes.pop("total_budget"))
    if "weekly_amount" in changes:
        weekly = changes.pop("weekly_amount")
        changes["weekly_amount_cents"] = to_cents(weekly) if weekly is not None else None

    main = budgets.update_main_budget(db, parse_uuid(main_budget_id, "budget ID"), changes)
    db.commit()
    return main_budget_out(main)


@router.patch("/main-budgets/{main_budget_id}/status", response_model=schemas.MainBudgetResponse)
def set_status(
    main_budget_id: str,
    body: schemas.MainBudgetStatusRequest,
    db: Session = Depends(get_session),
):
    main = budgets.set_main_budget_status(db, parse_uuid(main_budget_id, "budget ID"), body.status)
    db.commit()
    return main_budget_out(main)


@router.delete("/main-budgets/{main_budget_id}", response_model=schemas.DeleteMainBudgetResponse)
def delete_main_budget(main_budget_id: str, db: Session = Depends(get_session)):
    deleted = budgets.delete_main_budget(db, parse_uuid(main_budget_id, "budget ID"))
    db.commit()
    return schemas.DeleteMainBudgetResponse(deleted=True, weekly_budgets_deleted=deleted)


@router.post("/main-budgets/{main_budget_id}/weekly/{week_number}", response_model=schemas.MaterializeResponse)
def materialize_week(
    main_budget_id: str,
    week_number: int,
    response: Response,
    body: schemas.MaterializeRequest | None = None,
    db: Session = Depends(get_session),
):
    """
    Get or create the weekly budget for one week of the period.

    Returns 201 when this call created it, 200 when it already existed.
    """
    allocated = body.allocated if body is not None else None
    weekly, created = budgets.materialize_week_slot(
        db,
        parse_uuid(main_budget_id, "budget ID"),
        week_number,
        allocated_cents=to_cents(allocated) if allocated is not None else None,
    )
    db.commit()

    response.status_code = 201 if created else 200
    return schemas.MaterializeResponse(created=created, weekly_budget=weekly_budget_out(db, weekly))


@router.put(
    "/main-budgets/{main_budget_id}/weekly/{week_number}/allocation",
    response_model=schemas.MainBudgetResponse,
)
def update_slot_allocation(
    main_budget_id: str,
    week_number: int,
    body: schemas.SlotAllocationRequest,
    db: Session = Depends(get_session),
):
    main_uuid = parse_uuid(main_budget_id, "budget ID")
    budgets.update_slot_allocation(db, main_uuid, week_number, to_cents(body.allocated))
    db.commit()
    return main_budget_out(budgets.get_main_budget(db, main_uuid))


@router.post("/main-budgets/{main_budget_id}/recalculate-total", response_model=schemas.RecalculationResponse)
def recalculate_total(main_budget_id: str, db: Session = Depends(get_session)):
    """Recompute the total from materialized week allocations under the budget's policy"""
    result = budgets.recalculate_main_budget_total(db, parse_uuid(main_budget_id, "budget ID"))
    db.commit()
    return schemas.RecalculationResponse(
        previous_total=from_cents(result.previous_total_cents),
        computed_total=from_cents(result.computed_total_cents),
        applied=result.applied,
        policy=result.policy.value,
        materialized_weeks=result.materialized_weeks,
        planned_weeks=result.planned_weeks,
    )


@router.get("/main-budgets/{main_budget_id}/summary", response_model=schemas.MainBudgetSummaryResponse)
def get_summary(
    main_budget_id: str,
    today: date | None = Query(None, description="Reference date for progress, defaults to today"),
    db: Session = Depends(get_session),
):
    main_uuid = parse_uuid(main_budget_id, "budget ID")
    reconciliation.propagate_to_main_budget(db, main_uuid, today)
    db.commit()
    summary = budgets.main_budget_summary(db, main_uuid, today)

    return schemas.MainBudgetSummaryResponse(
        main_budget_id=str(main_uuid),
        total_budget=from_cents(summary.total_budget_cents),
        total_allocated=from_cents(summary.total_allocated_cents),
        total_spent=from_cents(summary.total_spent_cents),
        remaining=from_cents(summary.remaining_cents),
        planned_weeks=summary.planned_weeks,
        materialized_weeks=summary.materialized_weeks,
        elapsed_weeks=summary.elapsed_weeks,
        average_weekly_spend=from_cents(summary.average_weekly_spend_cents),
        projected_spend=from_cents(summary.projected_spend_cents),
        on_track=summary.on_track,
        weeks=[
            schemas.WeekProgressSchema(
                week_number=w.week_number,
                start=w.start,
                end=w.end,
                allocated=from_cents(w.allocated_cents),
                spent=from_cents(w.spent_cents),
                percentage_used=w.percentage_used,
                status=w.status,
                weekly_budget_id=w.weekly_budget_id,
            )
            for w in summary.weeks
        ],
        category_spending={category_id: from_cents(cents) for category_id, cents in summary.categories.items()},
    )


@router.post("/main-budgets/{main_budget_id}/cleanup-future-weeks", response_model=schemas.CleanupResponse)
def cleanup_future_weeks(main_budget_id: str, db: Session = Depends(get_session)):
    deleted = budgets.cleanup_future_weeks(db, parse_uuid(main_budget_id, "budget ID"))
    db.commit()
    return schemas.CleanupResponse(weekly_budgets_deleted=deleted)
