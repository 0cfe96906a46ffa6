"""/v1/weekly-budgets - weekly budget aggregate, categories and budget-scoped payments"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.api.v1.serializers import payment_out, snapshot_out, warnings_out, weekly_budget_out
from household_budget.api.dependencies import get_acting_user, get_session, parse_uuid
from household_budget.services import budgets
from household_budget.utils.money import to_cents

router = APIRouter()


@router.post("/weekly-budgets", response_model=schemas.WeeklyBudgetResponse, status_code=201)
def create_weekly_budget(
    body: schemas.WeeklyBudgetCreateRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    budget = budgets.create_weekly_budget(
        db,
        acting_user,
        week_start=body.week_start,
        total_budget_cents=to_cents(body.total_budget),
        categories=[(c.category_id, to_cents(c.allocation)) for c in body.categories],
        household_id=body.household_id,
        is_shared=body.is_shared,
    )
    db.commit()
    return weekly_budget_out(db, budget)


@router.get("/weekly-budgets/{budget_id}", response_model=schemas.WeeklyBudgetResponse)
def get_weekly_budget(budget_id: str, db: Session = Depends(get_session)):
    budget = budgets.get_weekly_budget(db, parse_uuid(budget_id, "budget ID"))
    return weekly_budget_out(db, budget)


@router.patch("/weekly-budgets/{budget_id}", response_model=schemas.WeeklyBudgetResponse)
def update_weekly_budget(
    budget_id: str,
    body: schemas.WeeklyBudgetUpdateRequest,
    db: Session = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    if "total_budget" in changes:
        changes["total_budget_cents"] = to_cents(changes.pop("total_budget"))

    budget = budgets.update_weekly_budget(db, parse_uuid(budget_id, "budget ID"), changes)
    db.commit()
    return weekly_budget_out(db, budget)


@router.delete("/weekly-budgets/{budget_id}", response_model=schemas.RemovalResponse)
def delete_weekly_budget(budget_id: str, db: Session = Depends(get_session)):
    deleted = budgets.delete_weekly_budget(db, parse_uuid(budget_id, "budget ID"))
    db.commit()
    return schemas.RemovalResponse(removed=True, records_deleted=deleted)


@router.put("/weekly-budgets/{budget_id}/categories/{category_id}", response_model=schemas.WeeklyBudgetResponse)
def upsert_category(
    budget_id: str,
    category_id: str,
    body: schemas.CategoryUpsertRequest,
    db: Session = Depends(get_session),
):
    budget_uuid = parse_uuid(budget_id, "budget ID")
    budgets.upsert_category(db, budget_uuid, category_id, to_cents(body.allocation))
    db.commit()
    return weekly_budget_out(db, budgets.get_weekly_budget(db, budget_uuid))


@router.delete("/weekly-budgets/{budget_id}/categories/{category_id}", response_model=schemas.RemovalResponse)
def remove_category(budget_id: str, category_id: str, db: Session = Depends(get_session)):
    deleted = budgets.remove_category(db, parse_uuid(budget_id, "budget ID"), category_id)
    db.commit()
    return schemas.RemovalResponse(removed=True, records_deleted=deleted)


@router.post(
    "/weekly-budgets/{budget_id}/categories/{category_id}/payments",
    response_model=schemas.BudgetPaymentResponse,
    status_code=201,
)
def add_payment(
    budget_id: str,
    category_id: str,
    body: schemas.BudgetPaymentCreateRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    """
    Schedule a payment from inside a budget category.

    Returns:
        The new snapshot; exceeding the category allocation is reported under warnings
    """
    record, snapshot, warnings = budgets.add_payment_to_category(
        db,
        parse_uuid(budget_id, "budget ID"),
        category_id,
        acting_user,
        name=body.name,
        amount_cents=to_cents(body.amount),
        scheduled_date=body.scheduled_date,
        frequency=body.frequency,
        notes=body.notes,
        is_recurring=body.is_recurring,
        recurring_end_date=body.recurring_end_date,
    )
    db.commit()
    return schemas.BudgetPaymentResponse(
        payment=snapshot_out(snapshot),
        payment_record_id=str(record.id),
        warnings=warnings_out(warnings),
    )


@router.delete(
    "/weekly-budgets/{budget_id}/categories/{category_id}/payments/{payment_id}",
    response_model=schemas.RemovalResponse,
)
def remove_payment(budget_id: str, category_id: str, payment_id: str, db: Session = Depends(get_session)):
    record_deleted = budgets.remove_payment(
        db, parse_uuid(budget_id, "budget ID"), category_id, parse_uuid(payment_id, "payment ID")
    )
    db.commit()
    return schemas.RemovalResponse(removed=True, records_deleted=1 if record_deleted else 0)


@router.patch("/weekly-budgets/{budget_id}/payments/{payment_id}", response_model=schemas.BudgetPaymentResponse)
def update_payment(
    budget_id: str,
    payment_id: str,
    body: schemas.BudgetPaymentUpdateRequest,
    db: Session = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    if "amount" in changes:
        changes["amount_cents"] = to_cents(changes.pop("amount"))

    snapshot = budgets.update_budget_payment(
        db, parse_uuid(budget_id, "budget ID"), parse_uuid(payment_id, "payment ID"), changes
    )
    db.commit()
    return schemas.BudgetPaymentResponse(
        payment=snapshot_out(snapshot),
        payment_record_id=str(snapshot.payment_record_id) if snapshot.payment_record_id else None,
    )


@router.patch(
    "/weekly-budgets/{budget_id}/payments/{payment_id}/status",
    response_model=schemas.BudgetPaymentResponse,
)
def change_payment_status(
    budget_id: str,
    payment_id: str,
    body: schemas.StatusChangeRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    snapshot, next_record = budgets.set_budget_payment_status(
        db,
        parse_uuid(budget_id, "budget ID"),
        parse_uuid(payment_id, "payment ID"),
        body.status,
        acting_user,
        paid_by=body.paid_by,
    )
    db.commit()
    return schemas.BudgetPaymentResponse(
        payment=snapshot_out(snapshot),
        payment_record_id=str(snapshot.payment_record_id) if snapshot.payment_record_id else None,
        next_occurrence=payment_out(next_record) if next_record is not None else None,
    )
