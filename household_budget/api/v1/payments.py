"""/v1/payments - canonical payment records"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.api.v1.serializers import payment_out
from household_budget.api.dependencies import get_acting_user, get_session, parse_uuid
from household_budget.domain.attribution import paid_by_from_raw
from household_budget.services import payments, reconciliation
from household_budget.utils.money import to_cents

router = APIRouter()


@router.post("/payments", response_model=schemas.PaymentResponse, status_code=201)
def create_payment(
    body: schemas.PaymentCreateRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    record = payments.create_payment(
        db,
        acting_user,
        name=body.name,
        amount_cents=to_cents(body.amount),
        category_id=body.category_id,
        due_date=body.due_date,
        frequency=body.frequency,
        kind=body.kind,
        notes=body.notes,
        is_recurring=body.is_recurring,
        recurring_end_date=body.recurring_end_date,
        household_id=body.household_id,
    )
    db.commit()
    return payment_out(record)


@router.get("/payments", response_model=schemas.PaymentListResponse)
def list_payments(
    start: date = Query(..., description="First due date, inclusive"),
    end: date = Query(..., description="Last due date, inclusive"),
    household_id: str | None = Query(None, description="Also include this household's payments"),
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    records = payments.list_by_date_range(db, start, end, owner_id=acting_user, household_id=household_id)
    return schemas.PaymentListResponse(start=start, end=end, payments=[payment_out(r) for r in records])


@router.post("/payments/flag-overdue", response_model=schemas.FlagOverdueResponse)
def flag_overdue(db: Session = Depends(get_session)):
    """Move every pending payment past its due date to overdue"""
    flagged = payments.flag_overdue(db)
    for record in flagged:
        reconciliation.refresh_snapshots(db, record)
    db.commit()
    return schemas.FlagOverdueResponse(flagged=len(flagged), payment_ids=[str(r.id) for r in flagged])


@router.get("/payments/{payment_id}", response_model=schemas.PaymentResponse)
def get_payment(payment_id: str, db: Session = Depends(get_session)):
    return payment_out(payments.get_payment(db, parse_uuid(payment_id, "payment ID")))


@router.patch("/payments/{payment_id}", response_model=schemas.PaymentResponse)
def update_payment(
    payment_id: str,
    body: schemas.PaymentUpdateRequest,
    db: Session = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    if "amount" in changes:
        changes["amount_cents"] = to_cents(changes.pop("amount"))

    record = payments.update_payment(db, parse_uuid(payment_id, "payment ID"), changes)
    reconciliation.refresh_snapshots(db, record)
    db.commit()
    return payment_out(record)


@router.post("/payments/{payment_id}/status", response_model=schemas.StatusChangeResponse)
def change_status(
    payment_id: str,
    body: schemas.StatusChangeRequest,
    db: Session = Depends(get_session),
    acting_user: str = Depends(get_acting_user),
):
    payer = paid_by_from_raw(body.paid_by)
    record, next_record = payments.set_status(
        db,
        parse_uuid(payment_id, "payment ID"),
        body.status,
        acting_user,
        paid_by=payer.id if payer is not None else None,
    )
    reconciliation.refresh_snapshots(db, record, payer)
    db.commit()
    return schemas.StatusChangeResponse(
        payment=payment_out(record),
        next_occurrence=payment_out(next_record) if next_record is not None else None,
    )


@router.delete("/payments/{payment_id}", response_model=schemas.DeletePaymentResponse)
def delete_payment(
    payment_id: str,
    force: bool = Query(False, description="Also remove budget snapshots referencing the payment"),
    db: Session = Depends(get_session),
):
    removed = payments.delete_payment(db, parse_uuid(payment_id, "payment ID"), force=force)
    db.commit()
    return schemas.DeletePaymentResponse(deleted=True, snapshots_removed=removed)
