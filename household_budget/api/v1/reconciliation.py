"""/v1/weekly-budgets/{id}/... - drift diagnostics and repair steps"""

from dataclasses import asdict
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.api.dependencies import get_household_client, get_request_id, get_session, parse_uuid
from household_budget.domain.models import PaymentDiagnostics
from household_budget.infrastructure.clients.household import HouseholdDirectoryClient
from household_budget.services import budgets, reconciliation
from household_budget.utils.money import from_cents

router = APIRouter()


def _diagnostics_out(diagnostics: PaymentDiagnostics) -> schemas.DiagnosticsResponse:
    values = asdict(diagnostics)
    drift = values.pop("totals_drift_cents")
    return schemas.DiagnosticsResponse(**values, totals_drift=from_cents(drift), needs_repair=diagnostics.needs_repair)


async def _roster_for(db: Session, budget_id, client: HouseholdDirectoryClient):
    budget = budgets.get_weekly_budget(db, budget_id)
    if not budget.household_id:
        return None
    return await client.get_roster(budget.household_id)


@router.post("/weekly-budgets/{budget_id}/sync-categories", response_model=schemas.SyncResponse)
def sync_categories(budget_id: str, request: Request, db: Session = Depends(get_session)):
    """Bring every payment due in the budget's week into its ledger"""
    budget_uuid = parse_uuid(budget_id, "budget ID")
    result = reconciliation.sync_categories(db, budget_uuid)
    db.commit()
    reconciliation.record_step("sync_categories", budget_uuid, result, get_request_id(request))
    return schemas.SyncResponse(**asdict(result))


@router.post("/weekly-budgets/{budget_id}/fix-payment-links", response_model=schemas.LinkRepairResponse)
def fix_payment_links(budget_id: str, request: Request, db: Session = Depends(get_session)):
    """Re-link snapshots whose payment record is missing; unmatched ones are flagged, never dropped"""
    budget_uuid = parse_uuid(budget_id, "budget ID")
    result = reconciliation.fix_payment_links(db, budget_uuid)
    db.commit()
    reconciliation.record_step("fix_payment_links", budget_uuid, result, get_request_id(request))
    return schemas.LinkRepairResponse(**asdict(result))


@router.post("/weekly-budgets/{budget_id}/fix-paidby", response_model=schemas.PaidByRepairResponse)
async def fix_paid_by(
    budget_id: str,
    request: Request,
    db: Session = Depends(get_session),
    client: HouseholdDirectoryClient = Depends(get_household_client),
):
    """Resolve bare payer ids on paid snapshots against the household roster"""
    budget_uuid = parse_uuid(budget_id, "budget ID")
    roster = await _roster_for(db, budget_uuid, client)
    result = reconciliation.fix_paid_by(db, budget_uuid, roster)
    db.commit()
    reconciliation.record_step("fix_paid_by", budget_uuid, result, get_request_id(request))
    return schemas.PaidByRepairResponse(**asdict(result))


@router.get("/weekly-budgets/{budget_id}/check-payments", response_model=schemas.DiagnosticsResponse)
def check_payments(budget_id: str, db: Session = Depends(get_session)):
    """Read-only drift report"""
    return _diagnostics_out(reconciliation.diagnose_payments(db, parse_uuid(budget_id, "budget ID")))


@router.post("/weekly-budgets/{budget_id}/repair", response_model=schemas.RepairResponse)
async def repair(
    budget_id: str,
    request: Request,
    db: Session = Depends(get_session),
    client: HouseholdDirectoryClient = Depends(get_household_client),
):
    """
    Run the full repair pipeline: sync -> fix links -> fix payers.

    Each step commits on its own; a failed step is reported without undoing
    the ones before it.
    """
    budget_uuid = parse_uuid(budget_id, "budget ID")
    roster = await _roster_for(db, budget_uuid, client)
    steps = reconciliation.run_repair_pipeline(db, budget_uuid, roster, get_request_id(request))

    return schemas.RepairResponse(
        budget_id=str(budget_uuid),
        steps=[
            schemas.PipelineStepSchema(
                name=step.name,
                ok=step.ok,
                result=asdict(step.result) if step.result is not None else None,
                error=step.error,
            )
            for step in steps
        ],
        diagnostics=_diagnostics_out(reconciliation.diagnose_payments(db, budget_uuid)),
    )


@router.post("/weekly-budgets/{budget_id}/recompute-totals", response_model=schemas.RecomputeResponse)
def recompute_totals(budget_id: str, db: Session = Depends(get_session)):
    budget_uuid = parse_uuid(budget_id, "budget ID")
    drift = reconciliation.recompute_budget_totals(db, budget_uuid)
    db.commit()

    budget = budgets.get_weekly_budget(db, budget_uuid)
    return schemas.RecomputeResponse(
        drift_corrected=from_cents(drift),
        total_scheduled=from_cents(budget.scheduled_cents),
        total_spent=from_cents(budget.spent_cents),
    )
