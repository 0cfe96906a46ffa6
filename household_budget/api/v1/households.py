"""GET /v1/households/{household_id}/weekly-budgets - shared budgets with resolved payers"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from household_budget.api.v1 import schemas
from household_budget.api.v1.serializers import payer_totals_out, weekly_budget_out
from household_budget.api.dependencies import get_household_client, get_session
from household_budget.domain.attribution import sum_by_payer
from household_budget.infrastructure.clients.household import HouseholdDirectoryClient
from household_budget.infrastructure.database.repositories import WeeklyBudgetRepository
from household_budget.services import ledger

router = APIRouter()


@router.get("/households/{household_id}/weekly-budgets", response_model=schemas.HouseholdBudgetsResponse)
async def list_household_budgets(
    household_id: str,
    db: Session = Depends(get_session),
    client: HouseholdDirectoryClient = Depends(get_household_client),
):
    """
    Shared weekly budgets of a household, newest week first.

    Payers are resolved against the household roster for display; unknown
    members show as the placeholder user.
    """
    roster = await client.get_roster(household_id)
    shared = WeeklyBudgetRepository(db).list_shared_for_household(household_id)

    return schemas.HouseholdBudgetsResponse(
        household_id=household_id,
        budgets=[
            schemas.HouseholdWeeklyBudget(
                budget=weekly_budget_out(db, budget, roster),
                payers=payer_totals_out(sum_by_payer((s for _, s in ledger.iter_snapshots(budget)), roster)),
            )
            for budget in shared
        ],
    )
