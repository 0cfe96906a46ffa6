"""Pydantic schemas for API request/response validation

Amounts travel as decimal numbers in the budget currency (strings with
"," or "." separators are accepted on input) and are converted to integer
cents at the router boundary.
"""

from pydantic import BaseModel, Field
from datetime import date
from typing import Any, Dict, List, Optional, Union

Amount = Union[int, float, str]


class WarningSchema(BaseModel):
    """Soft invariant violation reported alongside a successful result"""

    code: str
    message: str
    category_id: Optional[str] = None
    payment_record_id: Optional[str] = None


class PaidBySchema(BaseModel):
    id: str
    name: Optional[str] = None
    resolved: bool


# Payments


class PaymentCreateRequest(BaseModel):
    """Request body for POST /v1/payments"""

    name: str = Field(..., min_length=1)
    amount: Amount
    category_id: str = Field(..., min_length=1)
    due_date: date
    frequency: str = "once"
    kind: str = "expense"
    notes: Optional[str] = None
    is_recurring: bool = False
    recurring_end_date: Optional[date] = None
    household_id: Optional[str] = None


class PaymentUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied"""

    name: Optional[str] = None
    amount: Optional[Amount] = None
    category_id: Optional[str] = None
    due_date: Optional[date] = None
    frequency: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: Optional[bool] = None
    recurring_end_date: Optional[date] = None


class StatusChangeRequest(BaseModel):
    status: str
    # Bare member id or embedded {"_id", "name"} document
    paid_by: Optional[Union[str, Dict[str, Any]]] = None


class PaymentResponse(BaseModel):
    id: str
    owner_id: str
    household_id: Optional[str] = None
    name: str
    amount: float
    category_id: str
    kind: str
    due_date: date
    frequency: str
    status: str
    paid_date: Optional[date] = None
    paid_by: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: bool
    recurring_end_date: Optional[date] = None
    weekly_budget_id: Optional[str] = None
    scheduled_from_budget_id: Optional[str] = None


class StatusChangeResponse(BaseModel):
    payment: PaymentResponse
    next_occurrence: Optional[PaymentResponse] = None


class PaymentListResponse(BaseModel):
    start: date
    end: date
    payments: List[PaymentResponse]


class FlagOverdueResponse(BaseModel):
    flagged: int
    payment_ids: List[str]


class DeletePaymentResponse(BaseModel):
    deleted: bool
    snapshots_removed: int


# Weekly budgets


class CategoryAllocation(BaseModel):
    category_id: str = Field(..., min_length=1)
    allocation: Amount = 0


class WeeklyBudgetCreateRequest(BaseModel):
    """Request body for POST /v1/weekly-budgets"""

    week_start: date
    total_budget: Amount
    categories: List[CategoryAllocation] = []
    household_id: Optional[str] = None
    is_shared: bool = False


class WeeklyBudgetUpdateRequest(BaseModel):
    total_budget: Optional[Amount] = None
    is_shared: Optional[bool] = None
    household_id: Optional[str] = None


class CategoryUpsertRequest(BaseModel):
    allocation: Amount


class BudgetPaymentCreateRequest(BaseModel):
    """Request body for POST /v1/weekly-budgets/{id}/categories/{category_id}/payments"""

    name: str = Field(..., min_length=1)
    amount: Amount
    scheduled_date: date
    frequency: str = "once"
    notes: Optional[str] = None
    is_recurring: bool = False
    recurring_end_date: Optional[date] = None


class BudgetPaymentUpdateRequest(BaseModel):
    name: Optional[str] = None
    amount: Optional[Amount] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class SnapshotSchema(BaseModel):
    id: str
    payment_record_id: Optional[str] = None
    name: str
    amount: float
    scheduled_date: date
    status: str
    paid_date: Optional[date] = None
    paid_by: Optional[PaidBySchema] = None
    link_unresolved: bool


class CategoryEntrySchema(BaseModel):
    category_id: str
    allocated: float
    scheduled: float
    spent: float
    remaining: float
    percentage_used: float
    payments: List[SnapshotSchema]


class WeeklyBudgetResponse(BaseModel):
    id: str
    owner_id: str
    household_id: Optional[str] = None
    is_shared: bool
    parent_budget_id: Optional[str] = None
    week_number: Optional[int] = None
    week_start: date
    week_end: date
    creation_mode: str
    total_budget: float
    total_allocated: float
    total_scheduled: float
    total_spent: float
    remaining: float
    categories: List[CategoryEntrySchema]
    warnings: List[WarningSchema] = []


class BudgetPaymentResponse(BaseModel):
    payment: SnapshotSchema
    payment_record_id: Optional[str] = None
    next_occurrence: Optional[PaymentResponse] = None
    warnings: List[WarningSchema] = []


class RemovalResponse(BaseModel):
    removed: bool
    records_deleted: int


# Reconciliation


class SyncResponse(BaseModel):
    entries_created: int
    snapshots_inserted: int
    snapshots_refreshed: int
    snapshots_moved: int
    payments_linked: int
    duplicates_removed: int
    snapshots_relinked: int
    payments_owned_elsewhere: int
    payments_in_window: int


class LinkRepairResponse(BaseModel):
    fixed: int
    unresolved: int
    already_linked: int
    records_updated: int


class PaidByRepairResponse(BaseModel):
    corrected: int
    unresolved: int


class DiagnosticsResponse(BaseModel):
    week_payments: int
    represented_payments: int
    unrepresented_payments: int
    snapshots: int
    orphaned_snapshots: int
    flagged_links: int
    stale_snapshots: int
    unresolved_payers: int
    totals_drift: float
    needs_repair: bool


class PipelineStepSchema(BaseModel):
    name: str
    ok: bool
    result: Optional[Dict[str, int]] = None
    error: Optional[str] = None


class RepairResponse(BaseModel):
    budget_id: str
    steps: List[PipelineStepSchema]
    diagnostics: DiagnosticsResponse


class RecomputeResponse(BaseModel):
    drift_corrected: float
    total_scheduled: float
    total_spent: float


# Main budgets


class MainBudgetCategorySchema(BaseModel):
    category_id: str = Field(..., min_length=1)
    default_allocation: Optional[Amount] = None
    percentage: Optional[float] = None


class MainBudgetCreateRequest(BaseModel):
    """Request body for POST /v1/main-budgets"""

    name: str = Field(..., min_length=1)
    total_budget: Amount
    period_type: str = "monthly"
    anchor_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    weekly_amount: Optional[Amount] = None
    household_id: Optional[str] = None
    share_with_household: bool = False
    recalculation_policy: Optional[str] = None
    status: str = "active"
    categories: List[MainBudgetCategorySchema] = []


class MainBudgetUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    weekly_amount: Optional[Amount] = None
    share_with_household: Optional[bool] = None
    recalculation_policy: Optional[str] = None
    total_budget: Optional[Amount] = None


class MainBudgetStatusRequest(BaseModel):
    status: str


class MaterializeRequest(BaseModel):
    allocated: Optional[Amount] = None


class SlotAllocationRequest(BaseModel):
    allocated: Amount


class WeekSlotSchema(BaseModel):
    week_number: int
    start_date: date
    end_date: date
    allocated: float
    spent: float
    status: str
    weekly_budget_id: Optional[str] = None


class MainBudgetResponse(BaseModel):
    id: str
    owner_id: str
    household_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    period_type: str
    period_start: date
    period_end: date
    period_year: Optional[int] = None
    period_month: Optional[int] = None
    period_quarter: Optional[int] = None
    total_budget: float
    currency: str
    status: str
    weekly_amount: Optional[float] = None
    share_with_household: bool
    recalculation_policy: str
    total_allocated: float
    total_spent: float
    weekly_average: float
    planned_weeks: int
    slots: List[WeekSlotSchema]


class MaterializeResponse(BaseModel):
    created: bool
    weekly_budget: WeeklyBudgetResponse


class RecalculationResponse(BaseModel):
    previous_total: float
    computed_total: float
    applied: bool
    policy: str
    materialized_weeks: int
    planned_weeks: int


class WeekProgressSchema(BaseModel):
    week_number: int
    start: date
    end: date
    allocated: float
    spent: float
    percentage_used: float
    status: str
    weekly_budget_id: Optional[str] = None


class MainBudgetSummaryResponse(BaseModel):
    main_budget_id: str
    total_budget: float
    total_allocated: float
    total_spent: float
    remaining: float
    planned_weeks: int
    materialized_weeks: int
    elapsed_weeks: int
    average_weekly_spend: float
    projected_spend: float
    on_track: bool
    weeks: List[WeekProgressSchema]
    category_spending: Dict[str, float]


class CleanupResponse(BaseModel):
    weekly_budgets_deleted: int


class DeleteMainBudgetResponse(BaseModel):
    deleted: bool
    weekly_budgets_deleted: int


# Households


class PayerTotalSchema(BaseModel):
    member_id: str
    name: str
    amount: float
    payment_count: int


class HouseholdWeeklyBudget(BaseModel):
    budget: WeeklyBudgetResponse
    payers: List[PayerTotalSchema]


class HouseholdBudgetsResponse(BaseModel):
    household_id: str
    budgets: List[HouseholdWeeklyBudget]
