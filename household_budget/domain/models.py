"""Domain models - pure Python dataclasses and enums representing budgeting concepts"""

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Union


class PaymentStatus(str, enum.Enum):
    """Lifecycle of a scheduled payment"""

    PENDING = "pending"
    PAYING = "paying"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Frequency(str, enum.Enum):
    """Recurrence frequency of a payment"""

    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PeriodType(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class MainBudgetStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SlotStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class RecalculationPolicy(str, enum.Enum):
    """When recalculate-total may overwrite a main budget's total"""

    MATERIALIZED = "materialized"  # any materialized slot with a positive sum
    FULLY_PLANNED = "fully_planned"  # only once every week of the period is materialized


@dataclass(frozen=True)
class Unresolved:
    """Payer known only by a bare member identifier"""

    id: str


@dataclass(frozen=True)
class Resolved:
    """Payer matched against a household roster"""

    id: str
    name: str


PaidBy = Union[Unresolved, Resolved]


@dataclass
class HouseholdRoster:
    """Members of a household keyed by member id; the creator always counts as a member"""

    household_id: str
    created_by: Optional[str]
    members: Dict[str, str] = field(default_factory=dict)
    creator_name: Optional[str] = None


@dataclass
class PayerTotal:
    """Amount paid by one household member"""

    payer: Resolved
    amount_cents: int
    payment_count: int


@dataclass
class WeekWindow:
    """One Monday-aligned week of a budget period"""

    week_number: int
    start: date
    end: date


@dataclass
class ReconciliationWarning:
    """Non-fatal diagnostic returned alongside a successful result"""

    code: str  # allocation_exceeded | category_overscheduled | orphaned_snapshot | unresolved_link
    message: str
    category_id: Optional[str] = None
    payment_record_id: Optional[str] = None


@dataclass
class CategoryTotals:
    """Derived amounts for one ledger entry"""

    category_id: str
    allocated_cents: int
    scheduled_cents: int
    spent_cents: int
    remaining_cents: int
    percentage_used: float
    payment_count: int


@dataclass
class BudgetTotals:
    """Derived amounts for a weekly budget"""

    total_budget_cents: int
    total_allocated_cents: int
    total_scheduled_cents: int
    total_spent_cents: int
    remaining_cents: int
    categories: List[CategoryTotals] = field(default_factory=list)


@dataclass
class SyncResult:
    entries_created: int = 0
    snapshots_inserted: int = 0
    snapshots_refreshed: int = 0
    snapshots_moved: int = 0
    payments_linked: int = 0
    duplicates_removed: int = 0
    snapshots_relinked: int = 0
    payments_owned_elsewhere: int = 0
    payments_in_window: int = 0


@dataclass
class LinkRepairResult:
    fixed: int = 0
    unresolved: int = 0
    already_linked: int = 0
    records_updated: int = 0


@dataclass
class PaidByRepairResult:
    corrected: int = 0
    unresolved: int = 0


@dataclass
class PaymentDiagnostics:
    """Read-only drift report for a weekly budget"""

    week_payments: int
    represented_payments: int
    unrepresented_payments: int
    snapshots: int
    orphaned_snapshots: int
    flagged_links: int
    stale_snapshots: int
    unresolved_payers: int
    totals_drift_cents: int

    @property
    def needs_repair(self) -> bool:
        return any(
            (
                self.unrepresented_payments,
                self.orphaned_snapshots,
                self.stale_snapshots,
                self.unresolved_payers,
                self.totals_drift_cents,
            )
        )


@dataclass
class RecalculationResult:
    previous_total_cents: int
    computed_total_cents: int
    applied: bool
    policy: RecalculationPolicy
    materialized_weeks: int
    planned_weeks: int


@dataclass
class PipelineStep:
    name: str
    ok: bool
    result: Optional[object] = None
    error: Optional[str] = None


@dataclass
class WeekProgress:
    """One planned week of a main budget, materialized or not"""

    week_number: int
    start: date
    end: date
    allocated_cents: int
    spent_cents: int
    status: str
    weekly_budget_id: Optional[str] = None

    @property
    def percentage_used(self) -> float:
        if self.allocated_cents <= 0:
            return 0.0
        return round(self.spent_cents * 100 / self.allocated_cents, 2)


@dataclass
class MainBudgetSummary:
    total_budget_cents: int
    total_allocated_cents: int
    total_spent_cents: int
    remaining_cents: int
    planned_weeks: int
    materialized_weeks: int
    elapsed_weeks: int
    average_weekly_spend_cents: int
    projected_spend_cents: int
    on_track: bool
    weeks: List[WeekProgress] = field(default_factory=list)
    categories: Dict[str, int] = field(default_factory=dict)  # category_id -> spent cents
