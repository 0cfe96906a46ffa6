"""Weekly budget arithmetic - scheduled, spent and remaining amounts, soft allocation checks"""

from typing import Iterable, List, Tuple

from household_budget.domain.models import (
    BudgetTotals,
    CategoryTotals,
    PaymentStatus,
    ReconciliationWarning,
)
from household_budget.domain.status import counts_toward_totals


def snapshot_contribution(amount_cents: int, status: str) -> Tuple[int, int]:
    """
    (scheduled, spent) contribution of one payment snapshot.

    Cancelled payments contribute nothing; paid payments count as both
    scheduled and spent.
    """
    if not counts_toward_totals(status):
        return 0, 0
    if status == PaymentStatus.PAID.value:
        return amount_cents, amount_cents
    return amount_cents, 0


def sum_contributions(snapshots: Iterable) -> Tuple[int, int]:
    scheduled = 0
    spent = 0
    for snapshot in snapshots:
        snap_scheduled, snap_spent = snapshot_contribution(snapshot.amount_cents, snapshot.status)
        scheduled += snap_scheduled
        spent += snap_spent
    return scheduled, spent


def category_totals(category_id: str, allocation_cents: int, snapshots: Iterable) -> CategoryTotals:
    snapshots = list(snapshots)
    scheduled, spent = sum_contributions(snapshots)
    percentage_used = round(spent * 100 / allocation_cents, 2) if allocation_cents > 0 else 0.0

    return CategoryTotals(
        category_id=category_id,
        allocated_cents=allocation_cents,
        scheduled_cents=scheduled,
        spent_cents=spent,
        remaining_cents=allocation_cents - spent,
        percentage_used=percentage_used,
        payment_count=len(snapshots),
    )


def budget_totals(total_budget_cents: int, entries: Iterable) -> BudgetTotals:
    """
    Recompute a weekly budget's totals from scratch.

    entries are ledger entries exposing category_id, allocation_cents and
    snapshots.
    """
    categories = [
        category_totals(entry.category_id, entry.allocation_cents, entry.snapshots)
        for entry in entries
    ]
    total_spent = sum(c.spent_cents for c in categories)

    return BudgetTotals(
        total_budget_cents=total_budget_cents,
        total_allocated_cents=sum(c.allocated_cents for c in categories),
        total_scheduled_cents=sum(c.scheduled_cents for c in categories),
        total_spent_cents=total_spent,
        remaining_cents=total_budget_cents - total_spent,
        categories=categories,
    )


def allocation_warnings(totals: BudgetTotals) -> List[ReconciliationWarning]:
    """
    Soft invariant checks: allocations within the budget, schedules within allocations.

    A category with a zero allocation is unplanned and never warns.
    """
    warnings = []

    if totals.total_allocated_cents > totals.total_budget_cents:
        warnings.append(
            ReconciliationWarning(
                code="allocation_exceeded",
                message=(
                    f"Allocated {totals.total_allocated_cents} exceeds budget "
                    f"{totals.total_budget_cents}"
                ),
            )
        )

    for category in totals.categories:
        if category.allocated_cents > 0 and category.scheduled_cents > category.allocated_cents:
            warnings.append(
                ReconciliationWarning(
                    code="category_overscheduled",
                    message=(
                        f"Scheduled {category.scheduled_cents} exceeds allocation "
                        f"{category.allocated_cents}"
                    ),
                    category_id=category.category_id,
                )
            )

    return warnings


def would_exceed_allocation(allocation_cents: int, scheduled_cents: int, new_amount_cents: int) -> bool:
    return allocation_cents > 0 and scheduled_cents + new_amount_cents > allocation_cents
