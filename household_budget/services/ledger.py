"""Category ledger bookkeeping - snapshot copies of payment records and incremental budget totals"""

import uuid
from typing import Optional, Tuple

from household_budget.domain.exceptions import NotFoundError
from household_budget.domain.totals import snapshot_contribution
from household_budget.infrastructure.database.models import (
    CategoryLedgerEntry,
    PaymentRecord,
    PaymentSnapshot,
    WeeklyBudget,
)


def adjust_budget_totals(budget: WeeklyBudget, before: Tuple[int, int], after: Tuple[int, int]) -> None:
    """Apply the change of one snapshot's (scheduled, spent) contribution to its budget"""
    budget.scheduled_cents = (budget.scheduled_cents or 0) + after[0] - before[0]
    budget.spent_cents = (budget.spent_cents or 0) + after[1] - before[1]


def contribution(snapshot: PaymentSnapshot) -> Tuple[int, int]:
    return snapshot_contribution(snapshot.amount_cents, snapshot.status)


def find_entry(budget: WeeklyBudget, category_id: str) -> Optional[CategoryLedgerEntry]:
    for entry in budget.entries:
        if entry.category_id == category_id:
            return entry
    return None


def require_entry(budget: WeeklyBudget, category_id: str) -> CategoryLedgerEntry:
    entry = find_entry(budget, category_id)
    if entry is None:
        raise NotFoundError(f"Category {category_id} not found in budget")
    return entry


def find_snapshot(
    budget: WeeklyBudget, payment_id: uuid.UUID, category_id: Optional[str] = None
) -> Optional[Tuple[CategoryLedgerEntry, PaymentSnapshot]]:
    """Locate a snapshot by its own id or by the id of the record it copies"""
    for entry in budget.entries:
        if category_id is not None and entry.category_id != category_id:
            continue
        for snapshot in entry.snapshots:
            if snapshot.id == payment_id or snapshot.payment_record_id == payment_id:
                return entry, snapshot
    return None


def iter_snapshots(budget: WeeklyBudget):
    for entry in budget.entries:
        for snapshot in entry.snapshots:
            yield entry, snapshot


def append_snapshot(entry: CategoryLedgerEntry, record: PaymentRecord) -> PaymentSnapshot:
    """Copy a record into a ledger entry and count it in the budget totals"""
    snapshot = PaymentSnapshot(
        id=uuid.uuid4(),
        payment_record_id=record.id,
        name=record.name,
        amount_cents=record.amount_cents,
        scheduled_date=record.due_date,
        status=record.status,
        paid_date=record.paid_date,
        paid_by_id=record.paid_by,
        paid_by_name=None,
        link_unresolved=False,
        position=len(entry.snapshots),
    )
    entry.snapshots.append(snapshot)
    adjust_budget_totals(entry.weekly_budget, (0, 0), contribution(snapshot))
    return snapshot


def snapshot_is_stale(snapshot: PaymentSnapshot, record: PaymentRecord) -> bool:
    return (
        snapshot.name != record.name
        or snapshot.amount_cents != record.amount_cents
        or snapshot.scheduled_date != record.due_date
        or snapshot.status != record.status
        or snapshot.paid_date != record.paid_date
        or snapshot.paid_by_id != record.paid_by
    )


def refresh_snapshot(snapshot: PaymentSnapshot, record: PaymentRecord) -> bool:
    """
    Overwrite a snapshot's cached fields from its record.

    A cached payer name survives only while the payer id is unchanged.

    Returns:
        True if anything changed
    """
    if not snapshot_is_stale(snapshot, record):
        return False

    before = contribution(snapshot)
    if snapshot.paid_by_id != record.paid_by:
        snapshot.paid_by_name = None

    snapshot.name = record.name
    snapshot.amount_cents = record.amount_cents
    snapshot.scheduled_date = record.due_date
    snapshot.status = record.status
    snapshot.paid_date = record.paid_date
    snapshot.paid_by_id = record.paid_by

    adjust_budget_totals(snapshot.entry.weekly_budget, before, contribution(snapshot))
    return True


def remove_snapshot(snapshot: PaymentSnapshot) -> None:
    """Drop a snapshot from its entry (delete-orphan removes the row) and uncount it"""
    entry = snapshot.entry
    adjust_budget_totals(entry.weekly_budget, contribution(snapshot), (0, 0))
    entry.snapshots.remove(snapshot)


def move_snapshot(snapshot: PaymentSnapshot, target: CategoryLedgerEntry) -> None:
    """Move a snapshot to another entry of the same budget; totals are unaffected"""
    source = snapshot.entry
    source.snapshots.remove(snapshot)
    snapshot.position = len(target.snapshots)
    target.snapshots.append(snapshot)


def was_created_through(record: PaymentRecord, budget: WeeklyBudget) -> bool:
    return record.scheduled_from_budget_id == budget.id
