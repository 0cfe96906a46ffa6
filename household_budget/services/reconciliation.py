"""Reconciliation service - detect and repair drift between payment records and budget snapshots

Payment data is written from three places (direct record edits,
budget-scoped edits and bulk schedule imports), so the snapshots cached in
ledger entries are allowed to go stale. The repair steps below are
idempotent and each one only touches snapshots matching its own predicate:

    sync_categories -> fix_payment_links -> fix_paid_by

Any order is safe to repeat. Each step is its own unit of work.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import date
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from household_budget.config import settings
from household_budget.domain.attribution import try_resolve
from household_budget.domain.exceptions import DomainException, NotFoundError
from household_budget.domain.models import (
    HouseholdRoster,
    LinkRepairResult,
    PaidBy,
    PaidByRepairResult,
    PaymentDiagnostics,
    PaymentStatus,
    PipelineStep,
    ReconciliationWarning,
    Resolved,
    SlotStatus,
    SyncResult,
)
from household_budget.domain.periods import week_plan
from household_budget.domain.totals import sum_contributions
from household_budget.infrastructure.database.models import (
    CategoryLedgerEntry,
    MainBudget,
    PaymentRecord,
    PaymentSnapshot,
    WeeklyBudget,
)
from household_budget.infrastructure.database.repositories import (
    MainBudgetRepository,
    PaymentRecordRepository,
    WeeklyBudgetRepository,
)
from household_budget.infrastructure.observability.logging import log_reconciliation
from household_budget.infrastructure.observability.metrics import record_reconciliation, record_unresolved
from household_budget.services import ledger

logger = logging.getLogger(__name__)


def _get_budget(db: Session, budget_id: uuid.UUID) -> WeeklyBudget:
    budget = WeeklyBudgetRepository(db).get(budget_id)
    if budget is None:
        raise NotFoundError(f"Weekly budget {budget_id} not found")
    return budget


def _owned_elsewhere(db: Session, budget: WeeklyBudget, records: List[PaymentRecord]) -> Set[uuid.UUID]:
    """Ids of records linked to another weekly budget that still exists"""
    other_ids = {r.weekly_budget_id for r in records if r.weekly_budget_id not in (None, budget.id)}
    live_budgets = WeeklyBudgetRepository(db).existing_ids(other_ids)
    return {r.id for r in records if r.weekly_budget_id in live_budgets}


def _matches(entry: CategoryLedgerEntry, snapshot: PaymentSnapshot, record: PaymentRecord) -> bool:
    return (
        record.category_id == entry.category_id
        and record.name == snapshot.name
        and record.amount_cents == snapshot.amount_cents
        and record.due_date == snapshot.scheduled_date
    )


def _claim_orphan(
    orphans: List[Tuple[CategoryLedgerEntry, PaymentSnapshot]], record: PaymentRecord
) -> Optional[PaymentSnapshot]:
    for i, (entry, snapshot) in enumerate(orphans):
        if _matches(entry, snapshot, record):
            del orphans[i]
            return snapshot
    return None


def sync_categories(
    db: Session,
    budget_id: uuid.UUID,
    default_allocation_cents: Optional[int] = None,
) -> SyncResult:
    """
    Bring every payment due in the budget's week into its ledger.

    Missing categories get a ledger entry with the default allocation.
    Snapshots are keyed by (category_id, payment_record_id): an existing
    snapshot is refreshed in place, one filed under a stale category is
    moved, extra copies of the same record are dropped. A record with no
    snapshot first claims an orphaned snapshot matching it on (name,
    amount, scheduled date, category), the same match link repair uses,
    so a recreated record is never counted twice.

    Records linked to another live weekly budget belong to that budget and
    get no new snapshot here. Unlinked records are linked to this one.
    Cancelled records never get a new snapshot.

    Running it twice in a row changes nothing the second time.
    """
    budget = _get_budget(db, budget_id)
    allocation = (
        default_allocation_cents
        if default_allocation_cents is not None
        else settings.default_category_allocation_cents
    )

    record_repo = PaymentRecordRepository(db)
    records = record_repo.list_for_budget_window(budget)
    owned_elsewhere = _owned_elsewhere(db, budget, records)
    budget_repo = WeeklyBudgetRepository(db)
    result = SyncResult(payments_in_window=len(records))

    snapshots = list(ledger.iter_snapshots(budget))
    live = record_repo.get_many(s.payment_record_id for _, s in snapshots)
    by_record: Dict[uuid.UUID, List[PaymentSnapshot]] = {}
    orphans: List[Tuple[CategoryLedgerEntry, PaymentSnapshot]] = []
    for entry, snapshot in snapshots:
        if snapshot.payment_record_id in live:
            by_record.setdefault(snapshot.payment_record_id, []).append(snapshot)
        else:
            orphans.append((entry, snapshot))

    for record in records:
        existing = by_record.get(record.id, [])
        if not existing:
            if record.id in owned_elsewhere:
                result.payments_owned_elsewhere += 1
                continue
            orphan = _claim_orphan(orphans, record)
            if orphan is not None:
                orphan.payment_record_id = record.id
                orphan.link_unresolved = False
                existing = [orphan]
                result.snapshots_relinked += 1
            elif record.status == PaymentStatus.CANCELLED.value:
                continue

        entry = ledger.find_entry(budget, record.category_id)
        if entry is None:
            entry = budget_repo.add_entry(budget, record.category_id, allocation)
            result.entries_created += 1

        same_category = [s for s in existing if s.entry is entry]
        if same_category:
            keep = same_category[0]
            if ledger.refresh_snapshot(keep, record):
                result.snapshots_refreshed += 1
        elif existing:
            keep = existing[0]
            ledger.move_snapshot(keep, entry)
            ledger.refresh_snapshot(keep, record)
            result.snapshots_moved += 1
        else:
            keep = ledger.append_snapshot(entry, record)
            result.snapshots_inserted += 1

        for duplicate in existing:
            if duplicate is not keep:
                ledger.remove_snapshot(duplicate)
                result.duplicates_removed += 1

        if record.weekly_budget_id != budget.id and record.id not in owned_elsewhere:
            record.weekly_budget_id = budget.id
            result.payments_linked += 1

    db.flush()
    return result


def fix_payment_links(db: Session, budget_id: uuid.UUID) -> LinkRepairResult:
    """
    Re-resolve snapshots whose record reference is missing or dangling.

    A candidate record must be due in the budget's week and match the
    snapshot on (name, amount, scheduled date, category); records already
    referenced by another snapshot of this budget are not candidates,
    nor are records linked to another live weekly budget.
    Identical candidates are interchangeable, so the earliest created one
    wins. Snapshots with no candidate are flagged and counted, never
    deleted. Linked records missing their budget or household link get it
    filled in.
    """
    budget = _get_budget(db, budget_id)
    record_repo = PaymentRecordRepository(db)

    snapshots = list(ledger.iter_snapshots(budget))
    live = record_repo.get_many(s.payment_record_id for _, s in snapshots)
    window_records = record_repo.list_for_budget_window(budget)
    owned_elsewhere = _owned_elsewhere(db, budget, window_records)
    claimed = {s.payment_record_id for _, s in snapshots if s.payment_record_id in live}
    result = LinkRepairResult()

    for entry, snapshot in snapshots:
        record = live.get(snapshot.payment_record_id) if snapshot.payment_record_id else None

        if record is not None:
            result.already_linked += 1
            snapshot.link_unresolved = False
            if _fill_record_links(record, budget):
                result.records_updated += 1
            continue

        candidates = [
            r
            for r in window_records
            if r.id not in claimed and r.id not in owned_elsewhere and _matches(entry, snapshot, r)
        ]
        if not candidates:
            snapshot.link_unresolved = True
            result.unresolved += 1
            continue

        candidate = candidates[0]
        snapshot.payment_record_id = candidate.id
        snapshot.link_unresolved = False
        claimed.add(candidate.id)
        result.fixed += 1
        if _fill_record_links(candidate, budget):
            result.records_updated += 1

    db.flush()
    return result


def _fill_record_links(record: PaymentRecord, budget: WeeklyBudget) -> bool:
    changed = False
    if record.weekly_budget_id is None:
        record.weekly_budget_id = budget.id
        changed = True
    if budget.is_shared and budget.household_id and record.household_id is None:
        record.household_id = budget.household_id
        changed = True
    return changed


def fix_paid_by(db: Session, budget_id: uuid.UUID, roster: Optional[HouseholdRoster]) -> PaidByRepairResult:
    """
    Resolve bare payer identifiers on paid snapshots against the household roster.

    A paid snapshot with no payer at all inherits the payer from its record
    first. Payers the roster does not know stay unresolved and are counted;
    the resolver never guesses a member.
    """
    budget = _get_budget(db, budget_id)
    snapshots = [s for _, s in ledger.iter_snapshots(budget) if s.status == PaymentStatus.PAID.value]
    records = PaymentRecordRepository(db).get_many(s.payment_record_id for s in snapshots if not s.paid_by_id)
    result = PaidByRepairResult()

    for snapshot in snapshots:
        if snapshot.paid_by_id and snapshot.paid_by_name:
            continue

        if not snapshot.paid_by_id:
            record = records.get(snapshot.payment_record_id)
            if record is not None and record.paid_by:
                snapshot.paid_by_id = record.paid_by

        resolved = try_resolve(roster, snapshot.paid_by_id) if snapshot.paid_by_id else None
        if resolved is None:
            result.unresolved += 1
            continue

        snapshot.paid_by_name = resolved.name
        result.corrected += 1

    db.flush()
    return result


def diagnose_payments(db: Session, budget_id: uuid.UUID) -> PaymentDiagnostics:
    """Read-only drift report used to decide whether a repair pass is needed"""
    budget = _get_budget(db, budget_id)
    record_repo = PaymentRecordRepository(db)

    window_records = record_repo.list_for_budget_window(budget)
    snapshots = [s for _, s in ledger.iter_snapshots(budget)]
    live = record_repo.get_many(s.payment_record_id for s in snapshots)
    represented_ids = {s.payment_record_id for s in snapshots if s.payment_record_id in live}
    owned_elsewhere = _owned_elsewhere(db, budget, window_records) - represented_ids
    records = [
        r
        for r in window_records
        if r.status != PaymentStatus.CANCELLED.value and r.id not in owned_elsewhere
    ]

    represented = sum(1 for r in records if r.id in represented_ids)
    orphaned = sum(1 for s in snapshots if s.payment_record_id not in live)
    stale = sum(
        1 for s in snapshots if s.payment_record_id in live and ledger.snapshot_is_stale(s, live[s.payment_record_id])
    )
    unresolved_payers = sum(
        1 for s in snapshots if s.status == PaymentStatus.PAID.value and not (s.paid_by_id and s.paid_by_name)
    )
    scheduled, spent = sum_contributions(snapshots)
    drift = abs(scheduled - budget.scheduled_cents) + abs(spent - budget.spent_cents)

    return PaymentDiagnostics(
        week_payments=len(records),
        represented_payments=represented,
        unrepresented_payments=len(records) - represented,
        snapshots=len(snapshots),
        orphaned_snapshots=orphaned,
        flagged_links=sum(1 for s in snapshots if s.link_unresolved),
        stale_snapshots=stale,
        unresolved_payers=unresolved_payers,
        totals_drift_cents=drift,
    )


def orphan_warnings(db: Session, budget: WeeklyBudget) -> List[ReconciliationWarning]:
    snapshots = list(ledger.iter_snapshots(budget))
    live = PaymentRecordRepository(db).get_many(s.payment_record_id for _, s in snapshots)

    warnings = []
    for entry, snapshot in snapshots:
        if snapshot.payment_record_id in live:
            continue
        warnings.append(
            ReconciliationWarning(
                code="unresolved_link" if snapshot.link_unresolved else "orphaned_snapshot",
                message=f"Payment '{snapshot.name}' is not linked to a live payment record",
                category_id=entry.category_id,
                payment_record_id=str(snapshot.payment_record_id) if snapshot.payment_record_id else None,
            )
        )
    return warnings


def refresh_snapshots(db: Session, record: PaymentRecord, payer: Optional[PaidBy] = None) -> int:
    """
    Propagate a record write to every snapshot copying it; returns how many changed.

    Records keep only the payer id. A payer that arrived already resolved
    (an embedded {"_id", "name"} document) has its name cached on the
    snapshots straight away.
    """
    changed = 0
    for snapshot in WeeklyBudgetRepository(db).snapshots_referencing(record.id):
        refreshed = ledger.refresh_snapshot(snapshot, record)
        if isinstance(payer, Resolved) and snapshot.paid_by_id == payer.id and snapshot.paid_by_name != payer.name:
            snapshot.paid_by_name = payer.name
            refreshed = True
        if refreshed:
            changed += 1
    db.flush()
    return changed


def recompute_budget_totals(db: Session, budget_id: uuid.UUID) -> int:
    """
    Rebuild a budget's scheduled and spent totals from its snapshots.

    Returns:
        Absolute drift (in cents) that was corrected, 0 when already consistent
    """
    budget = _get_budget(db, budget_id)
    scheduled, spent = sum_contributions(s for _, s in ledger.iter_snapshots(budget))
    drift = abs(scheduled - budget.scheduled_cents) + abs(spent - budget.spent_cents)

    budget.scheduled_cents = scheduled
    budget.spent_cents = spent
    db.flush()
    return drift


def propagate_to_main_budget(db: Session, main_budget_id: uuid.UUID, today: Optional[date] = None) -> MainBudget:
    """
    Roll weekly spending up into the main budget's slots and analytics.

    Slots whose weekly budget has disappeared are reset to pending.
    """
    today = today or date.today()
    main = MainBudgetRepository(db).get(main_budget_id)
    if main is None:
        raise NotFoundError(f"Main budget {main_budget_id} not found")

    total_spent = 0
    total_allocated = 0
    for slot in main.slots:
        weekly = slot.weekly_budget if slot.weekly_budget_id else None
        if weekly is None:
            slot.weekly_budget_id = None
            slot.spent_cents = 0
            slot.status = SlotStatus.PENDING.value
            continue

        slot.spent_cents = weekly.spent_cents
        slot.status = SlotStatus.COMPLETED.value if slot.end_date < today else SlotStatus.ACTIVE.value
        total_spent += weekly.spent_cents
        total_allocated += slot.allocated_cents

    planned_weeks = len(week_plan(main.period_start, main.period_end))
    main.total_spent_cents = total_spent
    main.total_allocated_cents = total_allocated
    main.weekly_average_cents = total_spent // planned_weeks if planned_weeks else 0
    db.flush()
    return main


def _repaired(result) -> int:
    if isinstance(result, SyncResult):
        return (
            result.snapshots_inserted + result.snapshots_refreshed + result.snapshots_moved + result.snapshots_relinked
        )
    if isinstance(result, LinkRepairResult):
        return result.fixed
    if isinstance(result, PaidByRepairResult):
        return result.corrected
    return 0


def record_step(step: str, budget_id: uuid.UUID, result, request_id: Optional[str] = None) -> None:
    """Metrics and structured log line for a completed repair step"""
    record_reconciliation(step, True, _repaired(result))
    if isinstance(result, LinkRepairResult):
        record_unresolved("link", result.unresolved)
    if isinstance(result, PaidByRepairResult):
        record_unresolved("payer", result.unresolved)
    log_reconciliation(step, str(budget_id), request_id, **asdict(result))


def run_repair_pipeline(
    db: Session,
    budget_id: uuid.UUID,
    roster: Optional[HouseholdRoster],
    request_id: Optional[str] = None,
) -> List[PipelineStep]:
    """
    Run sync -> link repair -> payer repair, committing after each step.

    A failing step is rolled back on its own and reported; steps that
    already committed stay committed and later steps still run.
    """
    steps: List[Tuple[str, Callable]] = [
        ("sync_categories", lambda: sync_categories(db, budget_id)),
        ("fix_payment_links", lambda: fix_payment_links(db, budget_id)),
        ("fix_paid_by", lambda: fix_paid_by(db, budget_id, roster)),
    ]

    outcomes = []
    for name, run in steps:
        try:
            result = run()
            db.commit()
        except (DomainException, SQLAlchemyError) as e:
            db.rollback()
            record_reconciliation(name, False)
            logger.error(f"Reconciliation step {name} failed: {e}", extra={"request_id": request_id})
            outcomes.append(PipelineStep(name=name, ok=False, error=str(e)))
            continue

        record_step(name, budget_id, result, request_id)
        outcomes.append(PipelineStep(name=name, ok=True, result=result))

    return outcomes
