"""Data access layer for payment records, weekly budgets and main budgets"""

import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import Table, and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from household_budget.infrastructure.database.models import (
    CategoryLedgerEntry,
    MainBudget,
    PaymentRecord,
    PaymentSnapshot,
    WeeklyBudget,
    WeekSlot,
)

_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def insert_if_absent(db: Session, table: Table, index_elements: List[str], values: Dict[str, Any]) -> None:
    """
    Single-statement create-if-absent: INSERT .. ON CONFLICT (index_elements) DO NOTHING.

    Concurrent callers racing on the same key all succeed and exactly one
    row is written.
    """
    dialect = db.get_bind().dialect.name
    if dialect not in _CONFLICT_INSERTS:
        raise RuntimeError(f"Conditional insert not supported for dialect {dialect}")

    stmt = _CONFLICT_INSERTS[dialect](table).values(**values)
    db.execute(stmt.on_conflict_do_nothing(index_elements=index_elements))


class PaymentRecordRepository:
    """Repository for canonical payment records"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: PaymentRecord) -> PaymentRecord:
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record

    def get(self, payment_id: uuid.UUID) -> Optional[PaymentRecord]:
        return self.db.get(PaymentRecord, payment_id)

    def get_many(self, payment_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, PaymentRecord]:
        ids = {pid for pid in payment_ids if pid is not None}
        if not ids:
            return {}
        records = self.db.scalars(select(PaymentRecord).where(PaymentRecord.id.in_(ids))).all()
        return {record.id: record for record in records}

    def list_by_date_range(
        self,
        start: date,
        end: date,
        owner_id: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> List[PaymentRecord]:
        """Records due within [start, end], optionally scoped to an owner and/or household"""
        query = select(PaymentRecord).where(PaymentRecord.due_date >= start, PaymentRecord.due_date <= end)

        scopes = []
        if owner_id is not None:
            scopes.append(PaymentRecord.owner_id == owner_id)
        if household_id is not None:
            scopes.append(PaymentRecord.household_id == household_id)
        if scopes:
            query = query.where(or_(*scopes))

        return list(
            self.db.scalars(query.order_by(PaymentRecord.due_date, PaymentRecord.created_at, PaymentRecord.id)).all()
        )

    def list_for_budget_window(self, budget: WeeklyBudget) -> List[PaymentRecord]:
        """Records visible to a weekly budget: the owner's, plus the household's when shared"""
        household_id = budget.household_id if budget.is_shared else None
        return self.list_by_date_range(budget.week_start, budget.week_end, budget.owner_id, household_id)

    def list_pending_due_before(self, today: date) -> List[PaymentRecord]:
        return list(
            self.db.scalars(
                select(PaymentRecord).where(PaymentRecord.status == "pending", PaymentRecord.due_date < today)
            ).all()
        )

    def occurrence_exists(self, owner_id: str, name: str, category_id: str, due_date: date) -> bool:
        return (
            self.db.scalar(
                select(PaymentRecord.id).where(
                    PaymentRecord.owner_id == owner_id,
                    PaymentRecord.name == name,
                    PaymentRecord.category_id == category_id,
                    PaymentRecord.due_date == due_date,
                )
            )
            is not None
        )

    def list_scheduled_from(self, budget_id: uuid.UUID) -> List[PaymentRecord]:
        return list(
            self.db.scalars(select(PaymentRecord).where(PaymentRecord.scheduled_from_budget_id == budget_id)).all()
        )

    def list_linked_to(self, budget_id: uuid.UUID) -> List[PaymentRecord]:
        return list(self.db.scalars(select(PaymentRecord).where(PaymentRecord.weekly_budget_id == budget_id)).all())

    def delete(self, record: PaymentRecord) -> None:
        self.db.delete(record)
        self.db.flush()


class WeeklyBudgetRepository:
    """Repository for weekly budgets, their ledger entries and payment snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, budget: WeeklyBudget) -> WeeklyBudget:
        self.db.add(budget)
        self.db.flush()
        return budget

    def get(self, budget_id: uuid.UUID) -> Optional[WeeklyBudget]:
        return self.db.get(WeeklyBudget, budget_id)

    def list_overlapping_for_owner(self, owner_id: str, start: date, end: date) -> List[WeeklyBudget]:
        """The owner's weekly budgets whose window shares at least one day with [start, end]"""
        return list(
            self.db.scalars(
                select(WeeklyBudget)
                .where(
                    WeeklyBudget.owner_id == owner_id,
                    WeeklyBudget.week_start <= end,
                    WeeklyBudget.week_end >= start,
                )
                .order_by(WeeklyBudget.week_start)
            ).all()
        )

    def existing_ids(self, budget_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        ids = [i for i in budget_ids if i is not None]
        if not ids:
            return set()
        return set(self.db.scalars(select(WeeklyBudget.id).where(WeeklyBudget.id.in_(ids))).all())

    def get_by_parent_week(self, parent_budget_id: uuid.UUID, week_number: int) -> Optional[WeeklyBudget]:
        return self.db.scalars(
            select(WeeklyBudget)
            .where(WeeklyBudget.parent_budget_id == parent_budget_id, WeeklyBudget.week_number == week_number)
            .execution_options(populate_existing=True)
        ).first()

    def insert_materialized_if_absent(self, values: Dict[str, Any]) -> None:
        insert_if_absent(self.db, WeeklyBudget.__table__, ["parent_budget_id", "week_number"], values)

    def list_by_parent(self, parent_budget_id: uuid.UUID) -> List[WeeklyBudget]:
        return list(
            self.db.scalars(
                select(WeeklyBudget)
                .where(WeeklyBudget.parent_budget_id == parent_budget_id)
                .order_by(WeeklyBudget.week_number)
            ).all()
        )

    def list_shared_for_household(self, household_id: str) -> List[WeeklyBudget]:
        return list(
            self.db.scalars(
                select(WeeklyBudget)
                .where(WeeklyBudget.household_id == household_id, WeeklyBudget.is_shared.is_(True))
                .order_by(WeeklyBudget.week_start.desc())
            ).all()
        )

    def snapshots_referencing(self, payment_record_id: uuid.UUID) -> List[PaymentSnapshot]:
        return list(
            self.db.scalars(
                select(PaymentSnapshot).where(PaymentSnapshot.payment_record_id == payment_record_id)
            ).all()
        )

    def add_entry(self, budget: WeeklyBudget, category_id: str, allocation_cents: int) -> CategoryLedgerEntry:
        entry = CategoryLedgerEntry(
            category_id=category_id,
            allocation_cents=allocation_cents,
            position=len(budget.entries),
        )
        budget.entries.append(entry)
        self.db.flush()
        return entry

    def delete(self, budget: WeeklyBudget) -> None:
        self.db.delete(budget)
        self.db.flush()


class MainBudgetRepository:
    """Repository for main budgets and their week slots"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, budget: MainBudget) -> MainBudget:
        self.db.add(budget)
        self.db.flush()
        return budget

    def get(self, budget_id: uuid.UUID) -> Optional[MainBudget]:
        return self.db.get(MainBudget, budget_id)

    def list_for_owner(self, owner_id: str) -> List[MainBudget]:
        return list(
            self.db.scalars(
                select(MainBudget).where(MainBudget.owner_id == owner_id).order_by(MainBudget.period_start.desc())
            ).all()
        )

    def insert_slot_if_absent(self, values: Dict[str, Any]) -> None:
        insert_if_absent(self.db, WeekSlot.__table__, ["main_budget_id", "week_number"], values)

    def slots_linked_to(self, weekly_budget_id: uuid.UUID) -> List[WeekSlot]:
        return list(self.db.scalars(select(WeekSlot).where(WeekSlot.weekly_budget_id == weekly_budget_id)).all())

    def get_slot(self, main_budget_id: uuid.UUID, week_number: int) -> Optional[WeekSlot]:
        return self.db.scalars(
            select(WeekSlot)
            .where(WeekSlot.main_budget_id == main_budget_id, WeekSlot.week_number == week_number)
            .execution_options(populate_existing=True)
        ).first()

    def link_slot(
        self,
        slot_id: uuid.UUID,
        weekly_budget_id: uuid.UUID,
        expected_current: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Compare-and-set a slot's weekly budget link.

        Only succeeds while the slot still points at expected_current (None:
        unlinked). True when this call changed the link.
        """
        slots = WeekSlot.__table__
        if expected_current is None:
            current = slots.c.weekly_budget_id.is_(None)
        else:
            current = slots.c.weekly_budget_id == expected_current

        result = self.db.execute(
            update(slots)
            .where(and_(slots.c.id == slot_id, current))
            .values(weekly_budget_id=weekly_budget_id, status="active")
        )
        return result.rowcount == 1

    def delete(self, budget: MainBudget) -> None:
        self.db.delete(budget)
        self.db.flush()
