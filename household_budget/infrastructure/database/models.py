"""SQLAlchemy ORM models for payments, weekly budgets and main budgets"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class PaymentRecord(Base):
    """Canonical scheduled or recurring payment"""

    __tablename__ = "payment_record"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Text, nullable=False, index=True)
    household_id = Column(Text, nullable=True, index=True)
    name = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    category_id = Column(Text, nullable=False, index=True)
    kind = Column(Text, nullable=False, default="expense")
    due_date = Column(Date, nullable=False, index=True)
    frequency = Column(Text, nullable=False, default="once")
    status = Column(Text, nullable=False, default="pending")
    paid_date = Column(Date, nullable=True)
    paid_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_end_date = Column(Date, nullable=True)
    # Budget this record is currently linked to (set by sync and link repair)
    weekly_budget_id = Column(Uuid, ForeignKey("weekly_budget.id", ondelete="SET NULL"), nullable=True, index=True)
    # Back-reference for records created through a budget's add-payment operation
    scheduled_from_budget_id = Column(Uuid, nullable=True, index=True)
    scheduled_from_category_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class WeeklyBudget(Base):
    """Seven-day budget period with category ledger entries"""

    __tablename__ = "weekly_budget"
    __table_args__ = (UniqueConstraint("parent_budget_id", "week_number", name="uq_weekly_budget_parent_week"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Text, nullable=False, index=True)
    household_id = Column(Text, nullable=True, index=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    parent_budget_id = Column(Uuid, ForeignKey("main_budget.id"), nullable=True, index=True)
    week_number = Column(Integer, nullable=True)
    week_start = Column(Date, nullable=False, index=True)
    week_end = Column(Date, nullable=False)
    total_budget_cents = Column(BigInteger, nullable=False, default=0)
    # Incrementally maintained; recompute_budget_totals repairs drift
    scheduled_cents = Column(BigInteger, nullable=False, default=0)
    spent_cents = Column(BigInteger, nullable=False, default=0)
    creation_mode = Column(Text, nullable=False, default="manual")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    entries = relationship(
        "CategoryLedgerEntry",
        back_populates="weekly_budget",
        cascade="all, delete-orphan",
        order_by="CategoryLedgerEntry.position",
    )


class CategoryLedgerEntry(Base):
    """Category allocation within a weekly budget"""

    __tablename__ = "category_ledger_entry"
    __table_args__ = (UniqueConstraint("weekly_budget_id", "category_id", name="uq_ledger_budget_category"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    weekly_budget_id = Column(Uuid, ForeignKey("weekly_budget.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Text, nullable=False)
    allocation_cents = Column(BigInteger, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)

    weekly_budget = relationship("WeeklyBudget", back_populates="entries")
    snapshots = relationship(
        "PaymentSnapshot",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="PaymentSnapshot.position",
    )


class PaymentSnapshot(Base):
    """Denormalized, possibly stale copy of a PaymentRecord inside a ledger entry"""

    __tablename__ = "payment_snapshot"
    __table_args__ = (UniqueConstraint("entry_id", "payment_record_id", name="uq_snapshot_entry_record"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    entry_id = Column(Uuid, ForeignKey("category_ledger_entry.id", ondelete="CASCADE"), nullable=False, index=True)
    # No foreign key: the referenced record may be deleted behind the snapshot's back
    payment_record_id = Column(Uuid, nullable=True, index=True)
    name = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    paid_date = Column(Date, nullable=True)
    paid_by_id = Column(Text, nullable=True)
    paid_by_name = Column(Text, nullable=True)
    link_unresolved = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    entry = relationship("CategoryLedgerEntry", back_populates="snapshots")


class MainBudget(Base):
    """Month, quarter, year or custom budget composed of lazily materialized week slots"""

    __tablename__ = "main_budget"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Text, nullable=False, index=True)
    household_id = Column(Text, nullable=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    period_type = Column(Text, nullable=False, default="monthly")
    period_start = Column(Date, nullable=False, index=True)
    period_end = Column(Date, nullable=False)
    period_year = Column(Integer, nullable=True)
    period_month = Column(Integer, nullable=True)
    period_quarter = Column(Integer, nullable=True)
    total_budget_cents = Column(BigInteger, nullable=False, default=0)
    currency = Column(Text, nullable=False, default="USD")
    status = Column(Text, nullable=False, default="active")
    weekly_amount_cents = Column(BigInteger, nullable=True)
    share_with_household = Column(Boolean, nullable=False, default=False)
    recalculation_policy = Column(Text, nullable=True)
    total_allocated_cents = Column(BigInteger, nullable=False, default=0)
    total_spent_cents = Column(BigInteger, nullable=False, default=0)
    weekly_average_cents = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    categories = relationship("MainBudgetCategory", back_populates="main_budget", cascade="all, delete-orphan")
    slots = relationship(
        "WeekSlot",
        back_populates="main_budget",
        cascade="all, delete-orphan",
        order_by="WeekSlot.week_number",
    )


class MainBudgetCategory(Base):
    """Category template applied to each materialized week"""

    __tablename__ = "main_budget_category"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    main_budget_id = Column(Uuid, ForeignKey("main_budget.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Text, nullable=False)
    default_allocation_cents = Column(BigInteger, nullable=True)
    percentage = Column(Float, nullable=True)

    main_budget = relationship("MainBudget", back_populates="categories")


class WeekSlot(Base):
    """A main budget's reference to one week, linked to a WeeklyBudget once materialized"""

    __tablename__ = "week_slot"
    __table_args__ = (UniqueConstraint("main_budget_id", "week_number", name="uq_week_slot_budget_week"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    main_budget_id = Column(Uuid, ForeignKey("main_budget.id", ondelete="CASCADE"), nullable=False, index=True)
    week_number = Column(Integer, nullable=False)
    weekly_budget_id = Column(Uuid, ForeignKey("weekly_budget.id", ondelete="SET NULL"), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    allocated_cents = Column(BigInteger, nullable=False, default=0)
    spent_cents = Column(BigInteger, nullable=False, default=0)
    status = Column(Text, nullable=False, default="pending")

    main_budget = relationship("MainBudget", back_populates="slots")
    weekly_budget = relationship("WeeklyBudget", foreign_keys=[weekly_budget_id])
