"""
Module: ledger_kernel.models.financial_period
Responsibility: ORM persistence for per-month lock state and the cached
    period summary (revenue, expenses, net income, entry count).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, year, month) is unique.
    - A missing row means the period is OPEN with no cached summary.
    - The summary columns are a cache; PeriodService.recompute_summary can
      rebuild them from journal lines at any time.

Audit relevance:
    locked_by_id / unlocked_by_id / unlock_reason record who froze or
    reopened a month and why.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString


class FinancialPeriod(TenantScopedBase):
    """
    Lock state and summary cache for one calendar month of one tenant.

    State machine:
        OPEN (no row, or is_locked False) -> LOCKED -> OPEN
    """

    __tablename__ = "financial_periods"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "year", "month", name="uq_period_tenant_year_month"
        ),
        Index("idx_period_tenant_locked", "tenant_id", "is_locked"),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    locked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    unlocked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    unlocked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    unlock_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Summary cache
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    total_expenses: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    net_income: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    journal_entry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    summary_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        state = "locked" if self.is_locked else "open"
        return f"<FinancialPeriod {self.year}-{self.month:02d} ({state})>"
