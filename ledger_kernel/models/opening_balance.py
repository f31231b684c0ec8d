"""
Module: ledger_kernel.models.opening_balance
Responsibility: ORM persistence for staged opening balances awaiting (or
    having completed) posting through the journal.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, account_id, as_of_date, customer_id, vendor_id) identifies
      a staged balance; staging the same key again overwrites the unposted
      row.  Enforced by OpeningBalanceService under a row lock, since SQL
      unique constraints treat NULL tags as distinct.
    - Once is_posted is True the row is frozen and journal_entry_id points
      at the OPENING_BALANCE entry that carried it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString


class OpeningBalance(TenantScopedBase):
    """A signed starting balance for one account as of a cutover date."""

    __tablename__ = "opening_balances"

    __table_args__ = (
        Index(
            "idx_opening_balance_key",
            "tenant_id",
            "account_id",
            "as_of_date",
        ),
        Index("idx_opening_balance_tenant_posted", "tenant_id", "is_posted"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Signed, in the account's normal direction
    balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Optional subledger tags
    customer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_posted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # Failure reason from the most recent posting attempt
    last_error: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<OpeningBalance {self.account_id} {self.as_of_date} {self.balance}>"
