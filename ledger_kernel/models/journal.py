"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth for every tenant.
Architecture position: Kernel > Models.  May import from db/ and the enums in
    domain/values.py only.

Invariants enforced:
    - (tenant_id, seq) and (tenant_id, entry_number) are unique; seq comes
      from the tenant's locked sequence counter.
    - total_debits equals total_credits within tolerance (checked by
      JournalWriter before insert).
    - Entries are created POSTED.  History is never edited: a mistake is
      cancelled by a reversing entry, and the original only gains
      is_reversed / reversed_by_id.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, seq) if the counter is
      bypassed.

Audit relevance:
    JournalEntry and JournalLine rows are the authoritative record from which
    balances, activity streams and period summaries are derived.
    period_override marks entries an owner posted into a locked period.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.values import LenientEnum, Side

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.  Entries are created posted."""

    POSTED = "posted"


class EntryType(LenientEnum):
    """What produced a journal entry."""

    MANUAL = "manual"
    SYSTEM = "system"
    INVOICE = "invoice"
    EXPENSE = "expense"
    PAYMENT = "payment"
    PAYROLL = "payroll"
    OPENING_BALANCE = "opening_balance"
    ADJUSTMENT = "adjustment"
    DEPRECIATION = "depreciation"
    CLOSING = "closing"
    REVERSAL = "reversal"
    INVENTORY = "inventory"
    OTHER = "other"


class JournalEntry(TenantScopedBase):
    """
    A posted, balanced journal entry.

    Contract:
        Created only by JournalWriter.  After insert the only fields that
        change are is_reversed and reversed_by_id, set once by
        ReversalService.

    Guarantees:
        - year and month are derived from entry_date.
        - lines holds at least two JournalLine rows.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_journal_tenant_seq"),
        UniqueConstraint(
            "tenant_id", "entry_number", name="uq_journal_tenant_number"
        ),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
        Index("idx_journal_tenant_period", "tenant_id", "year", "month"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    entry_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # External reference (cheque number, REV-<number>, ...)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JournalEntryStatus.POSTED.value,
    )

    total_debits: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_credits: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    is_reversed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Weak references between an entry and its reversal
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversal_of_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # True when an override-capable user posted into a locked period
    period_override: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Serialized ledger_kernel.domain.entry_metadata variant
    entry_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        order_by="JournalLine.line_seq",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} {self.entry_date}>"

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class JournalLine(TenantScopedBase):
    """
    One side of a journal entry against a single account.

    Guarantees:
        - amount > 0; side says which column it belongs in.
        - line_seq orders lines within the entry, starting at 0.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    side: Mapped[Side] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    @property
    def debit(self) -> Decimal:
        return self.amount if self.side == Side.DEBIT else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.side == Side.CREDIT else Decimal("0")
