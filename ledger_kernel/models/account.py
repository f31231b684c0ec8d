"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line and the holder of each account's running balance.
Architecture position: Kernel > Models.  May import from db/ and the enums in
    domain/values.py only.

Invariants enforced:
    - code is unique per tenant (uq_account_tenant_code), upper-cased and
      trimmed by AccountService before it reaches this model.
    - version is the ORM version counter; every UPDATE of the row checks and
      increments it, so a read-modify-write of current_balance from a stale
      snapshot fails with StaleDataError.
    - parent_id, when set, references an account of the same tenant and the
      same account_type (enforced by AccountService).

Failure modes:
    - IntegrityError on duplicate (tenant_id, code) if the service check is
      bypassed.
    - StaleDataError on a concurrent balance update (mapped to
      OptimisticLockError by AccountService).

Audit relevance:
    current_balance is only ever changed through AccountService.apply_posting,
    called by JournalWriter inside the posting transaction, so the balance is
    always the opening balance plus the signed sum of posted lines.
"""

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.values import AccountType, NormalBalance

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class Account(TenantScopedBase):
    """
    Chart of accounts entry -- a single node in a tenant's ledger tree.

    Contract:
        (tenant_id, code) is unique.  Balance mutation happens only through
        AccountService.apply_posting.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE.
        - normal_balance is DEBIT or CREDIT.
        - version increments on every row update.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    # Free-form grouping label (e.g. "Current Assets")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Seeded from the standard chart; cannot be deleted or re-coded
    is_system_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT
