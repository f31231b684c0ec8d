"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    the acting user, journal line specifications (input), and snapshots of
    accounts, entries, periods and opening balances (output).  Services
    never hand ORM instances to callers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Every DTO is a frozen dataclass; callers cannot mutate ledger state
      through a returned object.
    - Monetary fields are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.domain.entry_metadata import EntryMetadata, load_entry_metadata
from ledger_kernel.domain.values import AccountType, LenientEnum, NormalBalance, Side

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.financial_period import (
        FinancialPeriod as FinancialPeriodModel,
    )
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel
    from ledger_kernel.models.journal import JournalLine as JournalLineModel
    from ledger_kernel.models.opening_balance import (
        OpeningBalance as OpeningBalanceModel,
    )


ZERO = Decimal("0")

# Recorded as creator of rows written without an acting user (summary caches).
SYSTEM_ACTOR_ID = UUID(int=0)


class Role(LenientEnum):
    """Tenant membership roles."""

    OWNER = "owner"
    ACCOUNTANT = "accountant"
    STAFF = "staff"


@dataclass(frozen=True)
class ActingUser:
    """
    The user on whose behalf a mutating call runs.

    Carried into every mutating operation; recorded as created_by_id /
    posted_by_id / locked_by_id and consulted by the lock override policy.
    """

    user_id: UUID
    role: Role | str

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, Role) else str(self.role)


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Exactly one of debit/credit must be positive; the other must be zero.
    JournalWriter validates this before anything is written.
    """

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    @classmethod
    def debit_line(
        cls, account_id: UUID, amount: Decimal, description: str | None = None
    ) -> LineSpec:
        return cls(account_id=account_id, debit=amount, description=description)

    @classmethod
    def credit_line(
        cls, account_id: UUID, amount: Decimal, description: str | None = None
    ) -> LineSpec:
        return cls(account_id=account_id, credit=amount, description=description)


@dataclass(frozen=True)
class AccountInfo:
    """
    Immutable snapshot of an account.

    Guarantees:
        - code is upper-cased and trimmed.
        - current_balance reflects every posting flushed at snapshot time.
    """

    id: UUID
    tenant_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    category: str | None
    parent_id: UUID | None
    opening_balance: Decimal
    current_balance: Decimal
    is_active: bool
    is_system_account: bool
    description: str | None = None
    version: int = 1

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            normal_balance=NormalBalance(model.normal_balance),
            category=model.category,
            parent_id=model.parent_id,
            opening_balance=model.opening_balance,
            current_balance=model.current_balance,
            is_active=model.is_active,
            is_system_account=model.is_system_account,
            description=model.description,
            version=model.version,
        )


@dataclass(frozen=True)
class JournalLineInfo:
    """Immutable snapshot of a posted journal line."""

    id: UUID
    account_id: UUID
    side: Side
    amount: Decimal
    line_seq: int
    description: str | None = None

    @property
    def debit(self) -> Decimal:
        return self.amount if self.side == Side.DEBIT else ZERO

    @property
    def credit(self) -> Decimal:
        return self.amount if self.side == Side.CREDIT else ZERO

    @classmethod
    def from_model(cls, model: JournalLineModel) -> JournalLineInfo:
        return cls(
            id=model.id,
            account_id=model.account_id,
            side=Side(model.side),
            amount=model.amount,
            line_seq=model.line_seq,
            description=model.description,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    """
    Immutable snapshot of a posted journal entry with its lines.

    Guarantees:
        - lines are ordered by line_seq.
        - total_debits == total_credits within the balance tolerance.
    """

    id: UUID
    tenant_id: UUID
    entry_number: str
    seq: int
    entry_date: date
    year: int
    month: int
    description: str
    entry_type: str
    status: str
    total_debits: Decimal
    total_credits: Decimal
    is_reversed: bool
    posted_by_id: UUID
    posted_at: datetime
    reference: str | None = None
    reversed_by_id: UUID | None = None
    reversal_of_id: UUID | None = None
    period_override: bool = False
    metadata: EntryMetadata | None = None
    lines: tuple[JournalLineInfo, ...] = field(default_factory=tuple)

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            entry_number=model.entry_number,
            seq=model.seq,
            entry_date=model.entry_date,
            year=model.year,
            month=model.month,
            description=model.description,
            entry_type=model.entry_type,
            status=model.status,
            total_debits=model.total_debits,
            total_credits=model.total_credits,
            is_reversed=model.is_reversed,
            posted_by_id=model.posted_by_id,
            posted_at=model.posted_at,
            reference=model.reference,
            reversed_by_id=model.reversed_by_id,
            reversal_of_id=model.reversal_of_id,
            period_override=model.period_override,
            metadata=load_entry_metadata(model.entry_metadata),
            lines=tuple(
                JournalLineInfo.from_model(line)
                for line in sorted(model.lines, key=lambda ln: ln.line_seq)
            ),
        )


@dataclass(frozen=True)
class FinancialPeriodInfo:
    """
    Immutable snapshot of a (year, month) period.

    A period with no persisted row is reported as open with zeroed
    rollups (see ``open_period``).
    """

    tenant_id: UUID
    year: int
    month: int
    is_locked: bool
    locked_at: datetime | None = None
    locked_by_id: UUID | None = None
    unlocked_at: datetime | None = None
    unlocked_by_id: UUID | None = None
    unlock_reason: str | None = None
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_income: Decimal = ZERO
    journal_entry_count: int = 0
    summary_updated_at: datetime | None = None

    @classmethod
    def open_period(cls, tenant_id: UUID, year: int, month: int) -> FinancialPeriodInfo:
        return cls(tenant_id=tenant_id, year=year, month=month, is_locked=False)

    @classmethod
    def from_model(cls, model: FinancialPeriodModel) -> FinancialPeriodInfo:
        return cls(
            tenant_id=model.tenant_id,
            year=model.year,
            month=model.month,
            is_locked=model.is_locked,
            locked_at=model.locked_at,
            locked_by_id=model.locked_by_id,
            unlocked_at=model.unlocked_at,
            unlocked_by_id=model.unlocked_by_id,
            unlock_reason=model.unlock_reason,
            total_revenue=model.total_revenue,
            total_expenses=model.total_expenses,
            net_income=model.net_income,
            journal_entry_count=model.journal_entry_count,
            summary_updated_at=model.summary_updated_at,
        )


@dataclass(frozen=True)
class OpeningBalanceInfo:
    """Immutable snapshot of a staged (or posted) opening balance."""

    id: UUID
    tenant_id: UUID
    account_id: UUID
    as_of_date: date
    balance: Decimal
    is_posted: bool
    customer_id: UUID | None = None
    vendor_id: UUID | None = None
    description: str | None = None
    posted_at: datetime | None = None
    journal_entry_id: UUID | None = None
    last_error: str | None = None

    @classmethod
    def from_model(cls, model: OpeningBalanceModel) -> OpeningBalanceInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            account_id=model.account_id,
            as_of_date=model.as_of_date,
            balance=model.balance,
            is_posted=model.is_posted,
            customer_id=model.customer_id,
            vendor_id=model.vendor_id,
            description=model.description,
            posted_at=model.posted_at,
            journal_entry_id=model.journal_entry_id,
            last_error=model.last_error,
        )


@dataclass(frozen=True)
class PostingFailure:
    """One opening balance that could not be posted."""

    opening_balance_id: UUID
    account_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class PostingSummary:
    """Outcome of an opening balance batch."""

    posted: int
    failed: int
    failures: tuple[PostingFailure, ...] = ()
    entry_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ActivityLine:
    """One journal line as seen from a single account's activity stream."""

    entry_id: UUID
    entry_number: str
    seq: int
    entry_date: date
    entry_type: str
    entry_description: str
    line_seq: int
    account_id: UUID
    side: Side
    amount: Decimal
    description: str | None = None

    @property
    def debit(self) -> Decimal:
        return self.amount if self.side == Side.DEBIT else ZERO

    @property
    def credit(self) -> Decimal:
        return self.amount if self.side == Side.CREDIT else ZERO


@dataclass(frozen=True)
class TrialBalanceRow:
    """One account in a trial balance, placed in its debit or credit column."""

    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    balance: Decimal
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class TrialBalance:
    """Trial balance across every active account of a tenant."""

    tenant_id: UUID
    as_of: date | None
    rows: tuple[TrialBalanceRow, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool
