"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only journal queries: per-account activity streams,
    as-of balances, the trial balance, and entry lookups.
Architecture position: Kernel > Selectors.  May import from models/,
    domain DTOs and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Activity is ordered by entry_date, then entry seq, then line_seq, so
      two reads of the same ledger state yield the same sequence.
    - An as-of balance is the account's opening balance plus the signed
      sum of its posted lines dated on or before the cutoff; with no cutoff
      it is the stored current_balance.
    - A trial balance is balanced when its debit and credit columns differ
      by no more than the balance tolerance.

Failure modes:
    - Unknown accounts and entries read as None / empty, never raise.
    - account_balance() raises AccountNotFoundError for an account outside
      the tenant, since a zero would be indistinguishable from a real
      balance.

Audit relevance:
    LedgerSelector is the read path for reporting.  Activity streams are
    lazy and restartable so exports over large ledgers stay bounded in
    memory.
"""

from datetime import date
from decimal import Decimal
from typing import Iterator
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.dtos import (
    ActivityLine,
    JournalEntryInfo,
    TrialBalance,
    TrialBalanceRow,
)
from ledger_kernel.domain.values import (
    BALANCE_TOLERANCE,
    AccountType,
    NormalBalance,
    Side,
)
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")

# Rows fetched per round trip while streaming activity
ACTIVITY_BATCH_SIZE = 500


class AccountActivity:
    """
    Lazy, restartable stream of one account's journal lines.

    Nothing is queried until iteration starts.  Each ``iter()`` runs the
    query again, so the stream reflects the ledger at iteration time and
    can be consumed any number of times.
    """

    def __init__(self, session: Session, statement, batch_size: int = ACTIVITY_BATCH_SIZE):
        self._session = session
        self._statement = statement
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[ActivityLine]:
        result = self._session.execute(
            self._statement.execution_options(yield_per=self._batch_size)
        )
        for row in result:
            yield ActivityLine(
                entry_id=row.entry_id,
                entry_number=row.entry_number,
                seq=row.seq,
                entry_date=row.entry_date,
                entry_type=row.entry_type,
                entry_description=row.entry_description,
                line_seq=row.line_seq,
                account_id=row.account_id,
                side=Side(row.side),
                amount=round_money(row.amount),
                description=row.description,
            )


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Selector for journal and balance queries.

    Contract:
        Every method takes a tenant_id and only reads that tenant's rows.
        Monetary results are Decimal quantized to two places.
    """

    def __init__(self, session: Session, tolerance: Decimal = BALANCE_TOLERANCE):
        super().__init__(session)
        self._tolerance = tolerance

    # =========================================================================
    # Activity
    # =========================================================================

    def get_account_activity(
        self,
        tenant_id: UUID,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountActivity:
        """
        Posted lines touching one account, oldest first.

        Args:
            start_date: Inclusive lower bound on entry_date.
            end_date: Inclusive upper bound on entry_date.

        Returns:
            An AccountActivity iterable of ActivityLine.
        """
        stmt = (
            select(
                JournalEntry.id.label("entry_id"),
                JournalEntry.entry_number,
                JournalEntry.seq,
                JournalEntry.entry_date,
                JournalEntry.entry_type,
                JournalEntry.description.label("entry_description"),
                JournalLine.line_seq,
                JournalLine.account_id,
                JournalLine.side,
                JournalLine.amount,
                JournalLine.description,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalEntryStatus.POSTED.value,
                JournalLine.account_id == account_id,
            )
        )
        if start_date is not None:
            stmt = stmt.where(JournalEntry.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= end_date)
        stmt = stmt.order_by(
            JournalEntry.entry_date, JournalEntry.seq, JournalLine.line_seq
        )
        return AccountActivity(self.session, stmt)

    # =========================================================================
    # Balances
    # =========================================================================

    def _side_totals(self, tenant_id: UUID, as_of: date, account_id: UUID | None = None):
        """Posted debit and credit totals per account up to ``as_of``."""
        debit_sum = func.sum(
            case((JournalLine.side == Side.DEBIT.value, JournalLine.amount), else_=0)
        ).label("debit_total")
        credit_sum = func.sum(
            case((JournalLine.side == Side.CREDIT.value, JournalLine.amount), else_=0)
        ).label("credit_total")

        stmt = (
            select(JournalLine.account_id, debit_sum, credit_sum)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalEntryStatus.POSTED.value,
                JournalEntry.entry_date <= as_of,
            )
            .group_by(JournalLine.account_id)
        )
        if account_id is not None:
            stmt = stmt.where(JournalLine.account_id == account_id)

        return {
            row.account_id: (
                Decimal(row.debit_total or ZERO),
                Decimal(row.credit_total or ZERO),
            )
            for row in self.session.execute(stmt)
        }

    @staticmethod
    def _signed_balance(
        account: Account, totals: tuple[Decimal, Decimal] | None
    ) -> Decimal:
        debits, credits = totals or (ZERO, ZERO)
        if NormalBalance(account.normal_balance) == NormalBalance.DEBIT:
            movement = debits - credits
        else:
            movement = credits - debits
        return round_money(account.opening_balance + movement)

    def account_balance(
        self,
        tenant_id: UUID,
        account_id: UUID,
        as_of: date | None = None,
    ) -> Decimal:
        """
        Balance of an account in its normal direction.

        Raises:
            AccountNotFoundError: account does not belong to the tenant.
        """
        account = self.session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if as_of is None:
            return round_money(account.current_balance)
        totals = self._side_totals(tenant_id, as_of, account_id)
        return self._signed_balance(account, totals.get(account_id))

    def trial_balance(self, tenant_id: UUID, as_of: date | None = None) -> TrialBalance:
        """
        Trial balance, ordered by code.

        Covers every active account, plus any inactive account that still
        carries a balance at the cutoff, so the columns always foot.

        A positive balance on a debit-normal account (or a negative one on
        a credit-normal account) lands in the debit column; the opposite in
        the credit column.
        """
        accounts = self.session.execute(
            select(Account)
            .where(Account.tenant_id == tenant_id)
            .order_by(Account.code)
        ).scalars().all()

        totals = self._side_totals(tenant_id, as_of) if as_of is not None else {}

        rows: list[TrialBalanceRow] = []
        total_debits = ZERO
        total_credits = ZERO
        for account in accounts:
            if as_of is None:
                balance = round_money(account.current_balance)
            else:
                balance = self._signed_balance(account, totals.get(account.id))
            if not account.is_active and balance == 0:
                continue

            normal = NormalBalance(account.normal_balance)
            net_debit = balance if normal == NormalBalance.DEBIT else -balance
            debit = net_debit if net_debit > 0 else ZERO
            credit = -net_debit if net_debit < 0 else ZERO
            total_debits += debit
            total_credits += credit

            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    code=account.code,
                    name=account.name,
                    account_type=AccountType(account.account_type),
                    normal_balance=normal,
                    balance=balance,
                    debit=round_money(debit),
                    credit=round_money(credit),
                )
            )

        total_debits = round_money(total_debits)
        total_credits = round_money(total_credits)
        return TrialBalance(
            tenant_id=tenant_id,
            as_of=as_of,
            rows=tuple(rows),
            total_debits=total_debits,
            total_credits=total_credits,
            is_balanced=abs(total_debits - total_credits) <= self._tolerance,
        )

    # =========================================================================
    # Entries
    # =========================================================================

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> JournalEntryInfo | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return JournalEntryInfo.from_model(entry) if entry else None

    def list_entries(
        self,
        tenant_id: UUID,
        entry_type: EntryType | str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[JournalEntryInfo]:
        """Entries in posting order (seq ascending), optionally filtered and paged."""
        stmt = select(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
        if entry_type is not None:
            stmt = stmt.where(JournalEntry.entry_type == EntryType(entry_type).value)
        if start_date is not None:
            stmt = stmt.where(JournalEntry.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= end_date)
        stmt = stmt.order_by(JournalEntry.seq)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return [
            JournalEntryInfo.from_model(entry)
            for entry in self.session.execute(stmt).scalars()
        ]
