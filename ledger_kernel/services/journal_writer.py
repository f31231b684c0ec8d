"""
JournalWriter -- atomic persistence of balanced journal entries.

Responsibility:
    Validates a requested journal entry, checks the posting date against
    the period guard, and persists the entry, its lines and the resulting
    account balance changes as one unit.  It is the only producer of
    JournalEntry and JournalLine rows.

Architecture position:
    Kernel > Services -- imperative shell.
    Depends on PeriodService (date gate), AccountService (balance
    mutation) and SequenceService (entry numbering).  Called by producers
    with resolved account ids, by ReversalService and by
    OpeningBalanceService.

Invariants enforced:
    - An entry has at least two lines; each line has exactly one positive
      side.
    - |sum(debit) - sum(credit)| <= balance tolerance (default 0.01).
    - No posting lands in a locked period unless the actor overrides the
      lock; overridden entries carry period_override = True.
    - Sequence numbers come from the tenant's locked counter row.
    - All writes happen inside one SAVEPOINT.  Any failure rolls it back,
      so no partial entry, line, sequence step or balance change survives.

Failure modes:
    - InvalidEntryError, InvalidLineError, UnbalancedEntryError: request
      rejected before any write.
    - PeriodLockedError: date falls in a locked period.
    - AccountNotFoundError / AccountInactiveError: a line names an unknown
      or deactivated account.
    - OptimisticLockError: an account row changed underneath the posting.

Audit relevance:
    Each posted entry is logged at INFO with entry number, totals, line
    count and actor.  Overrides and rejections are logged at WARNING.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_kernel.db.types import money_from_value
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import ActingUser, JournalEntryInfo, LineSpec
from ledger_kernel.domain.entry_metadata import EntryMetadata, dump_entry_metadata
from ledger_kernel.domain.values import Side, period_of
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    InvalidEntryError,
    InvalidLineError,
    LedgerKernelError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_writer")

ZERO = Decimal("0")


class _ValidatedLine:
    __slots__ = ("account_id", "side", "amount", "description")

    def __init__(self, account_id: UUID, side: Side, amount: Decimal, description):
        self.account_id = account_id
        self.side = side
        self.amount = amount
        self.description = description


class JournalWriter:
    """
    Service for atomic journal posting.

    Contract:
        ``create_entry`` either returns the posted entry as a frozen
        ``JournalEntryInfo`` or raises; in the latter case the session is
        exactly as it was before the call.

    Guarantees:
        - Account rows are locked ``FOR UPDATE`` in id order before any
          balance changes, so concurrent postings cannot deadlock on each
          other's accounts.
        - entry_number is "<prefix>-<seq:06d>" with seq strictly increasing
          per tenant.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT resolve account codes; producers pass account ids.
        - Does NOT edit or delete posted entries (see ReversalService).

    Usage:
        writer = JournalWriter(session, period_service, account_service, clock)
        entry = writer.create_entry(
            tenant_id, date(2024, 3, 15), "Cash sale",
            [LineSpec.debit_line(cash_id, Decimal("1000")),
             LineSpec.credit_line(revenue_id, Decimal("1000"))],
            EntryType.MANUAL, actor,
        )
    """

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        account_service: AccountService | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._period_service = period_service
        self._account_service = account_service or AccountService(
            session, self._clock
        )
        self._settings = settings or LedgerSettings()
        self._sequence_service = SequenceService(session)

    @property
    def tolerance(self) -> Decimal:
        return self._settings.balance_tolerance

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _validate_lines(lines: Sequence[LineSpec]) -> list[_ValidatedLine]:
        if lines is None or len(lines) < 2:
            raise InvalidEntryError("a journal entry needs at least two lines")

        validated: list[_ValidatedLine] = []
        for index, line in enumerate(lines):
            if line.account_id is None:
                raise InvalidLineError(index, "account is required")
            try:
                debit = money_from_value(line.debit if line.debit is not None else ZERO)
                credit = money_from_value(
                    line.credit if line.credit is not None else ZERO
                )
            except ValueError as exc:
                raise InvalidLineError(index, str(exc)) from exc

            if debit < 0 or credit < 0:
                raise InvalidLineError(index, "amounts must not be negative")
            if debit > 0 and credit > 0:
                raise InvalidLineError(index, "line has both a debit and a credit")
            if debit == 0 and credit == 0:
                raise InvalidLineError(index, "line has neither a debit nor a credit")

            if debit > 0:
                validated.append(
                    _ValidatedLine(line.account_id, Side.DEBIT, debit, line.description)
                )
            else:
                validated.append(
                    _ValidatedLine(
                        line.account_id, Side.CREDIT, credit, line.description
                    )
                )
        return validated

    # =========================================================================
    # Posting
    # =========================================================================

    def create_entry(
        self,
        tenant_id: UUID,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        entry_type: EntryType | str,
        actor: ActingUser,
        reference: str | None = None,
        metadata: EntryMetadata | None = None,
        *,
        reversal_of_id: UUID | None = None,
    ) -> JournalEntryInfo:
        """
        Validate and post a journal entry.

        Preconditions:
            - Every line names an account of ``tenant_id`` by id.
            - ``reversal_of_id`` is only passed by ReversalService.

        Postconditions:
            - One POSTED JournalEntry with one JournalLine per requested
              line, in request order (line_seq 0..n-1).
            - Every referenced account's current_balance moved by the
              signed amount of its lines.

        Raises:
            InvalidEntryError: fewer than two lines, blank description,
                unknown entry type or metadata.
            InvalidLineError: a line with both/neither sides or a negative
                amount.
            UnbalancedEntryError: debits and credits differ by more than
                the tolerance.
            PeriodLockedError: entry_date is in a locked period and the
                actor cannot override.
            AccountNotFoundError / AccountInactiveError: bad account.
            OptimisticLockError: concurrent balance update.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.user_id):
            try:
                return self._create_entry(
                    tenant_id,
                    entry_date,
                    description,
                    lines,
                    entry_type,
                    actor,
                    reference,
                    metadata,
                    reversal_of_id,
                )
            except LedgerKernelError as exc:
                logger.warning(
                    "journal_entry_rejected",
                    extra={
                        "error_code": exc.code,
                        "error": str(exc),
                        "entry_date": entry_date.isoformat()
                        if isinstance(entry_date, date)
                        else str(entry_date),
                    },
                )
                raise

    def _create_entry(
        self,
        tenant_id: UUID,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        entry_type: EntryType | str,
        actor: ActingUser,
        reference: str | None,
        metadata: EntryMetadata | None,
        reversal_of_id: UUID | None,
    ) -> JournalEntryInfo:
        if not isinstance(entry_date, date):
            raise InvalidEntryError("entry_date must be a date")
        if not description or not description.strip():
            raise InvalidEntryError("description is required")
        try:
            entry_type = EntryType(entry_type)
        except ValueError as exc:
            raise InvalidEntryError(f"unknown entry type {entry_type!r}") from exc
        try:
            metadata_payload = dump_entry_metadata(metadata)
        except ValueError as exc:
            raise InvalidEntryError(str(exc)) from exc

        validated = self._validate_lines(lines)

        total_debits = sum(
            (ln.amount for ln in validated if ln.side == Side.DEBIT), ZERO
        )
        total_credits = sum(
            (ln.amount for ln in validated if ln.side == Side.CREDIT), ZERO
        )
        if abs(total_debits - total_credits) > self.tolerance:
            raise UnbalancedEntryError(
                str(total_debits), str(total_credits), str(self.tolerance)
            )

        period_override = self._period_service.guard_posting(
            tenant_id, entry_date, actor
        )

        year, month = period_of(entry_date)
        with self._session.begin_nested():
            self._lock_accounts(tenant_id, {ln.account_id for ln in validated})

            seq = self._sequence_service.next_journal_seq(tenant_id)
            entry = JournalEntry(
                tenant_id=tenant_id,
                seq=seq,
                entry_number=f"{self._settings.entry_number_prefix}-{seq:06d}",
                entry_date=entry_date,
                year=year,
                month=month,
                description=description.strip(),
                reference=reference,
                entry_type=entry_type.value,
                status=JournalEntryStatus.POSTED.value,
                total_debits=total_debits,
                total_credits=total_credits,
                is_reversed=False,
                reversal_of_id=reversal_of_id,
                posted_by_id=actor.user_id,
                posted_at=self._clock.now(),
                period_override=period_override,
                entry_metadata=metadata_payload,
                created_by_id=actor.user_id,
            )
            for line_seq, line in enumerate(validated):
                entry.lines.append(
                    JournalLine(
                        tenant_id=tenant_id,
                        account_id=line.account_id,
                        side=line.side.value,
                        amount=line.amount,
                        description=line.description,
                        line_seq=line_seq,
                        created_by_id=actor.user_id,
                    )
                )
            self._session.add(entry)
            self._session.flush()

            for line in validated:
                self._account_service.apply_posting(
                    line.account_id, line.amount, line.side
                )

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "entry_type": entry_type.value,
                "entry_date": entry_date.isoformat(),
                "total_debits": str(total_debits),
                "total_credits": str(total_credits),
                "line_count": len(validated),
                "period_override": period_override,
            },
        )
        return JournalEntryInfo.from_model(entry)

    def _lock_accounts(self, tenant_id: UUID, account_ids: set[UUID]) -> list[Account]:
        """Lock every referenced account, in id order, and check it may post."""
        locked = []
        for account_id in sorted(account_ids, key=str):
            account = self._account_service.lock_account(account_id)
            if account.tenant_id != tenant_id:
                raise AccountNotFoundError(str(account_id))
            if not account.is_active:
                raise AccountInactiveError(str(account.id), account.code)
            locked.append(account)
        return locked
