"""
ReversalService -- cancels a posted journal entry with a mirror entry.

Responsibility:
    Validates reversal preconditions, builds the mirror lines (every debit
    becomes a credit and vice versa), posts them through JournalWriter and
    links the original to its reversal, all in one savepoint.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes JournalWriter (which
    in turn consults PeriodService for the reversal date).

Invariants enforced:
    - Posted lines are never edited or deleted.  The original entry only
      gains is_reversed = True and reversed_by_id.
    - An entry is reversed at most once; a reversal is never reversed.
    - The reversal is dated "today" by the injected clock and passes the
      same period gate as any other posting.
    - Original + reversal leave every account balance where it was before
      the original was posted.

Failure modes:
    - EntryNotFoundError: no such entry for the tenant.
    - AlreadyReversedError: the entry was reversed before.
    - CannotReverseReversalError: the entry is itself a reversal.
    - PeriodLockedError: today's period is locked and the actor cannot
      override.

Audit relevance:
    Every reversal is logged with both entry numbers, the actor and the
    reason, and the reversal carries ReversalMetadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import ActingUser, JournalEntryInfo, LineSpec
from ledger_kernel.domain.entry_metadata import ReversalMetadata
from ledger_kernel.domain.values import Side
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    CannotReverseReversalError,
    EntryNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import EntryType, JournalEntry
from ledger_kernel.services.journal_writer import JournalWriter

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    """Immutable result of a successful reversal."""

    original_entry_id: UUID
    original_entry_number: str
    reversal_entry_id: UUID
    reversal_entry_number: str
    entry_date: date
    reversal: JournalEntryInfo


class ReversalService:
    """
    Reverses posted journal entries.

    Contract:
        Accepts a journal entry id and posts its exact mirror, flagging the
        original.  Either both happen or neither does.

    Guarantees:
        - The original row is read ``FOR UPDATE``, so two concurrent
          reversals of the same entry serialize and the second fails with
          AlreadyReversedError.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT support partial (line-level) reversals.
    """

    def __init__(
        self,
        session: Session,
        journal_writer: JournalWriter,
        clock: Clock | None = None,
    ):
        self._session = session
        self._journal_writer = journal_writer
        self._clock = clock or SystemClock()

    def _load_and_validate(self, tenant_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self._session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        if entry.is_reversed:
            raise AlreadyReversedError(
                str(entry.id),
                str(entry.reversed_by_id) if entry.reversed_by_id else None,
            )
        if entry.reversal_of_id is not None:
            raise CannotReverseReversalError(str(entry.id))
        return entry

    def reverse_entry(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        actor: ActingUser,
        reason: str | None = None,
    ) -> ReversalResult:
        """
        Post the mirror of an entry and flag the original as reversed.

        Postconditions:
            - A REVERSAL entry dated today with reference
              "REV-<original number>" and every line's side swapped.
            - original.is_reversed is True and original.reversed_by_id is
              the reversal's id.

        Raises:
            EntryNotFoundError, AlreadyReversedError,
            CannotReverseReversalError, PeriodLockedError.
        """
        with self._session.begin_nested():
            original = self._load_and_validate(tenant_id, entry_id)

            mirror = [
                LineSpec(
                    account_id=line.account_id,
                    debit=line.amount if Side(line.side) == Side.CREDIT else 0,
                    credit=line.amount if Side(line.side) == Side.DEBIT else 0,
                    description=line.description,
                )
                for line in sorted(original.lines, key=lambda ln: ln.line_seq)
            ]

            reversal = self._journal_writer.create_entry(
                tenant_id=tenant_id,
                entry_date=self._clock.today(),
                description=f"Reversal of {original.description}",
                lines=mirror,
                entry_type=EntryType.REVERSAL,
                actor=actor,
                reference=f"REV-{original.entry_number}",
                metadata=ReversalMetadata(
                    original_entry_id=original.id,
                    original_entry_number=original.entry_number,
                    reason=reason,
                ),
                reversal_of_id=original.id,
            )

            original.is_reversed = True
            original.reversed_by_id = reversal.id
            original.updated_by_id = actor.user_id
            self._session.flush()

        logger.info(
            "journal_entry_reversed",
            extra={
                "tenant_id": str(tenant_id),
                "original_entry_id": str(original.id),
                "original_entry_number": original.entry_number,
                "reversal_entry_id": str(reversal.id),
                "reversal_entry_number": reversal.entry_number,
                "actor_id": str(actor.user_id),
                "reason": reason,
            },
        )
        return ReversalResult(
            original_entry_id=original.id,
            original_entry_number=original.entry_number,
            reversal_entry_id=reversal.id,
            reversal_entry_number=reversal.entry_number,
            entry_date=reversal.entry_date,
            reversal=reversal,
        )
