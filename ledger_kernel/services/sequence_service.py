"""
SequenceService -- per-tenant journal numbering.

Responsibility:
    Hands out the ``seq`` behind every entry number ("JE-000042").  Each
    tenant has its own counter row, named ``journal_entry:<tenant_id>``,
    so tenants never contend for numbers and never see each other's gaps.

Architecture position:
    Kernel > Services.  Used only by JournalWriter, inside the posting
    savepoint, after the entry's accounts are locked.

Invariants enforced:
    - Numbers come from the locked counter row; max(seq)+1 over journal
      entries is never used.
    - A rolled-back posting rolls its number back with it, so committed
      numbers stay contiguous per tenant.

Failure modes:
    - Two first postings for a new tenant may both try to insert the
      counter row; the loser's INSERT fails inside its own savepoint and it
      falls back to locking the winner's row.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

JOURNAL_ENTRY = "journal_entry"


def journal_sequence_name(tenant_id: UUID) -> str:
    return f"{JOURNAL_ENTRY}:{tenant_id}"


class SequenceService:
    """Row-locked named counters; flush only, the caller commits."""

    def __init__(self, session: Session):
        self._session = session

    def _select(self, name: str, lock: bool):
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert a zeroed counter; None when a concurrent insert won."""
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=name, current_value=0)
                self._session.add(counter)
                self._session.flush()
        except IntegrityError:
            logger.debug("sequence_counter_exists", extra={"sequence_name": name})
            return None
        return counter

    def next_value(self, name: str) -> int:
        """Increment and return counter ``name``, creating it at zero first."""
        counter = self._select(name, lock=True)
        if counter is None:
            counter = self._create(name) or self._select(name, lock=True)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_journal_seq(self, tenant_id: UUID) -> int:
        return self.next_value(journal_sequence_name(tenant_id))

    def last_journal_seq(self, tenant_id: UUID) -> int:
        """Highest number handed out to the tenant so far (0 when none)."""
        counter = self._select(journal_sequence_name(tenant_id), lock=False)
        return counter.current_value if counter else 0
