"""
PeriodService -- per-month lock state and posting-date validation.

Responsibility:
    Manages the lock state of each (year, month) period of a tenant,
    gates postings against locked periods before they reach the journal
    writer, and recomputes the cached period summary.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by JournalWriter at the start of every posting and by the
    process entry point for lock/unlock and reporting.

Invariants enforced:
    - A period with no row is OPEN.
    - No posting lands in a LOCKED period unless ``can_override_lock``
      grants the actor an override.  An override leaves the period LOCKED
      and is reported to the caller so the entry can be flagged.
    - Unlocking requires a reason and the override capability.
    - ``recompute_summary`` derives totals from journal lines only, so
      repeating it without intervening postings changes nothing.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - PeriodLockedError: posting into a locked period without override.
    - AlreadyLockedError / NotLockedError: redundant lock or unlock.
    - InsufficientPrivilegeError: lock without lock capability, unlock
      without override capability.
    - UnlockReasonRequiredError: blank unlock reason.
    - InvalidPeriodError: month outside 1..12 or year outside 1..9999.

Audit relevance:
    Lock, unlock and override are logged with year, month and actor.
    Rejected postings are logged at WARNING.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.authority import RolePolicy
from ledger_kernel.domain.authority import can_lock_period as default_can_lock
from ledger_kernel.domain.authority import can_override_lock as default_can_override
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import SYSTEM_ACTOR_ID, ActingUser, FinancialPeriodInfo
from ledger_kernel.domain.values import AccountType, Side, period_of
from ledger_kernel.exceptions import (
    AlreadyLockedError,
    InsufficientPrivilegeError,
    InvalidPeriodError,
    NotLockedError,
    PeriodLockedError,
    UnlockReasonRequiredError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.financial_period import FinancialPeriod
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")

ZERO = Decimal("0")


class PeriodService(BaseService[FinancialPeriod]):
    """
    Service for period locking and period summaries.

    Contract:
        Accepts tenant ids and (year, month) pairs and returns frozen
        ``FinancialPeriodInfo`` DTOs.  ``guard_posting`` raises on a
        rejected posting and returns whether the posting overrides a lock.

    Guarantees:
        - Lock and unlock read the period row ``FOR UPDATE``; the row is
          created on first lock.
        - Capability checks are injected callables, never inline role
          comparisons.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT close books or roll earnings into equity.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        can_override_lock: RolePolicy | None = None,
        can_lock_period: RolePolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._can_override_lock = can_override_lock or default_can_override
        self._can_lock_period = can_lock_period or default_can_lock

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _validate(year: int, month: int) -> None:
        if not (1 <= month <= 12) or not (1 <= year <= 9999):
            raise InvalidPeriodError(year, month)

    def _find(
        self, tenant_id: UUID, year: int, month: int, for_update: bool = False
    ) -> FinancialPeriod | None:
        stmt = select(FinancialPeriod).where(
            FinancialPeriod.tenant_id == tenant_id,
            FinancialPeriod.year == year,
            FinancialPeriod.month == month,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _get_or_create_for_update(
        self, tenant_id: UUID, year: int, month: int, creator_id: UUID
    ) -> FinancialPeriod:
        period = self._find(tenant_id, year, month, for_update=True)
        if period is not None:
            return period

        savepoint = self.session.begin_nested()
        try:
            period = FinancialPeriod(
                tenant_id=tenant_id,
                year=year,
                month=month,
                is_locked=False,
                total_revenue=ZERO,
                total_expenses=ZERO,
                net_income=ZERO,
                journal_entry_count=0,
                created_by_id=creator_id,
            )
            self.session.add(period)
            self.session.flush()
            savepoint.commit()
            return period
        except IntegrityError:
            # Created concurrently by another transaction
            savepoint.rollback()
            period = self._find(tenant_id, year, month, for_update=True)
            if period is None:
                raise
            return period

    def is_locked(self, tenant_id: UUID, year: int, month: int) -> bool:
        self._validate(year, month)
        period = self._find(tenant_id, year, month)
        return bool(period and period.is_locked)

    def get_period(self, tenant_id: UUID, year: int, month: int) -> FinancialPeriodInfo:
        """Period snapshot; an OPEN snapshot with zero rollups if no row exists."""
        self._validate(year, month)
        period = self._find(tenant_id, year, month)
        if period is None:
            return FinancialPeriodInfo.open_period(tenant_id, year, month)
        return FinancialPeriodInfo.from_model(period)

    def list_periods(
        self,
        tenant_id: UUID,
        year: int | None = None,
        is_locked: bool | None = None,
    ) -> list[FinancialPeriodInfo]:
        """Persisted periods, newest first."""
        stmt = select(FinancialPeriod).where(FinancialPeriod.tenant_id == tenant_id)
        if year is not None:
            stmt = stmt.where(FinancialPeriod.year == year)
        if is_locked is not None:
            stmt = stmt.where(FinancialPeriod.is_locked == is_locked)
        stmt = stmt.order_by(FinancialPeriod.year.desc(), FinancialPeriod.month.desc())
        return [
            FinancialPeriodInfo.from_model(p)
            for p in self.session.execute(stmt).scalars()
        ]

    # =========================================================================
    # Lock lifecycle
    # =========================================================================

    def lock(
        self, tenant_id: UUID, year: int, month: int, actor: ActingUser
    ) -> FinancialPeriodInfo:
        """
        Lock a period against further postings.

        Postconditions:
            is_locked is True; locked_at / locked_by_id record the lock.

        Raises:
            InsufficientPrivilegeError: actor may not lock periods.
            AlreadyLockedError: period is already locked.
        """
        self._validate(year, month)
        if not self._can_lock_period(actor):
            raise InsufficientPrivilegeError(
                str(actor.user_id), actor.role_name, "lock a period"
            )

        period = self._get_or_create_for_update(tenant_id, year, month, actor.user_id)
        if period.is_locked:
            raise AlreadyLockedError(year, month)

        period.is_locked = True
        period.locked_at = self._clock.now()
        period.locked_by_id = actor.user_id
        period.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "period_locked",
            extra={
                "tenant_id": str(tenant_id),
                "year": year,
                "month": month,
                "actor_id": str(actor.user_id),
            },
        )
        return FinancialPeriodInfo.from_model(period)

    def unlock(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        actor: ActingUser,
        reason: str,
    ) -> FinancialPeriodInfo:
        """
        Reopen a locked period.

        Raises:
            InsufficientPrivilegeError: actor lacks the override capability.
            UnlockReasonRequiredError: reason is empty or blank.
            NotLockedError: period is open (including when no row exists).
        """
        self._validate(year, month)
        if not self._can_override_lock(actor):
            raise InsufficientPrivilegeError(
                str(actor.user_id), actor.role_name, "unlock a period"
            )
        if not reason or not reason.strip():
            raise UnlockReasonRequiredError(year, month)

        period = self._find(tenant_id, year, month, for_update=True)
        if period is None or not period.is_locked:
            raise NotLockedError(year, month)

        period.is_locked = False
        period.unlocked_at = self._clock.now()
        period.unlocked_by_id = actor.user_id
        period.unlock_reason = reason.strip()
        period.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "period_unlocked",
            extra={
                "tenant_id": str(tenant_id),
                "year": year,
                "month": month,
                "actor_id": str(actor.user_id),
                "reason": period.unlock_reason,
            },
        )
        return FinancialPeriodInfo.from_model(period)

    def guard_posting(
        self, tenant_id: UUID, entry_date: date, actor: ActingUser
    ) -> bool:
        """
        Check that a posting dated ``entry_date`` may proceed.

        Returns:
            False when the period is open; True when it is locked and the
            actor overrides the lock.

        Raises:
            PeriodLockedError: period is locked and the actor cannot
                override.
        """
        year, month = period_of(entry_date)
        if not self.is_locked(tenant_id, year, month):
            return False

        if self._can_override_lock(actor):
            logger.warning(
                "period_lock_overridden",
                extra={
                    "tenant_id": str(tenant_id),
                    "year": year,
                    "month": month,
                    "entry_date": entry_date.isoformat(),
                    "actor_id": str(actor.user_id),
                    "role": actor.role_name,
                },
            )
            return True

        logger.warning(
            "posting_rejected_period_locked",
            extra={
                "tenant_id": str(tenant_id),
                "year": year,
                "month": month,
                "entry_date": entry_date.isoformat(),
                "actor_id": str(actor.user_id),
            },
        )
        raise PeriodLockedError(year, month, entry_date.isoformat())

    # =========================================================================
    # Summary
    # =========================================================================

    def recompute_summary(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        actor: ActingUser | None = None,
    ) -> FinancialPeriodInfo:
        """
        Rebuild the cached period summary from posted journal lines.

        Revenue is credits minus debits on REVENUE accounts; expenses are
        debits minus credits on EXPENSE accounts; net income is their
        difference.  The lock state is untouched.

        Postconditions:
            Calling again with no new postings yields identical figures.
        """
        self._validate(year, month)

        rows = self.session.execute(
            select(
                Account.account_type,
                JournalLine.side,
                func.sum(JournalLine.amount),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.year == year,
                JournalEntry.month == month,
                JournalEntry.status == JournalEntryStatus.POSTED.value,
                Account.account_type.in_(
                    [AccountType.REVENUE.value, AccountType.EXPENSE.value]
                ),
            )
            .group_by(Account.account_type, JournalLine.side)
        ).all()

        revenue = ZERO
        expenses = ZERO
        for account_type, side, total in rows:
            total = total or ZERO
            is_debit = Side(side) == Side.DEBIT
            if AccountType(account_type) == AccountType.REVENUE:
                revenue += -total if is_debit else total
            else:
                expenses += total if is_debit else -total

        entry_count = self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.year == year,
                JournalEntry.month == month,
                JournalEntry.status == JournalEntryStatus.POSTED.value,
            )
        ).scalar_one()

        revenue = round_money(revenue)
        expenses = round_money(expenses)
        creator_id = actor.user_id if actor else SYSTEM_ACTOR_ID
        period = self._get_or_create_for_update(tenant_id, year, month, creator_id)
        period.total_revenue = revenue
        period.total_expenses = expenses
        period.net_income = revenue - expenses
        period.journal_entry_count = entry_count
        period.summary_updated_at = self._clock.now()
        if actor is not None:
            period.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "period_summary_recomputed",
            extra={
                "tenant_id": str(tenant_id),
                "year": year,
                "month": month,
                "total_revenue": str(revenue),
                "total_expenses": str(expenses),
                "journal_entry_count": entry_count,
            },
        )
        return FinancialPeriodInfo.from_model(period)
