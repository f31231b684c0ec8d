"""
OpeningBalanceService -- stage and post starting balances at cutover.

Responsibility:
    Collects the balances a tenant carries into the system (bank accounts,
    customer and vendor balances, equity) as staged rows, then posts each
    one as a two-line OPENING_BALANCE journal entry against the offset
    account (default 5040 "Opening Balance Equity").

Architecture position:
    Kernel > Services -- imperative shell.  A producer of ledger requests:
    every balance change goes through JournalWriter.create_entry, never
    directly through AccountService.

Invariants enforced:
    - A staged key (account, as_of_date, customer/vendor tag) holds at most
      one row; re-staging overwrites it until it is posted.
    - Posted rows are frozen.
    - The target line sits on the account's normal side and the offset
      line on the opposite side; a negative balance swaps both.
    - Each balance posts inside its own savepoint: one failure never undoes
      another balance's posting.
    - The offset account cannot itself be staged.

Failure modes:
    - OffsetAccountNotFoundError aborts post_balances before any posting.
    - Per-balance LedgerKernelError (locked period, inactive account, ...)
      is recorded in last_error and reported in PostingSummary.failures.
    - OffsetAccountStagedError / OpeningBalanceAlreadyPostedError /
      AccountNotFoundError from staging.

Audit relevance:
    Staging and batch results are logged; each posted entry carries
    OpeningBalanceMetadata pointing back at the staged row.
"""

from datetime import date
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_kernel.db.types import money_from_value
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    ActingUser,
    LineSpec,
    OpeningBalanceInfo,
    PostingFailure,
    PostingSummary,
)
from ledger_kernel.domain.entry_metadata import OpeningBalanceMetadata
from ledger_kernel.domain.values import NormalBalance, Side
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    LedgerKernelError,
    OffsetAccountNotFoundError,
    OffsetAccountStagedError,
    OpeningBalanceAlreadyPostedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import EntryType
from ledger_kernel.models.opening_balance import OpeningBalance
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_writer import JournalWriter

logger = get_logger("services.opening_balance")

ZERO = Decimal("0")

# Control accounts the wizard stages customer and vendor balances against
RECEIVABLE_CODE = "1030"
PAYABLE_CODE = "3010"

_ERROR_TEXT_LIMIT = 500


class OpeningBalanceService(BaseService[OpeningBalance]):
    """
    Service for opening balance staging and posting.

    Contract:
        Staging methods return frozen ``OpeningBalanceInfo`` DTOs;
        ``post_balances`` returns a ``PostingSummary`` and never raises for
        an individual balance.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT change Account.opening_balance; the posted journal lines
          carry the starting balance.
    """

    def __init__(
        self,
        session: Session,
        journal_writer: JournalWriter,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        super().__init__(session)
        self._journal_writer = journal_writer
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

    @property
    def offset_code(self) -> str:
        return self._settings.opening_balance_offset_code

    # =========================================================================
    # Lookups
    # =========================================================================

    def _account(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _account_by_code(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def _find_staged(
        self,
        tenant_id: UUID,
        account_id: UUID,
        as_of_date: date,
        customer_id: UUID | None,
        vendor_id: UUID | None,
    ) -> OpeningBalance | None:
        stmt = select(OpeningBalance).where(
            OpeningBalance.tenant_id == tenant_id,
            OpeningBalance.account_id == account_id,
            OpeningBalance.as_of_date == as_of_date,
        )
        stmt = stmt.where(
            OpeningBalance.customer_id.is_(None)
            if customer_id is None
            else OpeningBalance.customer_id == customer_id
        )
        stmt = stmt.where(
            OpeningBalance.vendor_id.is_(None)
            if vendor_id is None
            else OpeningBalance.vendor_id == vendor_id
        )
        return self.session.execute(
            stmt.with_for_update().execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # =========================================================================
    # Staging
    # =========================================================================

    def stage_balance(
        self,
        tenant_id: UUID,
        account_id: UUID,
        balance: Decimal | int | str,
        as_of_date: date,
        actor: ActingUser,
        customer_id: UUID | None = None,
        vendor_id: UUID | None = None,
        description: str | None = None,
    ) -> OpeningBalanceInfo:
        """
        Stage (or overwrite) an unposted opening balance.

        ``balance`` is signed in the account's normal direction: +500 on a
        debit-normal asset is a 500 debit balance.

        Raises:
            AccountNotFoundError: account does not belong to the tenant.
            OffsetAccountStagedError: account is the offset account.
            OpeningBalanceAlreadyPostedError: this key was already posted.
            ValueError: float or non-numeric balance.
        """
        account = self._account(tenant_id, account_id)
        if account.code == self.offset_code:
            raise OffsetAccountStagedError(account.code)
        amount = money_from_value(balance)

        staged = self._find_staged(
            tenant_id, account_id, as_of_date, customer_id, vendor_id
        )
        if staged is not None and staged.is_posted:
            raise OpeningBalanceAlreadyPostedError(
                str(account_id), as_of_date.isoformat()
            )

        if staged is None:
            staged = OpeningBalance(
                tenant_id=tenant_id,
                account_id=account_id,
                as_of_date=as_of_date,
                balance=amount,
                customer_id=customer_id,
                vendor_id=vendor_id,
                description=description,
                is_posted=False,
                created_by_id=actor.user_id,
            )
            self.session.add(staged)
            action = "created"
        else:
            staged.balance = amount
            staged.description = description
            staged.last_error = None
            staged.updated_by_id = actor.user_id
            action = "overwritten"
        self.session.flush()

        logger.info(
            "opening_balance_staged",
            extra={
                "tenant_id": str(tenant_id),
                "account_code": account.code,
                "as_of_date": as_of_date.isoformat(),
                "balance": str(amount),
                "action": action,
                "actor_id": str(actor.user_id),
            },
        )
        return OpeningBalanceInfo.from_model(staged)

    def stage_wizard(
        self,
        tenant_id: UUID,
        as_of_date: date,
        actor: ActingUser,
        bank: Mapping[UUID, Decimal] | None = None,
        customers: Mapping[UUID, Decimal] | None = None,
        vendors: Mapping[UUID, Decimal] | None = None,
        equity: Mapping[UUID, Decimal] | None = None,
        receivable_code: str = RECEIVABLE_CODE,
        payable_code: str = PAYABLE_CODE,
    ) -> list[OpeningBalanceInfo]:
        """
        Stage the grouped balances collected by the setup wizard.

        Args:
            bank: account id -> balance for bank and cash accounts.
            customers: customer id -> amount owed, staged on the
                receivable account tagged with the customer.
            vendors: vendor id -> amount owed, staged on the payable
                account tagged with the vendor.
            equity: account id -> balance for equity accounts.

        All groups are staged in one savepoint; a failure stages nothing.

        Raises:
            AccountNotFoundError: a control account code does not exist.
            Anything ``stage_balance`` raises.
        """
        staged: list[OpeningBalanceInfo] = []
        with self.session.begin_nested():
            for account_id, amount in (bank or {}).items():
                staged.append(
                    self.stage_balance(
                        tenant_id, account_id, amount, as_of_date, actor,
                        description="Bank opening balance",
                    )
                )

            if customers:
                receivable = self._account_by_code(tenant_id, receivable_code)
                if receivable is None:
                    raise AccountNotFoundError(receivable_code)
                for customer_id, amount in customers.items():
                    staged.append(
                        self.stage_balance(
                            tenant_id, receivable.id, amount, as_of_date, actor,
                            customer_id=customer_id,
                            description="Customer opening balance",
                        )
                    )

            if vendors:
                payable = self._account_by_code(tenant_id, payable_code)
                if payable is None:
                    raise AccountNotFoundError(payable_code)
                for vendor_id, amount in vendors.items():
                    staged.append(
                        self.stage_balance(
                            tenant_id, payable.id, amount, as_of_date, actor,
                            vendor_id=vendor_id,
                            description="Vendor opening balance",
                        )
                    )

            for account_id, amount in (equity or {}).items():
                staged.append(
                    self.stage_balance(
                        tenant_id, account_id, amount, as_of_date, actor,
                        description="Equity opening balance",
                    )
                )
        return staged

    def list_balances(
        self,
        tenant_id: UUID,
        as_of_date: date | None = None,
        is_posted: bool | None = None,
    ) -> list[OpeningBalanceInfo]:
        """Staged and posted balances, newest cutover first, then by account code."""
        stmt = (
            select(OpeningBalance)
            .join(Account, OpeningBalance.account_id == Account.id)
            .where(OpeningBalance.tenant_id == tenant_id)
        )
        if as_of_date is not None:
            stmt = stmt.where(OpeningBalance.as_of_date == as_of_date)
        if is_posted is not None:
            stmt = stmt.where(OpeningBalance.is_posted == is_posted)
        stmt = stmt.order_by(OpeningBalance.as_of_date.desc(), Account.code)
        return [
            OpeningBalanceInfo.from_model(b)
            for b in self.session.execute(stmt).scalars()
        ]

    # =========================================================================
    # Posting
    # =========================================================================

    def _lines_for(
        self, staged: OpeningBalance, account: Account, offset: Account
    ) -> list[LineSpec]:
        amount = abs(staged.balance)
        target_side = NormalBalance(account.normal_balance)
        if staged.balance < 0:
            target_side = target_side.opposite
        line_description = (
            f"Opening Balance - {staged.description or account.name}"
        )

        def _line(account_id: UUID, side: Side) -> LineSpec:
            if side == Side.DEBIT:
                return LineSpec.debit_line(account_id, amount, line_description)
            return LineSpec.credit_line(account_id, amount, line_description)

        return [
            _line(account.id, target_side),
            _line(offset.id, target_side.opposite),
        ]

    def post_balances(
        self, tenant_id: UUID, as_of_date: date, actor: ActingUser
    ) -> PostingSummary:
        """
        Post every unposted balance staged for ``as_of_date``.

        Each balance is posted in its own savepoint.  A balance that fails
        keeps is_posted False, gets last_error set, and is listed in the
        summary; the batch continues.  Zero balances have nothing to post
        and are marked posted without a journal entry.

        Raises:
            OffsetAccountNotFoundError: the offset account does not exist,
                so no balance can post.
        """
        offset = self._account_by_code(tenant_id, self.offset_code)
        if offset is None:
            raise OffsetAccountNotFoundError(str(tenant_id), self.offset_code)

        pending = self.session.execute(
            select(OpeningBalance, Account)
            .join(Account, OpeningBalance.account_id == Account.id)
            .where(
                OpeningBalance.tenant_id == tenant_id,
                OpeningBalance.as_of_date == as_of_date,
                OpeningBalance.is_posted.is_(False),
            )
            .order_by(Account.code, OpeningBalance.created_at)
        ).all()

        posted = 0
        failures: list[PostingFailure] = []
        entry_ids: list[UUID] = []

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.user_id):
            for staged, account in pending:
                if staged.balance == 0:
                    staged.is_posted = True
                    staged.posted_at = self._clock.now()
                    staged.last_error = None
                    self.session.flush()
                    posted += 1
                    continue

                try:
                    with self.session.begin_nested():
                        entry = self._journal_writer.create_entry(
                            tenant_id=tenant_id,
                            entry_date=as_of_date,
                            description=f"Opening Balance - {account.name}",
                            lines=self._lines_for(staged, account, offset),
                            entry_type=EntryType.OPENING_BALANCE,
                            actor=actor,
                            metadata=OpeningBalanceMetadata(
                                opening_balance_id=staged.id,
                                customer_id=staged.customer_id,
                                vendor_id=staged.vendor_id,
                            ),
                        )
                        staged.is_posted = True
                        staged.posted_at = self._clock.now()
                        staged.journal_entry_id = entry.id
                        staged.last_error = None
                        staged.updated_by_id = actor.user_id
                        self.session.flush()
                except LedgerKernelError as exc:
                    staged.last_error = str(exc)[:_ERROR_TEXT_LIMIT]
                    self.session.flush()
                    failures.append(
                        PostingFailure(
                            opening_balance_id=staged.id,
                            account_id=account.id,
                            error_code=exc.code,
                            message=str(exc),
                        )
                    )
                    logger.warning(
                        "opening_balance_post_failed",
                        extra={
                            "opening_balance_id": str(staged.id),
                            "account_code": account.code,
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )
                    continue

                posted += 1
                entry_ids.append(entry.id)

            logger.info(
                "opening_balances_posted",
                extra={
                    "as_of_date": as_of_date.isoformat(),
                    "posted": posted,
                    "failed": len(failures),
                },
            )

        return PostingSummary(
            posted=posted,
            failed=len(failures),
            failures=tuple(failures),
            entry_ids=tuple(entry_ids),
        )
