"""
AccountService -- chart-of-accounts maintenance and balance mutation.

Responsibility:
    Creates, updates, deactivates and deletes accounts, seeds the standard
    chart for a new tenant, and applies postings to running balances.
    This is the only component that writes ``Account.current_balance``.

Architecture position:
    Kernel > Services -- imperative shell.
    ``apply_posting`` is called by JournalWriter inside the posting
    savepoint; the other methods are called by the process entry point.

Invariants enforced:
    - Account codes are upper-cased, trimmed and unique per tenant.
    - A parent resolves within the same tenant and has the same
      account_type as its child.
    - Balance direction comes from ``signed_delta`` only.
    - Accounts with children or journal lines are never deleted; seeded
      system accounts are never deleted, re-coded or re-typed.
    - Flush-only: never commits or rolls back the caller's transaction.

Failure modes:
    - DuplicateCodeError, InvalidParentError, AccountNotFoundError.
    - AccountHasChildrenError / AccountHasActivityError on delete.
    - SystemAccountError on delete or restructure of a system account.
    - ChartAlreadyInitializedError when seeding a non-empty chart.
    - OptimisticLockError when a balance update hits a stale row version.

Audit relevance:
    Structural changes are logged at INFO with account code and actor.
    Balance mutations are logged at DEBUG with the signed delta and the
    resulting balance.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_config.schema import ChartTemplate
from ledger_kernel.db.types import money_from_value
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo, ActingUser
from ledger_kernel.domain.values import (
    AccountType,
    NormalBalance,
    Side,
    default_normal_balance,
    signed_delta,
)
from ledger_kernel.exceptions import (
    AccountHasActivityError,
    AccountHasChildrenError,
    AccountNotFoundError,
    ChartAlreadyInitializedError,
    DuplicateCodeError,
    InvalidParentError,
    OptimisticLockError,
    SystemAccountError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.models.opening_balance import OpeningBalance
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


def normalize_code(code: str) -> str:
    """Canonical account code: trimmed and upper-cased."""
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValueError("Account code must not be empty")
    return normalized


class AccountService(BaseService[Account]):
    """
    Service for the chart of accounts.

    Contract:
        Every public method takes a tenant_id and only ever sees that
        tenant's accounts.  Mutations flush within the caller's transaction
        and return frozen ``AccountInfo`` DTOs.

    Guarantees:
        - ``apply_posting`` locks the account row (``SELECT ... FOR UPDATE``)
          and the ORM version counter rejects stale writes.
        - ``initialize_chart`` is all-or-nothing inside a savepoint.

    Non-goals:
        - Does NOT validate journal entries (JournalWriter does).
        - Does NOT retry on OptimisticLockError.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        chart: ChartTemplate | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._chart = chart

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _code_exists(
        self, tenant_id: UUID, code: str, exclude_id: UUID | None = None
    ) -> bool:
        stmt = select(Account.id).where(
            Account.tenant_id == tenant_id,
            Account.code == code,
        )
        if exclude_id is not None:
            stmt = stmt.where(Account.id != exclude_id)
        return self.session.execute(stmt).first() is not None

    def _child_count(self, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Account.id)).where(Account.parent_id == account_id)
        ).scalar_one()

    def _line_count(self, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(JournalLine.id)).where(
                JournalLine.account_id == account_id
            )
        ).scalar_one()

    def _resolve_parent(
        self, tenant_id: UUID, parent_id: UUID, account_type: AccountType
    ) -> Account:
        parent = self.session.execute(
            select(Account).where(
                Account.id == parent_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if parent is None:
            raise InvalidParentError(str(parent_id), "parent account not found")
        if AccountType(parent.account_type) != account_type:
            raise InvalidParentError(
                str(parent_id),
                f"parent type {parent.account_type} does not match "
                f"{account_type.value}",
            )
        return parent

    # =========================================================================
    # Structure
    # =========================================================================

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        actor: ActingUser,
        category: str | None = None,
        parent_id: UUID | None = None,
        normal_balance: NormalBalance | str | None = None,
        opening_balance: Decimal | int | str = 0,
        description: str | None = None,
        is_system_account: bool = False,
    ) -> AccountInfo:
        """
        Create an account.

        Preconditions:
            - name is non-empty.
            - parent_id, when given, names an account of the same tenant
              and the same account_type.

        Postconditions:
            - current_balance == opening_balance.
            - normal_balance defaults from account_type when omitted.

        Raises:
            DuplicateCodeError: Code already exists for the tenant.
            InvalidParentError: Parent missing or of a different type.
            ValueError: Empty code or name, or a float opening balance.
        """
        code = normalize_code(code)
        if not (name or "").strip():
            raise ValueError("Account name must not be empty")
        account_type = AccountType(account_type)
        normal = (
            NormalBalance(normal_balance)
            if normal_balance is not None
            else default_normal_balance(account_type)
        )
        opening = money_from_value(opening_balance)

        if self._code_exists(tenant_id, code):
            raise DuplicateCodeError(str(tenant_id), code)
        if parent_id is not None:
            self._resolve_parent(tenant_id, parent_id, account_type)

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name.strip(),
            account_type=account_type.value,
            category=category,
            parent_id=parent_id,
            normal_balance=normal.value,
            opening_balance=opening,
            current_balance=opening,
            is_active=True,
            is_system_account=is_system_account,
            description=description,
            created_by_id=actor.user_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "actor_id": str(actor.user_id),
            },
        )
        return AccountInfo.from_model(account)

    def update_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        actor: ActingUser,
        *,
        code: str | None = None,
        name: str | None = None,
        category: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        account_type: AccountType | str | None = None,
    ) -> AccountInfo:
        """
        Update descriptive fields of an account.

        Only arguments that are not None are applied.  Changing the type
        resets normal_balance to the new type's default and is refused once
        the account has journal lines or child accounts.

        Raises:
            AccountNotFoundError: Unknown account for the tenant.
            SystemAccountError: code or account_type change on a system
                account.
            DuplicateCodeError: New code already used by another account.
            AccountHasActivityError / AccountHasChildrenError: type change
                on an account already in use.
            InvalidParentError: New type differs from the parent's type.
        """
        account = self._get(tenant_id, account_id)
        changed: list[str] = []

        if code is not None:
            new_code = normalize_code(code)
            if new_code != account.code:
                if account.is_system_account:
                    raise SystemAccountError(account.code, "change the code of")
                if self._code_exists(tenant_id, new_code, exclude_id=account.id):
                    raise DuplicateCodeError(str(tenant_id), new_code)
                account.code = new_code
                changed.append("code")

        if account_type is not None:
            new_type = AccountType(account_type)
            if new_type != AccountType(account.account_type):
                if account.is_system_account:
                    raise SystemAccountError(account.code, "change the type of")
                line_count = self._line_count(account.id)
                if line_count:
                    raise AccountHasActivityError(str(account.id), line_count)
                child_count = self._child_count(account.id)
                if child_count:
                    raise AccountHasChildrenError(str(account.id), child_count)
                if account.parent_id is not None:
                    self._resolve_parent(tenant_id, account.parent_id, new_type)
                account.account_type = new_type.value
                account.normal_balance = default_normal_balance(new_type).value
                changed.append("account_type")

        if name is not None:
            if not name.strip():
                raise ValueError("Account name must not be empty")
            account.name = name.strip()
            changed.append("name")
        if category is not None:
            account.category = category
            changed.append("category")
        if description is not None:
            account.description = description
            changed.append("description")
        if is_active is not None:
            account.is_active = is_active
            changed.append("is_active")

        if changed:
            account.updated_by_id = actor.user_id
            self._flush(account)
            logger.info(
                "account_updated",
                extra={
                    "tenant_id": str(tenant_id),
                    "account_id": str(account.id),
                    "account_code": account.code,
                    "fields": changed,
                    "actor_id": str(actor.user_id),
                },
            )
        return AccountInfo.from_model(account)

    def deactivate_account(
        self, tenant_id: UUID, account_id: UUID, actor: ActingUser
    ) -> AccountInfo:
        """Soft-disable an account; it keeps its history but rejects postings."""
        return self.update_account(tenant_id, account_id, actor, is_active=False)

    def delete_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        actor: ActingUser | None = None,
    ) -> None:
        """
        Permanently remove an account that has never been used.

        Unposted staged opening balances for the account are removed with it.

        Raises:
            AccountNotFoundError: Unknown account for the tenant.
            SystemAccountError: Seeded system account.
            AccountHasChildrenError: Child accounts point at it.
            AccountHasActivityError: Journal lines reference it.
        """
        account = self._get(tenant_id, account_id)
        if account.is_system_account:
            raise SystemAccountError(account.code, "delete")

        child_count = self._child_count(account.id)
        if child_count:
            raise AccountHasChildrenError(str(account.id), child_count)

        line_count = self._line_count(account.id)
        if line_count:
            raise AccountHasActivityError(str(account.id), line_count)

        staged = self.session.execute(
            select(OpeningBalance).where(
                OpeningBalance.tenant_id == tenant_id,
                OpeningBalance.account_id == account.id,
                OpeningBalance.is_posted.is_(False),
            )
        ).scalars().all()
        for balance in staged:
            self.session.delete(balance)

        code = account.code
        self.session.delete(account)
        self.session.flush()

        logger.info(
            "account_deleted",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account_id),
                "account_code": code,
                "actor_id": str(actor.user_id) if actor else None,
            },
        )

    def initialize_chart(
        self,
        tenant_id: UUID,
        actor: ActingUser,
        chart: ChartTemplate | None = None,
    ) -> list[AccountInfo]:
        """
        Seed the standard chart of accounts for a new tenant.

        Two passes: every template account is created first, then parents
        are linked by parent_code.  All seeded accounts are system accounts.

        Raises:
            ChartAlreadyInitializedError: The tenant already has accounts.
            ValueError: No chart template was supplied or injected.
        """
        template = chart or self._chart
        if template is None:
            raise ValueError("No chart of accounts template configured")

        existing = self.session.execute(
            select(func.count(Account.id)).where(Account.tenant_id == tenant_id)
        ).scalar_one()
        if existing:
            raise ChartAlreadyInitializedError(str(tenant_id), existing)

        savepoint = self.session.begin_nested()
        try:
            by_code: dict[str, Account] = {}
            for item in template.accounts:
                account_type = AccountType(item.account_type)
                normal = (
                    NormalBalance(item.normal_balance)
                    if item.normal_balance
                    else default_normal_balance(account_type)
                )
                account = Account(
                    tenant_id=tenant_id,
                    code=normalize_code(item.code),
                    name=item.name,
                    account_type=account_type.value,
                    category=item.category,
                    normal_balance=normal.value,
                    opening_balance=Decimal("0"),
                    current_balance=Decimal("0"),
                    is_active=True,
                    is_system_account=True,
                    description=item.description,
                    created_by_id=actor.user_id,
                )
                self.session.add(account)
                by_code[account.code] = account
            self.session.flush()

            for item in template.accounts:
                if not item.parent_code:
                    continue
                child = by_code[normalize_code(item.code)]
                parent = by_code.get(normalize_code(item.parent_code))
                if parent is None:
                    raise InvalidParentError(
                        item.parent_code, f"parent code not in chart for {child.code}"
                    )
                if parent.account_type != child.account_type:
                    raise InvalidParentError(
                        parent.code,
                        f"parent type {parent.account_type} does not match "
                        f"{child.account_type}",
                    )
                child.parent_id = parent.id
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "chart_initialized",
            extra={
                "tenant_id": str(tenant_id),
                "account_count": len(by_code),
                "actor_id": str(actor.user_id),
            },
        )
        return [AccountInfo.from_model(a) for a in by_code.values()]

    # =========================================================================
    # Balance mutation
    # =========================================================================

    def lock_account(self, account_id: UUID) -> Account:
        """
        Load an account row ``FOR UPDATE``.

        Raises:
            AccountNotFoundError: No such account.
        """
        account = self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def apply_posting(
        self,
        account_id: UUID,
        amount: Decimal,
        side: Side | str,
    ) -> Decimal:
        """
        Apply one posted line to an account's running balance.

        Internal: called only by JournalWriter inside its savepoint.

        Preconditions:
            amount >= 0.

        Postconditions:
            current_balance moves by +amount when side matches the normal
            balance, by -amount otherwise.  The row version increments.

        Returns:
            The new current_balance.

        Raises:
            AccountNotFoundError: No such account.
            OptimisticLockError: The row changed since it was read.
        """
        account = self.lock_account(account_id)
        delta = signed_delta(amount, side, account.normal_balance)
        account.current_balance = account.current_balance + delta
        self._flush(account)

        logger.debug(
            "account_balance_applied",
            extra={
                "account_id": str(account.id),
                "account_code": account.code,
                "side": Side(side).value,
                "delta": str(delta),
                "balance": str(account.current_balance),
            },
        )
        return account.current_balance

    def _flush(self, account: Account) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("Account", str(account.id)) from exc
