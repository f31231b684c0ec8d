"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read-only account lookups and the chart-of-accounts tree.
Architecture position: Kernel > Selectors.

Failure modes:
    - get() and get_by_code() return None for unknown accounts, including
      accounts that belong to another tenant.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.hierarchy import AccountNode, build_hierarchy
from ledger_kernel.domain.values import AccountType
from ledger_kernel.models.account import Account
from ledger_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[Account]):
    """Selector for account queries."""

    def get(self, tenant_id: UUID, account_id: UUID) -> AccountInfo | None:
        account = self.session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return AccountInfo.from_model(account) if account else None

    def get_by_code(self, tenant_id: UUID, code: str) -> AccountInfo | None:
        account = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code.strip().upper(),
            )
        ).scalar_one_or_none()
        return AccountInfo.from_model(account) if account else None

    def list_accounts(
        self,
        tenant_id: UUID,
        account_type: AccountType | str | None = None,
        is_active: bool | None = None,
        category: str | None = None,
    ) -> list[AccountInfo]:
        """
        List a tenant's accounts ordered by code.

        Args:
            tenant_id: Owning tenant.
            account_type: Optional type filter (case-insensitive).
            is_active: Optional active/inactive filter.
            category: Optional exact category filter.
        """
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if is_active is not None:
            stmt = stmt.where(Account.is_active == is_active)
        if category is not None:
            stmt = stmt.where(Account.category == category)
        stmt = stmt.order_by(Account.code)
        return [AccountInfo.from_model(a) for a in self.session.execute(stmt).scalars()]

    def hierarchy(self, tenant_id: UUID) -> list[AccountNode]:
        """The tenant's chart of accounts as a forest of AccountNode roots."""
        return build_hierarchy(self.list_accounts(tenant_id))
