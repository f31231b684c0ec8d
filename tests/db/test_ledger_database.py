"""
Storage handle tests.

Verifies:
- session_scope() commits on success and rolls back on error
- SQLite connections enforce foreign keys
- Savepoints roll back independently of the outer transaction
"""

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from ledger_kernel.models.account import Account
from ledger_kernel.services.account_service import AccountService


def _account_count(database, tenant_id) -> int:
    with database.session_scope() as session:
        return session.execute(
            select(func.count()).select_from(Account).where(Account.tenant_id == tenant_id)
        ).scalar_one()


class TestSessionScope:

    def test_commits_on_success(self, database, tenant_id, owner, deterministic_clock):
        with database.session_scope() as session:
            AccountService(session, clock=deterministic_clock).create_account(
                tenant_id, "1010", "Cash", "asset", owner
            )

        assert _account_count(database, tenant_id) == 1

    def test_rolls_back_on_error(self, database, tenant_id, owner, deterministic_clock):
        with pytest.raises(RuntimeError):
            with database.session_scope() as session:
                AccountService(session, clock=deterministic_clock).create_account(
                    tenant_id, "1010", "Cash", "asset", owner
                )
                raise RuntimeError("abort")

        assert _account_count(database, tenant_id) == 0


class TestSqliteBehaviour:

    def test_foreign_keys_enforced(self, database):
        if database.dialect_name != "sqlite":
            pytest.skip("SQLite pragma check")

        with database.session_scope() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar_one() == 1

    def test_savepoint_rollback_keeps_outer_work(
        self, session, tenant_id, owner, deterministic_clock
    ):
        service = AccountService(session, clock=deterministic_clock)
        service.create_account(tenant_id, "1010", "Cash", "asset", owner)

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(
                    Account(
                        tenant_id=tenant_id,
                        code="9999",
                        name="Dangling child",
                        account_type="asset",
                        normal_balance="debit",
                        parent_id=tenant_id,
                        created_by_id=owner.user_id,
                    )
                )
                session.flush()

        codes = session.execute(
            select(Account.code).where(Account.tenant_id == tenant_id)
        ).scalars().all()
        assert codes == ["1010"]
