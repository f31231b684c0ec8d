"""
Concurrent access to shared ledger rows.

Verifies:
- A write based on a stale Account row is refused (version counter)
- Balance updates re-read the locked row, so a committed posting from
  another session is never overwritten
- Entry numbers stay distinct and contiguous across sessions, including
  when one session rolls back
- Under real parallel load (PostgreSQL only), no entry number repeats and
  no balance update is lost

The interleaved tests need a database that outlives a single connection,
so they run on a file-backed SQLite database unless DATABASE_URL names
another server.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import select

from ledger_kernel.db.engine import LedgerDatabase
from ledger_kernel.domain.dtos import ActingUser, LineSpec, Role
from ledger_kernel.exceptions import OptimisticLockError
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import EntryType, JournalEntry
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.ledger_services import LedgerServices

ENTRY_DATE = date(2024, 3, 15)


@pytest.fixture
def shared_database(tmp_path):
    url = os.environ.get("DATABASE_URL")
    if not url or ":memory:" in url:
        url = f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}"
    db = LedgerDatabase(url)
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def seeded_tenant(shared_database, chart, settings, deterministic_clock):
    """A committed tenant with the standard chart; returns (tenant_id, owner, ids)."""
    tenant_id = uuid4()
    owner = ActingUser(user_id=uuid4(), role=Role.OWNER)
    with shared_database.session_scope() as session:
        services = LedgerServices(
            session, settings=settings, chart=chart, clock=deterministic_clock
        )
        accounts = services.account_service.initialize_chart(tenant_id, owner)
    return tenant_id, owner, {a.code: a.id for a in accounts}


def _post(session, settings, chart, clock, tenant_id, owner, ids, amount):
    services = LedgerServices(session, settings=settings, chart=chart, clock=clock)
    return services.journal_writer.create_entry(
        tenant_id, ENTRY_DATE, "Cash sale",
        [LineSpec.debit_line(ids["1010"], Decimal(amount)),
         LineSpec.credit_line(ids["6010"], Decimal(amount))],
        EntryType.MANUAL, owner,
    )


def _committed_balance(database, account_id) -> Decimal:
    with database.session_scope() as session:
        return session.execute(
            select(Account.current_balance).where(Account.id == account_id)
        ).scalar_one()


class TestInterleavedSessions:

    def test_stale_account_write_rejected(
        self, shared_database, seeded_tenant, settings, chart, deterministic_clock
    ):
        tenant_id, owner, ids = seeded_tenant

        session_a = shared_database.session()
        try:
            stale = session_a.get(Account, ids["1010"])
            stale_version = stale.version
            session_a.commit()

            with shared_database.session_scope() as session_b:
                _post(session_b, settings, chart, deterministic_clock,
                      tenant_id, owner, ids, "100")

            with pytest.raises(OptimisticLockError):
                AccountService(session_a, clock=deterministic_clock).update_account(
                    tenant_id, ids["1010"], owner, name="Petty Cash"
                )
            session_a.rollback()
        finally:
            session_a.close()

        with shared_database.session_scope() as session:
            account = session.get(Account, ids["1010"])
            assert account.name == "Cash"
            assert account.version > stale_version
            assert account.current_balance == Decimal("100")

    def test_balance_update_rereads_committed_row(
        self, shared_database, seeded_tenant, settings, chart, deterministic_clock
    ):
        tenant_id, owner, ids = seeded_tenant

        session_a = shared_database.session()
        try:
            # Load the row into session A before session B changes it
            assert session_a.get(Account, ids["1010"]).current_balance == 0
            session_a.commit()

            with shared_database.session_scope() as session_b:
                _post(session_b, settings, chart, deterministic_clock,
                      tenant_id, owner, ids, "100")

            _post(session_a, settings, chart, deterministic_clock,
                  tenant_id, owner, ids, "50")
            session_a.commit()
        finally:
            session_a.close()

        assert _committed_balance(shared_database, ids["1010"]) == Decimal("150")
        assert _committed_balance(shared_database, ids["6010"]) == Decimal("150")

    def test_sequence_contiguous_across_sessions(
        self, shared_database, seeded_tenant, settings, chart, deterministic_clock
    ):
        tenant_id, owner, ids = seeded_tenant
        args = (settings, chart, deterministic_clock, tenant_id, owner, ids)

        with shared_database.session_scope() as session:
            _post(session, *args, "10")

        rolled_back = shared_database.session()
        try:
            _post(rolled_back, *args, "20")
            rolled_back.rollback()
        finally:
            rolled_back.close()

        for amount in ("30", "40"):
            with shared_database.session_scope() as session:
                _post(session, *args, amount)

        with shared_database.session_scope() as session:
            entries = session.execute(
                select(JournalEntry.seq, JournalEntry.entry_number)
                .where(JournalEntry.tenant_id == tenant_id)
                .order_by(JournalEntry.seq)
            ).all()

        assert [e.seq for e in entries] == [1, 2, 3]
        assert [e.entry_number for e in entries] == ["JE-000001", "JE-000002", "JE-000003"]


@pytest.mark.postgres
class TestParallelPosting:

    WORKERS = 4
    POSTS_PER_WORKER = 5

    def test_parallel_postings_do_not_collide(
        self, shared_database, seeded_tenant, settings, chart, deterministic_clock
    ):
        tenant_id, owner, ids = seeded_tenant
        barrier = Barrier(self.WORKERS)

        def worker(_):
            barrier.wait()
            numbers = []
            for _ in range(self.POSTS_PER_WORKER):
                with shared_database.session_scope() as session:
                    entry = _post(session, settings, chart, deterministic_clock,
                                  tenant_id, owner, ids, "10")
                    numbers.append(entry.entry_number)
            return numbers

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            results = list(pool.map(worker, range(self.WORKERS)))

        total = self.WORKERS * self.POSTS_PER_WORKER
        numbers = [n for batch in results for n in batch]
        assert len(set(numbers)) == total
        assert sorted(numbers) == [f"JE-{n:06d}" for n in range(1, total + 1)]
        assert _committed_balance(shared_database, ids["1010"]) == Decimal(10 * total)
