"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A fresh database per test (in-memory SQLite unless DATABASE_URL is set)
- A deterministic clock and acting users for each role
- Wired services and a tenant seeded with the standard chart of accounts
- Captured structured log records

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL (e.g. a PostgreSQL test database).
  Tests marked ``postgres`` are skipped when it is not set.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_config import load_chart_template, load_settings
from ledger_kernel.db.engine import LedgerDatabase
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import ActingUser, LineSpec, Role
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.journal import EntryType
from ledger_kernel.services.ledger_services import LedgerServices

IN_MEMORY_URL = "sqlite+pysqlite:///:memory:"

# Clock reading used by every test: 2024-03-20, inside the March period
TEST_NOW = datetime(2024, 3, 20, 12, 0, 0, tzinfo=timezone.utc)


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", IN_MEMORY_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL does not point at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.journal_writer.create_entry(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database():
    db = LedgerDatabase(get_database_url())
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def session(database):
    session = database.session()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture(scope="session")
def settings():
    return load_settings()


@pytest.fixture(scope="session")
def chart():
    return load_chart_template()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def owner():
    return ActingUser(user_id=uuid4(), role=Role.OWNER)


@pytest.fixture
def accountant():
    return ActingUser(user_id=uuid4(), role=Role.ACCOUNTANT)


@pytest.fixture
def staff():
    return ActingUser(user_id=uuid4(), role=Role.STAFF)


@pytest.fixture
def ledger(session, settings, chart, deterministic_clock):
    """All services wired for the test session."""
    return LedgerServices(
        session, settings=settings, chart=chart, clock=deterministic_clock
    )


@pytest.fixture
def seeded_accounts(ledger, tenant_id, owner):
    """The standard chart for ``tenant_id``, keyed by account code."""
    accounts = ledger.account_service.initialize_chart(tenant_id, owner)
    return {a.code: a for a in accounts}


@pytest.fixture
def account_ids(seeded_accounts):
    return {code: info.id for code, info in seeded_accounts.items()}


@pytest.fixture
def post_entry(ledger, tenant_id, owner, account_ids):
    """
    Post a two-line entry by account code.

    Usage::

        entry = post_entry("1010", "6010", "1000.00")
    """

    def _post(
        debit_code: str,
        credit_code: str,
        amount,
        entry_date: date = date(2024, 3, 15),
        actor: ActingUser | None = None,
        description: str = "Test entry",
        entry_type: EntryType = EntryType.MANUAL,
    ):
        amount = Decimal(str(amount))
        return ledger.journal_writer.create_entry(
            tenant_id=tenant_id,
            entry_date=entry_date,
            description=description,
            lines=[
                LineSpec.debit_line(account_ids[debit_code], amount),
                LineSpec.credit_line(account_ids[credit_code], amount),
            ],
            entry_type=entry_type,
            actor=actor or owner,
        )

    return _post


@pytest.fixture
def balance_of(ledger, tenant_id, account_ids):
    """Current balance of an account by code."""

    def _balance(code: str, as_of: date | None = None) -> Decimal:
        return ledger.ledger_selector.account_balance(
            tenant_id, account_ids[code], as_of=as_of
        )

    return _balance
