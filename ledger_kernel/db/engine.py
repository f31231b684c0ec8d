"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  The LedgerDatabase handle is the single
    point of database connection configuration for a process.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except for create_tables/drop_tables which import models).

Invariants enforced:
    - No module-level engine state.  The process entry point constructs one
      LedgerDatabase, owns its lifecycle, and passes sessions to services.
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (FOR UPDATE) where stronger isolation is needed.
    - SQLite connections enforce foreign keys and support SAVEPOINT, so
      nested transactions behave the same as on PostgreSQL.

Failure modes:
    - OperationalError / connection errors propagate from SQLAlchemy.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    All ledger transactions flow through sessions created by this module.
    session_scope() guarantees atomic commit-or-rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")


class LedgerDatabase:
    """
    Explicit storage handle wrapping an engine and its session factory.

    Contract:
        Constructed once by the process entry point with a database URL.
        Services never create sessions themselves; they receive one.

    Guarantees:
        - session_scope() commits on success and rolls back on error.
        - SQLite engines get the foreign-key pragma and the pysqlite
          SAVEPOINT recipe so begin_nested() is reliable.

    Non-goals:
        - Does NOT run migrations; create_tables() is for tests and
          embedded use.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        pool_recycle: int = 1800,
    ):
        self.url = url
        self._engine = self._build_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
        )
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False
        )
        logger.info(
            "engine_initialized",
            extra={"dialect": self._engine.dialect.name, "echo": echo},
        )

    @staticmethod
    def _build_engine(url: str, **options) -> Engine:
        if url.startswith("sqlite"):
            engine_kwargs: dict = {"echo": options["echo"]}
            if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
                # One shared connection, otherwise each checkout sees an
                # empty database.
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine = create_engine(url, **engine_kwargs)
            _install_sqlite_hooks(engine)
            return engine

        return create_engine(
            url,
            echo=options["echo"],
            pool_size=options["pool_size"],
            max_overflow=options["max_overflow"],
            pool_pre_ping=options["pool_pre_ping"],
            pool_recycle=options["pool_recycle"],
            isolation_level="READ COMMITTED",
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def session(self) -> Session:
        """Return a new, unmanaged session. Caller must close it."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed.  The exception
            is re-raised to the caller.

        Usage:
            with db.session_scope() as session:
                writer = JournalWriter(session, ...)
                writer.create_entry(...)
        """
        session = self.session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """
        Create all ledger tables.

        Imports the model package so Base.metadata contains every table.
        """
        from ledger_kernel.db.base import Base
        import ledger_kernel.models  # noqa: F401

        Base.metadata.create_all(self._engine)
        logger.info(
            "tables_created",
            extra={"table_count": len(Base.metadata.tables)},
        )

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from ledger_kernel.db.base import Base
        import ledger_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()


def _install_sqlite_hooks(engine: Engine) -> None:
    """
    Make pysqlite honour SAVEPOINT and foreign keys.

    pysqlite's own transaction handling defers BEGIN and breaks nested
    transactions; autocommit is turned off at the driver level and
    SQLAlchemy emits BEGIN itself.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")
