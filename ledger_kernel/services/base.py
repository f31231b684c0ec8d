"""
BaseService -- shared constructor for the ledger's write services.

Services receive the caller's Session and only ever ``flush()``.  The
outer transaction belongs to whoever created the session
(``LedgerDatabase.session_scope()`` in production, a fixture in tests).
A service may open a SAVEPOINT with ``session.begin_nested()`` to make one
operation all-or-nothing; it never commits or rolls back anything it did
not open.  Read-only queries live in ``ledger_kernel.selectors``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the session; ``ModelType`` names the table the service owns."""

    def __init__(self, session: Session):
        self.session = session
