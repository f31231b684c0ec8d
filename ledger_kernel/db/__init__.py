"""Database infrastructure for the ledger kernel."""

from ledger_kernel.db.base import Base, TenantScopedBase, TrackedBase, UUIDString
from ledger_kernel.db.engine import LedgerDatabase

__all__ = [
    "Base",
    "TrackedBase",
    "TenantScopedBase",
    "UUIDString",
    "LedgerDatabase",
]
