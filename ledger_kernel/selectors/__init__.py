"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import AccountActivity, LedgerSelector

__all__ = [
    "AccountActivity",
    "AccountSelector",
    "LedgerSelector",
]
