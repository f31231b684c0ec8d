"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.financial_period import FinancialPeriod
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.models.opening_balance import OpeningBalance
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "EntryType",
    "FinancialPeriod",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "OpeningBalance",
    "SequenceCounter",
]
