"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.ledger_services import LedgerServices
from ledger_kernel.services.opening_balance_service import OpeningBalanceService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "JournalWriter",
    "LedgerServices",
    "OpeningBalanceService",
    "PeriodService",
    "ReversalResult",
    "ReversalService",
    "SequenceService",
]
