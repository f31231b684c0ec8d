"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP controllers, import jobs, report builders) must react to
ledger failures without parsing message strings.  Every exception here:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (year/month, account ids, totals)

Example:
    try:
        writer.create_entry(...)
    except PeriodLockedError as e:
        prompt_for_unlock(year=e.year, month=e.month)
    except UnbalancedEntryError as e:
        api_response(code=e.code, debits=e.debits, credits=e.credits)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- DuplicateCodeError
    |   +-- InvalidParentError
    |   +-- AccountHasChildrenError
    |   +-- AccountHasActivityError
    |   +-- SystemAccountError
    |   +-- ChartAlreadyInitializedError
    |
    +-- PostingError
    |   +-- InvalidEntryError
    |   +-- InvalidLineError
    |   +-- UnbalancedEntryError
    |
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- AlreadyLockedError
    |   +-- NotLockedError
    |   +-- InsufficientPrivilegeError
    |   +-- UnlockReasonRequiredError
    |   +-- InvalidPeriodError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- AlreadyReversedError
    |   +-- CannotReverseReversalError
    |
    +-- OpeningBalanceError
    |   +-- OffsetAccountNotFoundError
    |   +-- OffsetAccountStagedError
    |   +-- OpeningBalanceAlreadyPostedError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
PROPAGATION
===============================================================================

Balance and lock violations always abort the triggering operation.  The
opening-balance batch is the one caller that catches LedgerKernelError per
item, records it, and continues.  Nothing in the kernel retries.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist within the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, account_code: str):
        self.account_id = account_id
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class DuplicateCodeError(AccountError):
    """Account code already exists for the tenant."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class InvalidParentError(AccountError):
    """Parent account is missing or has an incompatible type."""

    code: str = "INVALID_PARENT"

    def __init__(self, parent_id: str, reason: str):
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(f"Invalid parent account {parent_id}: {reason}")


class AccountHasChildrenError(AccountError):
    """Account cannot be deleted while child accounts point at it."""

    code: str = "ACCOUNT_HAS_CHILDREN"

    def __init__(self, account_id: str, child_count: int):
        self.account_id = account_id
        self.child_count = child_count
        super().__init__(
            f"Account {account_id} has {child_count} child account(s)"
        )


class AccountHasActivityError(AccountError):
    """Account cannot be deleted once journal lines reference it."""

    code: str = "ACCOUNT_HAS_ACTIVITY"

    def __init__(self, account_id: str, line_count: int):
        self.account_id = account_id
        self.line_count = line_count
        super().__init__(
            f"Account {account_id} has {line_count} posted line(s); "
            "deactivate it instead"
        )


class SystemAccountError(AccountError):
    """Seeded system accounts cannot be deleted or restructured."""

    code: str = "SYSTEM_ACCOUNT"

    def __init__(self, account_code: str, operation: str):
        self.account_code = account_code
        self.operation = operation
        super().__init__(
            f"Cannot {operation} system account {account_code}"
        )


class ChartAlreadyInitializedError(AccountError):
    """Tenant already has accounts; the standard chart is seeded only once."""

    code: str = "CHART_ALREADY_INITIALIZED"

    def __init__(self, tenant_id: str, account_count: int):
        self.tenant_id = tenant_id
        self.account_count = account_count
        super().__init__(
            f"Chart of accounts already initialized for tenant {tenant_id} "
            f"({account_count} accounts)"
        )


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for journal entry validation errors."""

    code: str = "POSTING_ERROR"


class InvalidEntryError(PostingError):
    """Journal entry is structurally invalid (e.g. fewer than two lines)."""

    code: str = "INVALID_ENTRY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid journal entry: {reason}")


class InvalidLineError(PostingError):
    """A line must carry exactly one non-zero, non-negative side."""

    code: str = "INVALID_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Invalid line {line_index}: {reason}")


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits within tolerance."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, tolerance: str):
        self.debits = debits
        self.credits = credits
        self.tolerance = tolerance
        super().__init__(
            f"Unbalanced entry: debits={debits}, credits={credits} "
            f"(tolerance {tolerance})"
        )


# Period-related exceptions


class PeriodError(LedgerKernelError):
    """Base exception for financial period errors."""

    code: str = "PERIOD_ERROR"


class PeriodLockedError(PeriodError):
    """Posting dated inside a locked period by an actor without override."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, year: int, month: int, entry_date: str):
        self.year = year
        self.month = month
        self.entry_date = entry_date
        super().__init__(
            f"Period {year}-{month:02d} is locked (entry_date: {entry_date})"
        )


class AlreadyLockedError(PeriodError):
    """Lock requested on a period that is already locked."""

    code: str = "PERIOD_ALREADY_LOCKED"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(f"Period {year}-{month:02d} is already locked")


class NotLockedError(PeriodError):
    """Unlock requested on a period that is open."""

    code: str = "PERIOD_NOT_LOCKED"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(f"Period {year}-{month:02d} is not locked")


class InsufficientPrivilegeError(PeriodError):
    """Acting user lacks the owner-equivalent role for the operation."""

    code: str = "INSUFFICIENT_PRIVILEGE"

    def __init__(self, user_id: str, role: str, operation: str):
        self.user_id = user_id
        self.role = role
        self.operation = operation
        super().__init__(
            f"User {user_id} with role {role} cannot {operation}"
        )


class UnlockReasonRequiredError(PeriodError):
    """Unlocking a period requires a non-empty reason for the audit trail."""

    code: str = "UNLOCK_REASON_REQUIRED"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(
            f"A reason is required to unlock period {year}-{month:02d}"
        )


class InvalidPeriodError(PeriodError):
    """Year or month outside the accepted range."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(f"Invalid period: year={year}, month={month}")


# Reversal-related exceptions


class ReversalError(LedgerKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry does not exist within the tenant."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class AlreadyReversedError(ReversalError):
    """Journal entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str, reversed_by_id: str | None):
        self.journal_entry_id = journal_entry_id
        self.reversed_by_id = reversed_by_id
        super().__init__(
            f"Journal entry {journal_entry_id} was already reversed "
            f"by {reversed_by_id}"
        )


class CannotReverseReversalError(ReversalError):
    """A reversing entry cannot itself be reversed."""

    code: str = "CANNOT_REVERSE_REVERSAL"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(
            f"Journal entry {journal_entry_id} is a reversal and cannot be reversed"
        )


# Opening balance exceptions


class OpeningBalanceError(LedgerKernelError):
    """Base exception for opening balance errors."""

    code: str = "OPENING_BALANCE_ERROR"


class OffsetAccountNotFoundError(OpeningBalanceError):
    """The equity/suspense account that offsets opening balances is missing."""

    code: str = "OFFSET_ACCOUNT_NOT_FOUND"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Opening balance offset account {account_code} not found "
            f"for tenant {tenant_id}"
        )


class OffsetAccountStagedError(OpeningBalanceError):
    """An opening balance cannot target the offset account itself."""

    code: str = "OFFSET_ACCOUNT_STAGED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Cannot stage an opening balance against offset account {account_code}"
        )


class OpeningBalanceAlreadyPostedError(OpeningBalanceError):
    """Staged value for this account and date was already posted."""

    code: str = "OPENING_BALANCE_ALREADY_POSTED"

    def __init__(self, account_id: str, as_of_date: str):
        self.account_id = account_id
        self.as_of_date = as_of_date
        super().__init__(
            f"Opening balance for account {account_id} as of {as_of_date} "
            "is already posted"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """
    Concurrent modification of an account balance detected.

    Raised when the version counter on a row no longer matches the value
    read at the start of the read-modify-write.
    """

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}"
        )
