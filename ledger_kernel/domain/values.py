"""
Values -- Account classification and signed-direction rules.

Responsibility:
    Defines the account type and debit/credit enums and the single rule
    that turns a posting side into a signed change in an account balance.
    Seeding, postings, reversals and opening balances all go through
    ``signed_delta`` so the direction rule cannot drift between callers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models/, services/ and selectors/.

Invariants enforced:
    - A posting on an account's normal side increases its balance; a
      posting on the opposite side decreases it.
    - ASSET and EXPENSE accounts are debit-normal unless told otherwise;
      LIABILITY, EQUITY and REVENUE accounts are credit-normal.

Failure modes:
    - ValueError from ``signed_delta`` on a negative amount.
"""

from datetime import date
from decimal import Decimal
from enum import Enum


class LenientEnum(str, Enum):
    """String enum that also accepts its values in any case."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class AccountType(LenientEnum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(LenientEnum):
    """Debit or credit: an account's normal side, or the side of a posting."""

    DEBIT = "debit"
    CREDIT = "credit"

    @property
    def opposite(self) -> "NormalBalance":
        if self is NormalBalance.DEBIT:
            return NormalBalance.CREDIT
        return NormalBalance.DEBIT


# A journal line's side uses the same two values.
Side = NormalBalance

# Maximum |debits - credits| accepted for a journal entry.
BALANCE_TOLERANCE = Decimal("0.01")

_DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


def default_normal_balance(account_type: AccountType | str) -> NormalBalance:
    """Normal balance implied by an account type."""
    if AccountType(account_type) in _DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def signed_delta(
    amount: Decimal,
    side: Side | str,
    normal_balance: NormalBalance | str,
) -> Decimal:
    """
    Change in an account's balance caused by posting ``amount`` on ``side``.

    Preconditions:
        amount >= 0.

    Returns:
        +amount when side matches the normal balance, otherwise -amount.

    Raises:
        ValueError: If amount is negative.
    """
    if amount < 0:
        raise ValueError(f"Posting amount must be non-negative: {amount}")
    if Side(side) == NormalBalance(normal_balance):
        return amount
    return -amount


def period_of(entry_date: date) -> tuple[int, int]:
    """The (year, month) period a date falls in."""
    return entry_date.year, entry_date.month
