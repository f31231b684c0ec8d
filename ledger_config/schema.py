"""
Configuration schema (``ledger_config.schema``).

Frozen dataclasses describing ledger settings and the standard chart of
accounts.  Parsing lives in ``ledger_config.loader``; these types carry no
I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class LedgerSettings:
    """
    Ledger-wide settings injected into the kernel services.

    Attributes:
        balance_tolerance: Largest accepted |debits - credits| per entry.
        entry_number_prefix: Prefix of rendered entry numbers ("JE-000001").
        opening_balance_offset_code: Account that absorbs the other side of
            every opening balance.
        override_roles: Roles allowed to post into, and unlock, locked
            periods.
        lock_roles: Roles allowed to lock a period.
        currency: ISO 4217 code of the tenant's book currency.
    """

    balance_tolerance: Decimal = Decimal("0.01")
    entry_number_prefix: str = "JE"
    opening_balance_offset_code: str = "5040"
    override_roles: tuple[str, ...] = ("owner",)
    lock_roles: tuple[str, ...] = ("owner", "accountant")
    currency: str = "JMD"

    def __post_init__(self) -> None:
        if self.balance_tolerance < 0:
            raise ValueError(
                f"balance_tolerance must be non-negative: {self.balance_tolerance}"
            )
        if not self.entry_number_prefix:
            raise ValueError("entry_number_prefix must not be empty")
        if not self.opening_balance_offset_code:
            raise ValueError("opening_balance_offset_code must not be empty")


@dataclass(frozen=True)
class AccountTemplate:
    """One account of the standard chart."""

    code: str
    name: str
    account_type: str
    category: str | None = None
    parent_code: str | None = None
    normal_balance: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ChartTemplate:
    """Ordered list of template accounts; parents precede children."""

    accounts: tuple[AccountTemplate, ...] = field(default_factory=tuple)

    def codes(self) -> list[str]:
        return [a.code for a in self.accounts]

    def get(self, code: str) -> AccountTemplate | None:
        for account in self.accounts:
            if account.code == code:
                return account
        return None
