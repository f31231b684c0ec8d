"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for monetary
    columns.  Centralizes precision so every model and service uses identical
    definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    No floats anywhere in the ledger kernel.  Amounts are Decimal, stored
    as Numeric(38, 9) and rounded to currency units with round_money().

Failure modes:
    - ValueError when money_from_value() receives a float or a non-numeric
      string.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions
LongText = Annotated[str, String(500)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def money_from_value(value: Decimal | int | str) -> Decimal:
    """
    Coerce an inbound amount to Decimal.

    Floats are rejected outright: a caller holding a float has already
    lost precision, and silently accepting it hides that.

    Raises:
        ValueError: If value is a float, NaN or infinite, or a string that
            is not a number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Monetary amounts must not be float: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Monetary amounts must be finite: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """
    Round a Decimal to currency units.

    This is the ONLY sanctioned rounding function for amounts leaving the
    kernel (DTOs, summaries, trial balance rows).
    """
    return value.quantize(_MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)
