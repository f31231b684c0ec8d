"""
Module: ledger_kernel.models.sequence
Responsibility: One row per named counter; the journal uses one per tenant
    (``journal_entry:<tenant_id>``).
Architecture position: Kernel > Models.  May import from db/ only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """Last value handed out for ``name``; locked FOR UPDATE to increment."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
