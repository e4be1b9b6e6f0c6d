"""
Module: stock_kernel.models.sequence_counter
Responsibility: Named counter rows behind SequenceService.
Architecture position: Kernel > Models.  May import from db/ only.

The locked counter row is the only source of the next value; the
max-plus-one query is never used.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SequenceCounter(Base):
    """One named, monotonically increasing counter."""

    __tablename__ = "sequence_counters"

    # e.g. "audit_event"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
