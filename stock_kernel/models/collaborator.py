"""
Module: stock_kernel.models.collaborator
Responsibility: Backing table for the default collaborator directory.
Architecture position: Kernel > Models.  May import from db/ only.

A collaborator is the person responsible for a stock movement.  Only
collaborators whose status is one of the configured active statuses may be
named on a movement.
"""

from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UTCDateTime


class Collaborator(Base):
    """A person who can be responsible for stock movements."""

    __tablename__ = "collaborators"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Collaborator {self.name} ({self.status})>"
