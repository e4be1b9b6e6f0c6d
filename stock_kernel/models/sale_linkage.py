"""
Module: stock_kernel.models.sale_linkage
Responsibility: ORM persistence for the link between a SALE movement and
    the order line that sold it, with the cost basis frozen at sale time.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - unit_cost_basis is copied from the variant's average cost when the
      sale is recorded and never changes afterwards (write-once row).
    - One linkage per movement.

Audit relevance:
    Profitability reports read unit_cost_basis, never the variant's current
    cost, so past margins stay what they were when the sale happened.
    unit_cost_basis is NULL only for sales imported without a snapshot;
    those fall back to the movement's real_unit_cost.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class SaleLinkage(Base):
    """Frozen sale facts for one SALE movement."""

    __tablename__ = "sale_linkages"

    __table_args__ = (
        Index("idx_sale_linkage_order", "order_id"),
    )

    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_movements.id"),
        nullable=False,
        unique=True,
    )

    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_sale_price: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost_basis: Mapped[Decimal | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<SaleLinkage order={self.order_id} x{self.quantity} @ {self.unit_sale_price}>"
