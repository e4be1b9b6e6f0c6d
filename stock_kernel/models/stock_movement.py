"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are write-once: no UPDATE, no DELETE (ORM listener + PostgreSQL
      trigger).  Corrections are compensating movements.
    - (variant_id, variant_version) is unique: each movement moves its
      variant to exactly one new version.
    - quantity is a positive integer; direction comes from movement_type.

Audit relevance:
    resulting_quantity and resulting_average_cost record the variant's
    position right after the movement, so the state at any point in time
    can be read off the ledger without replaying it.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.dtos import MovementType

if TYPE_CHECKING:
    from stock_kernel.models.sale_linkage import SaleLinkage


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class StockMovement(Base):
    """
    One immutable stock movement.

    Guarantees:
        - real_unit_cost is the entry's invoiced cost plus freight per unit,
          or the variant's average cost at the time for any other type.
        - recorded_at is set by the service clock; occurred_at is the
          business date supplied by the caller.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("variant_id", "variant_version", name="uq_movement_variant_version"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("idx_movement_variant_occurred", "variant_id", "occurred_at"),
        Index("idx_movement_type", "movement_type"),
    )

    variant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("variants.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        SAEnum(
            MovementType,
            native_enum=False,
            length=30,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Cost inputs (entries only)
    unit_cost_invoice: Mapped[Decimal | None] = mapped_column(nullable=True)

    additional_costs: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    real_unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    # Variant position after this movement
    resulting_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    resulting_average_cost: Mapped[Decimal] = mapped_column(nullable=False)

    variant_version: Mapped[int] = mapped_column(Integer, nullable=False)

    responsible_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    source_document: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sale_linkage: Mapped["SaleLinkage | None"] = relationship(
        "SaleLinkage",
        uselist=False,
        lazy="selectin",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<StockMovement {self.movement_type.value} x{self.quantity} v{self.variant_version}>"

    @property
    def signed_quantity(self) -> int:
        return self.movement_type.sign * self.quantity
