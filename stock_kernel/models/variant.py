"""
Module: stock_kernel.models.variant
Responsibility: ORM persistence for product variants (stock-keeping units)
    and their derived stock position.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - sku is unique.
    - quantity equals the signed sum of the variant's stock movements.
    - average_cost changes only when an entry movement is recorded.
    - quantity, average_cost and version have a single writer: the stock
      ledger's version-checked UPDATE.  Unit-of-work changes to them raise
      DerivedFieldWriteError (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate sku (mapped to DuplicateSkuError by the
      inventory service).
    - VariantReferencedError when deleting a variant that has movements.

Audit relevance:
    Every change to a variant produces an AuditEvent: registration, stock
    movements, price overrides, category reassignment and barcode edits.
"""

from decimal import Decimal

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase

# Fields the stock ledger owns.  See db/immutability.py.
DERIVED_FIELDS = frozenset({"quantity", "average_cost", "version"})


class Variant(TrackedBase):
    """
    A stock-keeping unit with its running weighted-average cost.

    Contract:
        Catalog fields (description, category, subcategory, barcode,
        sale_price, margin_pct, min_stock) are editable through the
        inventory service.  Derived fields are not.

    Guarantees:
        - version increases by exactly one per recorded movement.
        - sale_price/margin_pct may be None until pricing is set.
    """

    __tablename__ = "variants"

    __table_args__ = (
        Index("idx_variant_category", "category", "subcategory"),
        Index("idx_variant_barcode", "barcode"),
    )

    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)

    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Derived stock position
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    average_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    sale_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    margin_pct: Mapped[Decimal | None] = mapped_column(nullable=True)

    min_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Variant {self.sku} qty={self.quantity} cost={self.average_cost}>"

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock
