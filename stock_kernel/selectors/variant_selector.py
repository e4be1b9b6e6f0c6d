"""
Module: stock_kernel.selectors.variant_selector
Responsibility: Read-only variant queries: current state, lookup by SKU or
    barcode, low-stock listing and the on-hand listing behind stock
    valuation.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import VariantState
from stock_kernel.exceptions import VariantNotFoundError
from stock_kernel.models.variant import Variant
from stock_kernel.selectors.base import BaseSelector


class VariantSelector(BaseSelector[Variant]):
    """Selector for variant state."""

    def get_state(self, variant_id: UUID) -> VariantState:
        """
        Current state of one variant, read fresh from the database.

        Raises:
            VariantNotFoundError: if no such variant exists.
        """
        variant = self.session.execute(
            select(Variant)
            .where(Variant.id == variant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if variant is None:
            raise VariantNotFoundError(variant_id)
        return VariantState.from_model(variant)

    def find_by_sku(self, sku: str) -> VariantState | None:
        variant = self.session.execute(
            select(Variant).where(Variant.sku == sku)
        ).scalar_one_or_none()
        return VariantState.from_model(variant) if variant else None

    def low_stock(self) -> tuple[VariantState, ...]:
        """Variants whose quantity is at or below their minimum-stock threshold."""
        variants = self.session.execute(
            select(Variant)
            .where(Variant.quantity <= Variant.min_stock)
            .order_by(Variant.quantity, Variant.sku)
        ).scalars().all()
        return tuple(VariantState.from_model(v) for v in variants)

    def in_stock(
        self,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> tuple[VariantState, ...]:
        """Variants with positive on-hand quantity, optionally filtered."""
        query = select(Variant).where(Variant.quantity > 0)
        if category is not None:
            query = query.where(Variant.category == category)
        if subcategory is not None:
            query = query.where(Variant.subcategory == subcategory)
        variants = self.session.execute(
            query.order_by(Variant.category, Variant.subcategory, Variant.sku)
        ).scalars().all()
        return tuple(VariantState.from_model(v) for v in variants)
