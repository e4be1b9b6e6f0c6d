"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.movement_selector import (
    MovementReportRow,
    MovementSelector,
    SaleMovementRow,
)
from stock_kernel.selectors.variant_selector import VariantSelector

__all__ = [
    "MovementReportRow",
    "MovementSelector",
    "SaleMovementRow",
    "VariantSelector",
]
