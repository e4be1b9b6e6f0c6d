"""
stock_engines.averaging -- Weighted-average (PMP) unit cost.

Responsibility:
    Compute an entry's real unit cost (invoiced cost plus freight spread
    over the units) and the variant's new stock position after any
    movement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    stock_kernel.db.types and stock_kernel.domain only.  Consumed by
    InventoryService when preparing a movement.

Invariants enforced:
    - Only ENTRY movements change the average cost.  Exits, sales and
      adjustments change quantity only.
    - new_cost = (cur_qty * cur_cost + in_qty * real_unit_cost)
                 / (cur_qty + in_qty),
      falling back to real_unit_cost when the resulting quantity is not
      positive (cur_qty + in_qty <= 0).  Negative on-hand stock is blended
      in at its current average.
    - The average is rounded once per movement to the configured cost
      precision (ROUND_HALF_UP).

Failure modes:
    - ValueError on a non-positive quantity or a negative cost input.
      Inputs normally arrive through MovementValidator, which rejects these
      first with a ValidationError.

Usage:
    engine = CostAveragingEngine(cost_decimal_places=6)
    real = engine.real_unit_cost(
        unit_cost_invoice=Decimal("10.00"),
        additional_costs=Decimal("50.00"),
        quantity=100,
    )                                               # 10.50
    position = engine.apply(
        position=StockPosition(0, Decimal("0")),
        movement_type=MovementType.ENTRY,
        quantity=100,
        real_unit_cost=real,
    )                                               # 100 @ 10.50
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.db.types import COST_DECIMAL_PLACES, ZERO, round_cost
from stock_kernel.domain.dtos import MovementType
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.averaging")


@dataclass(frozen=True)
class StockPosition:
    """On-hand quantity and weighted-average unit cost of one variant."""

    quantity: int
    average_cost: Decimal

    @property
    def stock_value(self) -> Decimal:
        return self.average_cost * self.quantity


class CostAveragingEngine:
    """
    Pure weighted-average cost calculator.

    Contract:
        No I/O, no database access, fully deterministic.
    """

    def __init__(self, cost_decimal_places: int = COST_DECIMAL_PLACES):
        self.cost_decimal_places = cost_decimal_places

    def real_unit_cost(
        self,
        unit_cost_invoice: Decimal,
        additional_costs: Decimal,
        quantity: int,
    ) -> Decimal:
        """unit_cost_invoice + additional_costs / quantity, at cost precision."""
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")
        if unit_cost_invoice < ZERO or additional_costs < ZERO:
            raise ValueError("cost inputs must not be negative")
        return round_cost(
            unit_cost_invoice + additional_costs / Decimal(quantity),
            self.cost_decimal_places,
        )

    @traced_engine(
        "averaging", "1.0",
        fingerprint_fields=("position", "movement_type", "quantity", "real_unit_cost"),
    )
    def apply(
        self,
        *,
        position: StockPosition,
        movement_type: MovementType,
        quantity: int,
        real_unit_cost: Decimal | None = None,
    ) -> StockPosition:
        """
        Position after applying one movement.

        Preconditions:
            quantity > 0.  real_unit_cost is required for ENTRY.

        Postconditions:
            quantity moves by movement_type.sign * quantity.  average_cost
            changes only for ENTRY.
        """
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")

        new_quantity = position.quantity + movement_type.sign * quantity

        if not movement_type.is_entry:
            return StockPosition(quantity=new_quantity, average_cost=position.average_cost)

        if real_unit_cost is None:
            raise ValueError("real_unit_cost is required for an entry")

        if new_quantity <= 0:
            new_cost = real_unit_cost
        else:
            total_value = position.average_cost * position.quantity + real_unit_cost * quantity
            new_cost = total_value / Decimal(new_quantity)

        new_cost = round_cost(new_cost, self.cost_decimal_places)

        logger.debug(
            "average_cost_recomputed",
            extra={
                "previous_quantity": position.quantity,
                "previous_cost": str(position.average_cost),
                "entry_quantity": quantity,
                "real_unit_cost": str(real_unit_cost),
                "new_cost": str(new_cost),
            },
        )
        return StockPosition(quantity=new_quantity, average_cost=new_cost)

    def replay(
        self,
        movements: list[tuple[MovementType, int, Decimal | None]],
        start: StockPosition | None = None,
    ) -> StockPosition:
        """Fold a sequence of (type, quantity, real_unit_cost) from ``start``."""
        position = start or StockPosition(quantity=0, average_cost=ZERO)
        for movement_type, quantity, real_cost in movements:
            position = self.apply(
                position=position,
                movement_type=movement_type,
                quantity=quantity,
                real_unit_cost=real_cost,
            )
        return position
