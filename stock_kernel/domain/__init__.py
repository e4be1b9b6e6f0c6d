"""
Pure domain layer: DTOs, enums and the clock abstraction.

No ORM, database or I/O dependencies (SystemClock excepted).
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    AuditTraceEntry,
    CollaboratorRef,
    CostInputs,
    MovementRecord,
    MovementRequest,
    MovementState,
    MovementType,
    SaleFact,
    VariantSnapshot,
    VariantState,
)

__all__ = [
    "AuditTraceEntry",
    "Clock",
    "CollaboratorRef",
    "CostInputs",
    "DeterministicClock",
    "MovementRecord",
    "MovementRequest",
    "MovementState",
    "MovementType",
    "SaleFact",
    "SystemClock",
    "VariantSnapshot",
    "VariantState",
]
