"""SQLAlchemy ORM models for the stock kernel."""

from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.models.children import (
    ChecklistItem,
    OrderLineItem,
    PaymentInstallment,
    PhotoAttachment,
)
from stock_kernel.models.collaborator import Collaborator
from stock_kernel.models.sale_linkage import SaleLinkage
from stock_kernel.models.sequence_counter import SequenceCounter
from stock_kernel.models.stock_movement import MovementType, StockMovement
from stock_kernel.models.variant import DERIVED_FIELDS, Variant

__all__ = [
    "AuditAction",
    "AuditEvent",
    "ChecklistItem",
    "Collaborator",
    "DERIVED_FIELDS",
    "MovementType",
    "OrderLineItem",
    "PaymentInstallment",
    "PhotoAttachment",
    "SaleLinkage",
    "SequenceCounter",
    "StockMovement",
    "Variant",
]
