"""
Module: stock_kernel.models.children
Responsibility: ORM persistence for the child records of an order that the
    reconciliation guard keeps in sync with an edited form: line items,
    payment installments, checklist items and photo attachments.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Every child row belongs to exactly one parent (parent_id NOT NULL).
    - Settled line items, paid installments and signed-off checklist items
      are "locked": ReconciliationService never deletes them and only
      updates them through the audited override path.

Audit relevance:
    Overrides of locked children produce LOCKED_CHILD_OVERRIDDEN events.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class OrderLineItem(TrackedBase):
    """A product or service line on an order.  Locked once settled."""

    __tablename__ = "order_line_items"

    __table_args__ = (Index("idx_line_item_parent", "parent_id"),)

    parent_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    variant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PaymentInstallment(TrackedBase):
    """One installment of an order's payment plan.  Locked once paid."""

    __tablename__ = "payment_installments"

    __table_args__ = (Index("idx_installment_parent", "parent_id"),)

    parent_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    installment_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")


class ChecklistItem(TrackedBase):
    """An inspection checklist entry.  Locked once signed off."""

    __tablename__ = "checklist_items"

    __table_args__ = (Index("idx_checklist_parent", "parent_id"),)

    parent_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    label: Mapped[str] = mapped_column(String(200), nullable=False)

    checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    signed_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PhotoAttachment(TrackedBase):
    """A photo attached to an order.  Never locked."""

    __tablename__ = "photo_attachments"

    __table_args__ = (Index("idx_photo_parent", "parent_id"),)

    parent_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    url: Mapped[str] = mapped_column(String(1000), nullable=False)

    caption: Mapped[str | None] = mapped_column(String(500), nullable=True)
