"""
Module: stock_kernel.db.base
Responsibility: Declarative base classes for every ORM model in the stock
    kernel: the UUID primary-key convention, the type annotation map that
    pins column types, and the TrackedBase mixin for creator/timestamp
    metadata.
Architecture position: Kernel > DB.  Lowest-level import target inside the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36) so the
      same schema runs on PostgreSQL and SQLite.
    - Decimal columns map to Numeric(38, 9).  Costs and prices are NEVER
      floats in Python code.
    - Datetimes are timezone-aware UTC on every backend.

Audit relevance:
    TrackedBase.created_by_id names the collaborator who registered a
    variant or child record.  Movement and audit rows carry their own actor
    columns instead, because they are write-once.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as its 36-character string form.

    Guarantees:
        - UUID -> str on bind, str -> UUID on load.
        - Accepts an already-stringified UUID on bind (raw SQL paths).
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always loads as UTC.

    PostgreSQL keeps the offset; SQLite stores naive text, so values read
    back without tzinfo are tagged as UTC.  Binding a naive datetime is an
    error.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not accepted: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all stock kernel models.

    Guarantees:
        - ``id`` is a uuid4 UUID primary key.
        - Decimal -> Numeric(38, 9), datetime -> UTCDateTime,
          UUID -> UUIDString, int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with creator and timestamp tracking.

    Used by mutable reference data (variants, collaborators, reconciled
    children).  Append-only records do not inherit it.

    Guarantees:
        - created_at is set by the server on INSERT.
        - updated_at refreshes on every UPDATE.
        - created_by_id is NOT NULL.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
