"""Database layer - engine, base classes, types and immutability guards."""

from stock_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from stock_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from stock_kernel.db.types import LongText, Money, Percent, ShortCode, StockQuantity

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Percent",
    "StockQuantity",
    "ShortCode",
    "LongText",
]
