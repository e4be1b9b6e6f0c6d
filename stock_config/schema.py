"""
Stock configuration schema.

Frozen dataclasses the loader parses YAML fragments into.  Every field has
a default, so an empty override file yields the packaged defaults.

    StockConfig
      +-- CostingSettings       precision and cost-deviation threshold
      +-- StockSettings         negative stock, stale-state retries
      +-- CollaboratorSettings  which statuses count as active
      +-- DatabaseSettings      engine URL and pool
      +-- LoggingSettings       level
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class CostingSettings:
    """Decimal precision of stored amounts and the cost-deviation warning."""

    cost_decimal_places: int = 6
    price_decimal_places: int = 2
    margin_decimal_places: int = 4
    cost_deviation_threshold_pct: Decimal = Decimal("20")


@dataclass(frozen=True)
class StockSettings:
    allow_negative_stock: bool = False
    stale_state_retries: int = 1


@dataclass(frozen=True)
class CollaboratorSettings:
    active_statuses: tuple[str, ...] = ("active",)


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///stock.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class StockConfig:
    """
    The runtime configuration artifact.

    checksum is the SHA-256 of the merged source data; two configs with the
    same checksum were built from the same settings.
    """

    costing: CostingSettings = field(default_factory=CostingSettings)
    stock: StockSettings = field(default_factory=StockSettings)
    collaborators: CollaboratorSettings = field(default_factory=CollaboratorSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
