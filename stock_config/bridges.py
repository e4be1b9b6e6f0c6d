"""
Config -> Kernel Bridges.

Functions that hand StockConfig settings to the kernel.  They live in
stock_config (the producer) because the kernel must NEVER import
stock_config.

Usage:
    from stock_config import get_active_config
    from stock_config.bridges import bootstrap

    config = get_active_config("deploy/stock.yaml")
    engine = bootstrap(config, create_schema=True)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from stock_config.schema import StockConfig
from stock_kernel.db.engine import create_tables, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.logging_config import configure_logging


def apply_logging(config: StockConfig) -> None:
    """Configure the stock_kernel logger at the configured level (idempotent)."""
    configure_logging(level=config.logging.level.upper())


def init_database(config: StockConfig, create_schema: bool = False) -> Engine:
    """
    Initialize the engine from ``config.database`` and arm the ORM guards.

    Args:
        create_schema: Also create the tables (and, on PostgreSQL, the
            append-only triggers).
    """
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    if create_schema:
        create_tables()
    register_immutability_listeners()
    return engine


def bootstrap(config: StockConfig, create_schema: bool = False) -> Engine:
    """Configure logging, then initialize the database."""
    apply_logging(config)
    return init_database(config, create_schema=create_schema)
