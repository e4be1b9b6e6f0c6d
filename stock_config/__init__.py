"""
stock_config -- single public entrypoint for stock configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and below
    ``stock_services``.  The kernel and the engines never import from
    ``stock_config``; services receive the settings they need as
    arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - The packaged ``defaults.yaml`` is always the base; an override file
      replaces individual keys section by section.
    - ``STOCK_DATABASE_URL``, when set, replaces ``database.url``.
    - Same inputs always produce the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- validation failed; the message lists every problem.

Audit relevance:
    Every successful call emits a ``STOCK_CONFIG_TRACE`` log entry with the
    checksum and the settings that change ledger behaviour.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stock_config.loader import load_yaml_file, merge_fragments, parse_config
from stock_config.schema import (
    CollaboratorSettings,
    CostingSettings,
    DatabaseSettings,
    LoggingSettings,
    StockConfig,
    StockSettings,
)

_logger = logging.getLogger("stock_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "STOCK_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file merged over the packaged defaults.

    Returns:
        A validated, frozen StockConfig.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If configuration validation fails.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if config_path is not None:
        data = merge_fragments(data, load_yaml_file(Path(config_path)))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        data = merge_fragments(data, {"database": {"url": database_url}})

    config = parse_config(data)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "checksum": config.checksum,
            "source": str(config_path) if config_path is not None else "defaults",
            "database_url_from_env": bool(database_url),
            "cost_decimal_places": config.costing.cost_decimal_places,
            "allow_negative_stock": config.stock.allow_negative_stock,
            "stale_state_retries": config.stock.stale_state_retries,
        },
    )
    return config


__all__ = [
    "DATABASE_URL_ENV",
    "CollaboratorSettings",
    "CostingSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "StockConfig",
    "StockSettings",
    "get_active_config",
]
