"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads YAML fragments, merges an override over the packaged defaults and
parses the result into ``stock_config.schema`` dataclasses.  Services never
call this directly; the runtime entry point is
``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections and unknown keys are reported, never ignored.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` listing every problem found.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    CollaboratorSettings,
    CostingSettings,
    DatabaseSettings,
    LoggingSettings,
    StockConfig,
    StockSettings,
)

SECTIONS = {
    "costing": CostingSettings,
    "stock": StockSettings,
    "collaborators": CollaboratorSettings,
    "database": DatabaseSettings,
    "logging": LoggingSettings,
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_fragments(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if isinstance(values, dict) and isinstance(merged.get(name), dict):
            merged[name].update(values)
        else:
            merged[name] = values
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_int(section: str, key: str, value: Any, errors: list[str], minimum: int = 0) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{section}.{key}: expected an integer, got {value!r}")
        return None
    if value < minimum:
        errors.append(f"{section}.{key}: must be >= {minimum}, got {value}")
        return None
    return value


def _parse_bool(section: str, key: str, value: Any, errors: list[str]) -> bool | None:
    if not isinstance(value, bool):
        errors.append(f"{section}.{key}: expected true/false, got {value!r}")
        return None
    return value


def _parse_decimal(section: str, key: str, value: Any, errors: list[str]) -> Decimal | None:
    if isinstance(value, (bool, float)):
        errors.append(f"{section}.{key}: quote decimal values as strings, got {value!r}")
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{section}.{key}: not a decimal: {value!r}")
        return None
    if not result.is_finite() or result < 0:
        errors.append(f"{section}.{key}: must be a non-negative number, got {value!r}")
        return None
    return result


def _parse_section(name: str, data: Any, errors: list[str]):
    cls = SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name}: expected a mapping, got {type(data).__name__}")
        return cls()

    known = {f.name for f in fields(cls)}
    for key in sorted(set(data) - known):
        errors.append(f"{name}.{key}: unknown setting")

    defaults = cls()
    values: dict[str, Any] = {}
    for key in known & set(data):
        raw = data[key]
        default = getattr(defaults, key)
        if isinstance(default, bool):
            parsed = _parse_bool(name, key, raw, errors)
        elif isinstance(default, int):
            minimum = 1 if key == "pool_size" else 0
            parsed = _parse_int(name, key, raw, errors, minimum=minimum)
        elif isinstance(default, Decimal):
            parsed = _parse_decimal(name, key, raw, errors)
        elif isinstance(default, tuple):
            if not isinstance(raw, list) or not all(isinstance(v, str) and v.strip() for v in raw):
                errors.append(f"{name}.{key}: expected a list of non-empty strings")
                parsed = None
            else:
                parsed = tuple(v.strip() for v in raw)
        else:
            if not isinstance(raw, str) or not raw.strip():
                errors.append(f"{name}.{key}: expected a non-empty string")
                parsed = None
            else:
                parsed = raw.strip()
        if parsed is not None:
            values[key] = parsed
    return cls(**values)


def parse_config(data: dict[str, Any]) -> StockConfig:
    """
    Parse merged configuration data into a StockConfig.

    Raises:
        ValueError: listing every problem found, one per line.
    """
    errors: list[str] = []
    for name in sorted(set(data) - set(SECTIONS)):
        errors.append(f"{name}: unknown section")

    sections = {name: _parse_section(name, data.get(name), errors) for name in SECTIONS}

    if sections["logging"].level.upper() not in LOG_LEVELS:
        errors.append(f"logging.level: must be one of {', '.join(LOG_LEVELS)}")
    if sections["stock"].stale_state_retries > 5:
        errors.append("stock.stale_state_retries: must be <= 5")
    if not sections["collaborators"].active_statuses:
        errors.append("collaborators.active_statuses: at least one status is required")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    return StockConfig(**sections, checksum=compute_checksum(data))
