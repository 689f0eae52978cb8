"""
Configuration Loader (``warehouse_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``warehouse_config.schema`` dataclasses.  The single public entry point for
runtime config is ``warehouse_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from warehouse_config.schema import (
    BackfillConfig,
    CapacityConfig,
    DiagnosticsConfig,
    ImportConfig,
    SalesConfig,
    WarehouseConfig,
)
from warehouse_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Top level of a config file must be a mapping", str(path))
    return data


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(cls, data: dict[str, Any] | None, name: str):
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section {name!r} must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in {name!r}: {unknown}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, list):
            value = tuple(value)
        kwargs[key] = value
    return cls(**kwargs)


def parse_warehouse_config(data: dict[str, Any]) -> WarehouseConfig:
    top_level = {
        "config_id", "version", "database_url", "log_level",
        "capacity", "backfill", "sales", "imports", "diagnostics",
    }
    unknown = sorted(set(data) - top_level)
    if unknown:
        raise ConfigurationError(f"Unknown top-level config keys: {unknown}")

    imports = _section(ImportConfig, data.get("imports"), "imports")
    parse_date(imports.synthetic_source_date)

    return WarehouseConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        database_url=data.get("database_url"),
        log_level=str(data.get("log_level", "INFO")).upper(),
        capacity=_section(CapacityConfig, data.get("capacity"), "capacity"),
        backfill=_section(BackfillConfig, data.get("backfill"), "backfill"),
        sales=_section(SalesConfig, data.get("sales"), "sales"),
        imports=imports,
        diagnostics=_section(DiagnosticsConfig, data.get("diagnostics"), "diagnostics"),
        checksum=compute_checksum(data),
    )


def load_warehouse_config(path: Path) -> WarehouseConfig:
    return parse_warehouse_config(load_yaml_file(path))
