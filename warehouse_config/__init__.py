"""
warehouse_config -- single public entrypoint for warehouse configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting
    ``WarehouseConfig`` (or the objects bridged from it) by constructor
    injection and never read files or environment variables themselves.

Architecture position:
    Configuration.  Sits above ``warehouse_kernel`` and
    ``warehouse_engines`` and below ``warehouse_services`` and the scripts.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ConfigurationError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``warehouse_config_loaded`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from warehouse_config.bridges import build_capacity_model
from warehouse_config.loader import load_warehouse_config
from warehouse_config.schema import WarehouseConfig
from warehouse_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = ["get_active_config", "build_capacity_model", "WarehouseConfig"]


def get_active_config(config_path: Path | str | None = None) -> WarehouseConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to warehouse_config/sets/default.yaml.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_warehouse_config(path)

    _logger.info(
        "warehouse_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(path),
        },
    )
    return config
