"""
Config -> Engine bridges.

Converts a WarehouseConfig into engine inputs.  These live in
warehouse_config (the producer) because engines and the kernel never import
warehouse_config.

Usage:
    config = get_active_config()
    capacity = build_capacity_model(config)
"""

from __future__ import annotations

from warehouse_config.schema import WarehouseConfig
from warehouse_engines.capacity import CapacityModel


def build_capacity_model(config: WarehouseConfig) -> CapacityModel:
    cap = config.capacity
    return CapacityModel.build(
        row_capacity=cap.row_capacity,
        max_batch=cap.max_batch,
        regular_drawers=tuple(cap.regular_drawers),
        core_rows=tuple(cap.core_rows),
        commander_rows=tuple(cap.commander_rows),
    )
