"""
Warehouse engines: pure placement and consumption calculations.

Nothing in this package touches the database.  Services load inputs through
selectors, call an engine, and persist the outcome.
"""

from warehouse_engines.allocation import Allocation, LocationAllocator
from warehouse_engines.backfill import BackfillPlanner
from warehouse_engines.capacity import CapacityModel, RowGroup, holding_class
from warehouse_engines.fifo import ConsumptionPlan, FifoConsumptionEngine
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_engines.reconciliation import InventoryReconciliationChecker
from warehouse_engines.worklist import WorklistPlanner

__all__ = [
    "Allocation",
    "LocationAllocator",
    "BackfillPlanner",
    "CapacityModel",
    "RowGroup",
    "holding_class",
    "ConsumptionPlan",
    "FifoConsumptionEngine",
    "OccupancySnapshot",
    "InventoryReconciliationChecker",
    "WorklistPlanner",
]
