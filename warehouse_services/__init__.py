"""
warehouse_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure engines
    (warehouse_engines/) with database sessions and the injected clock.
    This is the only layer that commits or rolls back transactions.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        warehouse_services/ -> warehouse_engines/  (allowed)
        warehouse_services/ -> warehouse_kernel/   (allowed)
        warehouse_services/ -> warehouse_config/   (allowed, schema types only)
        warehouse_engines/  -> warehouse_services/ (FORBIDDEN)
        warehouse_kernel/   -> warehouse_services/ (FORBIDDEN)

Invariants enforced:
    - Every batch operation returns an itemised result; one bad row, lot or
      sale never fails the whole run.
"""

from warehouse_services.backfill_service import BackfillService
from warehouse_services.diagnostics_service import DiagnosticsReport, DiagnosticsService
from warehouse_services.historical_import_service import HistoricalImportService
from warehouse_services.sales_service import SalesService
from warehouse_services.stock_class_resolver import (
    CallableStockClassResolver,
    PolicyTableStockClassResolver,
    StockClassResolution,
    StockClassResolver,
)
from warehouse_services.stock_in_service import StockInService
from warehouse_services.worklist_service import WorklistService

__all__ = [
    "BackfillService",
    "DiagnosticsReport",
    "DiagnosticsService",
    "HistoricalImportService",
    "SalesService",
    "CallableStockClassResolver",
    "PolicyTableStockClassResolver",
    "StockClassResolution",
    "StockClassResolver",
    "StockInService",
    "WorklistService",
]
