"""
Consistency diagnostics (``warehouse_services.diagnostics_service``).

Read-only.  Loads per-SKU lot, applied-sale and balance aggregates and hands
them to ``InventoryReconciliationChecker``.  Nothing is written and nothing
is corrected: an oversold SKU shows up here as a negative balance and a
lots/theoretical mismatch until someone fixes the underlying data.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from warehouse_config.schema import DiagnosticsConfig
from warehouse_engines.reconciliation import DriftRow, InventoryReconciliationChecker
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.selectors.inventory_selector import InventorySelector

logger = get_logger("services.diagnostics")


@dataclass(frozen=True)
class DiagnosticsReport:
    skus_checked: int
    rows: tuple[DriftRow, ...]

    @property
    def is_clean(self) -> bool:
        return not self.rows


class DiagnosticsService:
    def __init__(self, session: Session, config: DiagnosticsConfig | None = None):
        self._selector = InventorySelector(session)
        self._checker = InventoryReconciliationChecker()
        self._config = config or DiagnosticsConfig()

    def report(self, limit: int | None = None) -> DiagnosticsReport:
        limit = limit if limit and limit > 0 else self._config.default_limit

        lots = self._selector.lot_aggregates()
        sold = self._selector.applied_sale_aggregates()
        balances = self._selector.balances()

        totals = self._checker.merge(lots, sold, balances)
        rows = self._checker.check(lots, sold, balances, limit=limit)

        logger.info(
            "diagnostics_report_built",
            extra={"skus_checked": len(totals), "rows": len(rows), "limit": limit},
        )
        return DiagnosticsReport(skus_checked=len(totals), rows=rows)
