"""
Location backfill service (``warehouse_services.backfill_service``).

Responsibility
--------------
Assigns locations to lots that have stock left but no location, using the
strict single-row rules of ``BackfillPlanner``.

Invariants
----------
- Idempotent: only lots whose location is NULL or blank are scanned, and the
  UPDATE re-checks that condition, so a second run over the same data
  updates nothing.
- Persisted in chunks (default 500), each its own transaction.  A failed
  chunk is rolled back and its lots reported as TRANSACTION_FAILURE; later
  chunks still run.
- ``dry_run`` plans against a throwaway snapshot and writes nothing.

Usage::

    result = BackfillService(session, clock=clock).backfill(limit=2000)
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warehouse_config.schema import BackfillConfig
from warehouse_engines.allocation import LocationAllocator
from warehouse_engines.backfill import BackfillPlanner, PlannedMove
from warehouse_engines.capacity import CapacityModel
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import BackfillResult, ItemError
from warehouse_kernel.domain.inventory import BackfillCandidate
from warehouse_kernel.exceptions import (
    AllocationCapacityExhaustedError,
    TransactionFailureError,
)
from warehouse_kernel.logging_config import LogContext, get_logger
from warehouse_kernel.models.inventory import InventoryLotModel
from warehouse_kernel.selectors.inventory_selector import InventorySelector
from warehouse_services.stock_class_resolver import (
    PolicyTableStockClassResolver,
    StockClassResolver,
)

logger = get_logger("services.backfill")


class BackfillService:
    def __init__(
        self,
        session: Session,
        resolver: StockClassResolver | None = None,
        clock: Clock | None = None,
        capacity: CapacityModel | None = None,
        config: BackfillConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._resolver = resolver or PolicyTableStockClassResolver(session)
        self._capacity = capacity or CapacityModel.default()
        self._planner = BackfillPlanner(LocationAllocator(self._capacity))
        self._config = config or BackfillConfig()
        self._selector = InventorySelector(session)

    def backfill(self, limit: int | None = None, dry_run: bool = False) -> BackfillResult:
        """
        Plan and (unless ``dry_run``) persist locations for unlocated lots.

        ``limit`` is clamped to [1, max_limit]; None means the configured default.
        """
        limit = self._config.clamp_limit(limit)

        with LogContext.bind(run_id=str(uuid4())):
            try:
                candidates = self._selector.unlocated_lots(limit)
                snapshot = OccupancySnapshot.from_located(self._selector.located_lots())
                plan = self._planner.plan(
                    snapshot,
                    [
                        BackfillCandidate(
                            lot_id=lot.lot_id,
                            cardmarket_id=lot.sku.cardmarket_id,
                            qty_remaining=lot.qty_remaining,
                            source_code=lot.source_code,
                            stock_class=self._resolver.resolve(lot.sku.cardmarket_id).stock_class,
                        )
                        for lot in candidates
                    ],
                )
            except Exception:
                self._session.rollback()
                raise

            errors: list[ItemError] = [
                ItemError(
                    item_key=str(u.lot_id),
                    code=AllocationCapacityExhaustedError.code,
                    message=u.reason,
                    details={"lot_id": str(u.lot_id), "qty": u.qty},
                )
                for u in plan.unplaced
            ]

            updated = 0
            if not dry_run:
                updated, chunk_errors = self._persist(plan.moves)
                errors.extend(chunk_errors)

            logger.info(
                "backfill_completed",
                extra={
                    "scanned": len(candidates),
                    "planned": len(plan.moves),
                    "updated": updated,
                    "unplaced": len(plan.unplaced),
                    "dry_run": dry_run,
                },
            )

        return BackfillResult(
            scanned=len(candidates),
            planned=len(plan.moves),
            updated=updated,
            dry_run=dry_run,
            moves=tuple((m.lot_id, m.location) for m in plan.moves),
            errors=tuple(errors),
        )

    def _persist(self, moves: Sequence[PlannedMove]) -> tuple[int, list[ItemError]]:
        chunk_size = self._config.chunk_size
        updated = 0
        errors: list[ItemError] = []

        for start in range(0, len(moves), chunk_size):
            chunk = moves[start:start + chunk_size]
            try:
                chunk_updated = 0
                for move in chunk:
                    result = self._session.execute(
                        update(InventoryLotModel)
                        .where(
                            InventoryLotModel.id == move.lot_id,
                            or_(
                                InventoryLotModel.location.is_(None),
                                InventoryLotModel.location == "",
                            ),
                        )
                        .values(location=move.location)
                        .execution_options(synchronize_session=False)
                    )
                    chunk_updated += result.rowcount or 0
                self._session.commit()
                updated += chunk_updated
                logger.info(
                    "backfill_chunk_committed",
                    extra={"chunk_start": start, "size": len(chunk), "updated": chunk_updated},
                )
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.warning(
                    "backfill_chunk_failed",
                    extra={"chunk_start": start, "size": len(chunk), "error": str(exc)},
                )
                for move in chunk:
                    key = str(move.lot_id)
                    errors.append(
                        ItemError.from_exception(key, TransactionFailureError(key, str(exc)))
                    )
        return updated, errors
