"""
Worklist and manual moves (``warehouse_services.worklist_service``).

Responsibility
--------------
``build_worklist`` lists CORE and COMMANDER SKUs that still have stock
outside their dedicated C rows, with a capacity-checked target suggestion.

``apply_moves`` is the explicit escape hatch for an operator who has
physically moved cards: it validates the location format and that the lots
exist, then writes the locations as given.  It does NOT check capacity; the
caller takes responsibility for the physical placement.

Invariants
----------
- ``apply_moves`` is all-or-nothing: any invalid move rejects the request
  and nothing is written.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from warehouse_engines.capacity import CapacityModel
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_engines.worklist import DEDICATED_CLASSES, SkuPlacement, WorklistPlanner
from warehouse_kernel.domain.dtos import (
    ItemError,
    LocationMove,
    MoveResult,
    WorklistItem,
    WorklistLot,
)
from warehouse_kernel.domain.values import LocationCode, SkuKey
from warehouse_kernel.exceptions import LotNotFoundError, ValidationError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.inventory import InventoryLotModel
from warehouse_kernel.selectors.inventory_selector import InventorySelector
from warehouse_services.stock_class_resolver import (
    PolicyTableStockClassResolver,
    StockClassResolver,
)

logger = get_logger("services.worklist")


class WorklistService:
    def __init__(
        self,
        session: Session,
        resolver: StockClassResolver | None = None,
        capacity: CapacityModel | None = None,
    ):
        self._session = session
        self._resolver = resolver or PolicyTableStockClassResolver(session)
        self._planner = WorklistPlanner(capacity or CapacityModel.default())
        self._selector = InventorySelector(session)

    def build_worklist(self, include_lots: bool = True) -> tuple[WorklistItem, ...]:
        placements: list[SkuPlacement] = []
        lots_by_sku: dict[SkuKey, list[WorklistLot]] = {}

        for balance in self._selector.balances(positive_only=True):
            stock_class = self._resolver.resolve(balance.sku.cardmarket_id).stock_class
            if stock_class not in DEDICATED_CLASSES:
                continue
            lots = self._selector.lots_for_sku(balance.sku)
            lots_by_sku[balance.sku] = lots
            placements.append(
                SkuPlacement(
                    sku=balance.sku,
                    stock_class=stock_class,
                    qty_on_hand=balance.qty_on_hand,
                    lot_locations=tuple((l.location, l.qty_remaining) for l in lots),
                )
            )

        snapshot = OccupancySnapshot.from_located(self._selector.located_lots())
        suggestions = self._planner.suggest(snapshot, placements)
        on_hand = {p.sku: p.qty_on_hand for p in placements}

        items = tuple(
            WorklistItem(
                sku=s.sku,
                stock_class=s.stock_class,
                qty_on_hand=on_hand[s.sku],
                current_locations=s.current_locations,
                suggested_location=s.suggested_location,
                lots=tuple(lots_by_sku[s.sku]) if include_lots else (),
            )
            for s in suggestions
        )
        logger.info(
            "worklist_built",
            extra={
                "items": len(items),
                "without_suggestion": sum(1 for i in items if i.suggested_location is None),
            },
        )
        return items

    def apply_moves(self, moves: Sequence[LocationMove]) -> MoveResult:
        """Write operator-chosen locations without any capacity check."""
        errors: list[ItemError] = []
        resolved: list[tuple[InventoryLotModel, LocationCode]] = []

        try:
            for index, move in enumerate(moves):
                key = f"move {index}"
                try:
                    try:
                        lot_id = UUID(str(move.lot_id))
                    except ValueError:
                        raise ValidationError("lot_id", move.lot_id, "not a UUID") from None
                    code = LocationCode.parse_strict(move.location)
                    lot = self._session.get(InventoryLotModel, lot_id)
                    if lot is None:
                        raise LotNotFoundError(str(lot_id))
                except (ValidationError, LotNotFoundError) as exc:
                    errors.append(ItemError.from_exception(key, exc))
                    continue
                resolved.append((lot, code))

            if errors:
                self._session.rollback()
                logger.warning(
                    "apply_moves_rejected",
                    extra={"requested": len(moves), "errors": len(errors)},
                )
                return MoveResult(requested=len(moves), updated=0, errors=tuple(errors))

            for lot, code in resolved:
                logger.info(
                    "lot_location_overridden",
                    extra={"lot_id": str(lot.id), "from": lot.location, "to": str(code)},
                )
                lot.location = str(code)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        return MoveResult(requested=len(moves), updated=len(resolved), errors=())
