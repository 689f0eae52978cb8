"""
Module: warehouse_engines.worklist
Responsibility: Suggest where CORE and COMMANDER stock that sits in the
    general drawers (or has no location) should be moved, inside its
    dedicated C rows.
Architecture position: Engines -- pure, zero I/O.

Suggestions are checked against capacity when they are made: a SKU is only
offered a row that alone holds everything to be moved, and each suggestion
is reserved in a working copy of the snapshot so two suggestions never
claim the same space.  Applying a move is a separate, unchecked operation
(WorklistService.apply_moves).
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from warehouse_engines.allocation import LocationAllocator
from warehouse_engines.capacity import CapacityModel
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_kernel.domain.values import LocationCode, SkuKey, StockClass

DEDICATED_CLASSES = (StockClass.CORE, StockClass.COMMANDER)


@dataclass(frozen=True)
class SkuPlacement:
    """Current placement of one SKU's lots with stock left."""

    sku: SkuKey
    stock_class: StockClass
    qty_on_hand: int
    lot_locations: tuple[tuple[str | None, int], ...]


@dataclass(frozen=True)
class MoveSuggestion:
    sku: SkuKey
    stock_class: StockClass
    qty_to_move: int
    current_locations: tuple[str, ...]
    suggested_location: str | None


def misplaced_qty(placement: SkuPlacement, capacity: CapacityModel) -> int:
    total = 0
    for location, qty in placement.lot_locations:
        code = LocationCode.parse(location)
        if code is None or not capacity.is_dedicated_row(placement.stock_class, code.row_key):
            total += qty
    return total


class WorklistPlanner:
    def __init__(self, capacity: CapacityModel | None = None):
        self.capacity = capacity or CapacityModel.default()
        self._allocator = LocationAllocator(self.capacity)

    def suggest(
        self,
        snapshot: OccupancySnapshot,
        placements: Iterable[SkuPlacement],
    ) -> Sequence[MoveSuggestion]:
        working = snapshot.copy()
        suggestions: list[MoveSuggestion] = []

        ordered = sorted(
            (p for p in placements if p.stock_class in DEDICATED_CLASSES and p.qty_on_hand > 0),
            key=lambda p: (p.stock_class.value, p.sku),
        )
        for placement in ordered:
            qty = misplaced_qty(placement, self.capacity)
            if qty <= 0:
                continue

            allocation = self._allocator.allocate_single_row(
                working, placement.stock_class, str(placement.sku), qty
            )
            suggested = None
            if allocation is not None:
                working.reserve(allocation.location, str(placement.sku), qty)
                suggested = str(allocation.location)

            current = tuple(sorted({loc for loc, _ in placement.lot_locations if loc}))
            suggestions.append(
                MoveSuggestion(
                    sku=placement.sku,
                    stock_class=placement.stock_class,
                    qty_to_move=qty,
                    current_locations=current,
                    suggested_location=suggested,
                )
            )
        return suggestions
