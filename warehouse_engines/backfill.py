"""
Module: warehouse_engines.backfill
Responsibility: Plan locations for lots that were stored without one.
Architecture position: Engines -- pure, zero I/O.  BackfillService loads
    the candidates and occupancy, persists the plan in chunks.

Rules:
    - Strict single-row capacity: a lot goes only into a row that alone
      holds its qty_remaining.  No span credit.
    - CORE and COMMANDER lots are placed as REGULAR (see holding_class).
    - Candidates are processed in the order given (oldest created first),
      and every planned move is reserved in the snapshot before the next
      candidate is considered.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from warehouse_engines.allocation import LocationAllocator
from warehouse_engines.capacity import holding_class
from warehouse_engines.occupancy import OccupancySnapshot, source_key
from warehouse_kernel.domain.inventory import BackfillCandidate

NO_REGULAR_CAPACITY = "no location capacity available (regular ranges)"


@dataclass(frozen=True)
class PlannedMove:
    lot_id: UUID
    location: str
    qty: int


@dataclass(frozen=True)
class UnplacedLot:
    lot_id: UUID
    qty: int
    reason: str


@dataclass(frozen=True)
class BackfillPlan:
    moves: tuple[PlannedMove, ...]
    unplaced: tuple[UnplacedLot, ...]


class BackfillPlanner:
    def __init__(self, allocator: LocationAllocator | None = None):
        self.allocator = allocator or LocationAllocator()

    def plan(
        self,
        snapshot: OccupancySnapshot,
        candidates: Iterable[BackfillCandidate],
    ) -> BackfillPlan:
        moves: list[PlannedMove] = []
        unplaced: list[UnplacedLot] = []

        for candidate in candidates:
            source = source_key(candidate.source_code)
            allocation = self.allocator.allocate_single_row(
                snapshot,
                holding_class(candidate.stock_class),
                source,
                candidate.qty_remaining,
            )
            if allocation is None:
                unplaced.append(
                    UnplacedLot(candidate.lot_id, candidate.qty_remaining, NO_REGULAR_CAPACITY)
                )
                continue
            snapshot.reserve(allocation.location, source, candidate.qty_remaining)
            moves.append(
                PlannedMove(
                    lot_id=candidate.lot_id,
                    location=str(allocation.location),
                    qty=candidate.qty_remaining,
                )
            )

        return BackfillPlan(moves=tuple(moves), unplaced=tuple(unplaced))
