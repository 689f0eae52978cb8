"""
Module: warehouse_engines.occupancy
Responsibility: In-memory picture of how full each physical row is and
    which batch numbers are in use, derived from located lots.
Architecture position: Engines -- pure, zero I/O.  Built by
    InventorySelector.located_lots() from the database, then
    threaded through one import or backfill run.

Per row the snapshot tracks:
    usage               sum of qty_remaining of lots located in the row
    max_batch           highest batch number in use
    used_batches        every batch number in use
    batch_by_source     smallest batch already used by each source code

Row state lives in an arena (list) addressed through an index keyed by
RowKey.  Every reserve() bumps ``version`` so callers can tell whether a
snapshot has moved since they last looked at it.

Lots whose location does not parse are ignored.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from warehouse_kernel.domain.inventory import LocatedQty
from warehouse_kernel.domain.values import LocationCode, RowKey

UNKNOWN_SOURCE = "UNKNOWN"


@dataclass
class RowOccupancy:
    row_key: RowKey
    usage: int = 0
    max_batch: int = 0
    used_batches: set[int] = field(default_factory=set)
    batch_by_source: dict[str, int] = field(default_factory=dict)

    def record(self, batch: int, source_code: str, qty: int) -> None:
        self.usage += qty
        self.used_batches.add(batch)
        if batch > self.max_batch:
            self.max_batch = batch
        current = self.batch_by_source.get(source_code)
        if current is None or batch < current:
            self.batch_by_source[source_code] = batch


def source_key(source_code: str | None) -> str:
    code = (source_code or "").strip()
    return code or UNKNOWN_SOURCE


class OccupancySnapshot:
    """Mutable, versioned occupancy of every known row."""

    def __init__(self) -> None:
        self._arena: list[RowOccupancy] = []
        self._index: dict[RowKey, int] = {}
        self.version = 0

    @classmethod
    def from_located(cls, lots: Iterable[LocatedQty]) -> "OccupancySnapshot":
        snapshot = cls()
        for lot in lots:
            code = LocationCode.parse(lot.location)
            if code is None:
                continue
            snapshot._row(code.row_key).record(
                code.batch, source_key(lot.source_code), int(lot.qty_remaining or 0)
            )
        snapshot.version = 0
        return snapshot

    def _row(self, row_key: RowKey) -> RowOccupancy:
        idx = self._index.get(row_key)
        if idx is None:
            idx = len(self._arena)
            self._arena.append(RowOccupancy(row_key))
            self._index[row_key] = idx
        return self._arena[idx]

    def get(self, row_key: RowKey) -> RowOccupancy | None:
        idx = self._index.get(row_key)
        return None if idx is None else self._arena[idx]

    def usage(self, row_key: RowKey) -> int:
        row = self.get(row_key)
        return row.usage if row else 0

    def remaining(self, row_key: RowKey, capacity: int) -> int:
        """Free capacity, never negative even for over-filled rows."""
        return max(0, capacity - self.usage(row_key))

    def max_batch(self, row_key: RowKey) -> int:
        row = self.get(row_key)
        return row.max_batch if row else 0

    def used_batches(self, row_key: RowKey) -> frozenset[int]:
        row = self.get(row_key)
        return frozenset(row.used_batches) if row else frozenset()

    def batch_for_source(self, row_key: RowKey, source_code: str | None) -> int | None:
        row = self.get(row_key)
        if row is None:
            return None
        return row.batch_by_source.get(source_key(source_code))

    def reserve(self, location: LocationCode, source_code: str | None, qty: int) -> None:
        """Record a newly placed lot so later allocations in the run see it."""
        self._row(location.row_key).record(location.batch, source_key(source_code), qty)
        self.version += 1

    def rows(self) -> tuple[RowOccupancy, ...]:
        return tuple(self._arena)

    def copy(self) -> "OccupancySnapshot":
        clone = OccupancySnapshot()
        for row in self._arena:
            clone._index[row.row_key] = len(clone._arena)
            clone._arena.append(
                RowOccupancy(
                    row_key=row.row_key,
                    usage=row.usage,
                    max_batch=row.max_batch,
                    used_batches=set(row.used_batches),
                    batch_by_source=dict(row.batch_by_source),
                )
            )
        clone.version = self.version
        return clone
