"""
Module: warehouse_engines.allocation
Responsibility: Choose a physical location for an incoming lot from the
    current occupancy, honouring row capacity and batch grouping by source.
Architecture position: Engines -- pure, zero I/O.  The caller supplies the
    OccupancySnapshot and persists the lot; the allocator writes nothing.

Algorithm:
    For each row group allowed for the stock class (priority order), for each
    row in the group:
      1. The start row must have free capacity.
      2. It fits if its own free capacity covers the quantity, or if its free
         capacity plus that of the following rows of the same group, added in
         order, reaches the quantity (contiguous span).
      3. The batch is chosen in the start row only: the batch already used by
         the same source code in that row, else max batch + 1.  Once the
         row's highest batch is 99 a new source cannot enter it and the row
         is skipped; free lower numbers are never handed out.
    The first row satisfying all of that wins.

Known approximation:
    A span-credited lot is stored with the start row's location only, so the
    start row's recorded usage can exceed its capacity.  Later allocations
    see that row as full and move on.  Allocation.spanned_rows reports the
    rows whose capacity was credited.

Failure modes:
    - AllocationCapacityExhaustedError when no candidate row qualifies.
"""

from dataclasses import dataclass

from warehouse_engines.capacity import CapacityModel
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_kernel.domain.values import LocationCode, RowKey, StockClass
from warehouse_kernel.exceptions import (
    AllocationCapacityExhaustedError,
    ValidationError,
)
from warehouse_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class Allocation:
    location: LocationCode
    qty: int
    source_code: str
    spanned_rows: tuple[RowKey, ...]
    batch_reused: bool

    @property
    def is_span(self) -> bool:
        return len(self.spanned_rows) > 1


def choose_batch(
    snapshot: OccupancySnapshot,
    row_key: RowKey,
    source_code: str | None,
    max_batch: int,
) -> tuple[int, bool] | None:
    """Return (batch, reused) for a lot from ``source_code`` in this row."""
    existing = snapshot.batch_for_source(row_key, source_code)
    if existing is not None:
        return existing, True

    candidate = snapshot.max_batch(row_key) + 1
    if candidate > max_batch:
        return None
    return candidate, False


class LocationAllocator:
    """First-fit allocator over the capacity model's priority order."""

    def __init__(self, capacity: CapacityModel | None = None):
        self.capacity = capacity or CapacityModel.default()

    def _span_for(
        self,
        snapshot: OccupancySnapshot,
        rows: tuple[RowKey, ...],
        start: int,
        qty: int,
    ) -> tuple[RowKey, ...] | None:
        cap = self.capacity.row_capacity
        own = snapshot.remaining(rows[start], cap)
        if own <= 0:
            return None
        if own >= qty:
            return (rows[start],)

        total = own
        span = [rows[start]]
        for row_key in rows[start + 1:]:
            total += snapshot.remaining(row_key, cap)
            span.append(row_key)
            if total >= qty:
                return tuple(span)
        return None

    def allocate(
        self,
        snapshot: OccupancySnapshot,
        stock_class: StockClass,
        source_code: str,
        qty: int,
    ) -> Allocation:
        """
        Pick a location for ``qty`` cards of ``stock_class`` from ``source_code``.

        Does not modify ``snapshot``; callers reserve once the lot is stored.

        Raises:
            ValidationError: qty is not positive.
            AllocationCapacityExhaustedError: no row can take the lot.
        """
        if qty <= 0:
            raise ValidationError("qty", qty, "must be positive")

        for group in self.capacity.groups_for(stock_class):
            rows = group.row_keys()
            for i, row_key in enumerate(rows):
                span = self._span_for(snapshot, rows, i, qty)
                if span is None:
                    continue
                picked = choose_batch(
                    snapshot, row_key, source_code, self.capacity.max_batch
                )
                if picked is None:
                    logger.debug(
                        "allocation_row_batches_exhausted",
                        extra={"row": str(row_key)},
                    )
                    continue
                batch, reused = picked
                allocation = Allocation(
                    location=LocationCode(row_key.drawer, row_key.row, batch),
                    qty=qty,
                    source_code=source_code,
                    spanned_rows=span,
                    batch_reused=reused,
                )
                if allocation.is_span:
                    logger.info(
                        "allocation_span_credit",
                        extra={
                            "location": str(allocation.location),
                            "qty": qty,
                            "rows": [str(r) for r in span],
                        },
                    )
                return allocation

        logger.warning(
            "allocation_capacity_exhausted",
            extra={
                "stock_class": stock_class.value,
                "source_code": source_code,
                "qty": qty,
            },
        )
        raise AllocationCapacityExhaustedError(stock_class.value, qty, source_code)

    def allocate_single_row(
        self,
        snapshot: OccupancySnapshot,
        stock_class: StockClass,
        source_code: str,
        qty: int,
    ) -> Allocation | None:
        """Strict variant: the start row alone must hold ``qty``.

        Returns None instead of raising so bulk planners can itemise failures.
        """
        cap = self.capacity.row_capacity
        for group in self.capacity.groups_for(stock_class):
            for row_key in group.row_keys():
                if snapshot.remaining(row_key, cap) < qty:
                    continue
                picked = choose_batch(
                    snapshot, row_key, source_code, self.capacity.max_batch
                )
                if picked is None:
                    continue
                batch, reused = picked
                return Allocation(
                    location=LocationCode(row_key.drawer, row_key.row, batch),
                    qty=qty,
                    source_code=source_code,
                    spanned_rows=(row_key,),
                    batch_reused=reused,
                )
        return None
