"""
Read-model records produced by the kernel selectors and consumed by the
pure engines.  Frozen, no behaviour, no I/O.
"""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from warehouse_kernel.domain.values import SkuKey, StockClass


@dataclass(frozen=True)
class LocatedQty:
    """One located lot as seen by the occupancy builder."""

    location: str | None
    qty_remaining: int
    source_code: str | None


@dataclass(frozen=True)
class LotLayer:
    """A lot with stock left, as a FIFO candidate."""

    lot_id: UUID
    qty_remaining: int
    source_date: date
    created_at: datetime
    location: str | None = None


@dataclass(frozen=True)
class UnlocatedLot:
    lot_id: UUID
    sku: SkuKey
    qty_remaining: int
    source_code: str | None
    created_at: datetime


@dataclass(frozen=True)
class BackfillCandidate:
    lot_id: UUID
    cardmarket_id: int
    qty_remaining: int
    source_code: str | None
    stock_class: StockClass


@dataclass(frozen=True)
class LotAggregate:
    sku: SkuKey
    total_in: int
    total_remaining: int


@dataclass(frozen=True)
class SoldAggregate:
    sku: SkuKey
    qty: int


@dataclass(frozen=True)
class BalanceSnapshot:
    sku: SkuKey
    qty_on_hand: int
