"""
Frozen data transfer objects crossing the service boundary.

Inputs (StockInRow, HistoricalLotRow, LocationMove) are loosely typed because
they arrive from spreadsheets and feeds; services validate them into the
strict forms. Results are immutable summaries with counts and itemised
errors, so a single bad row never fails a whole run.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from warehouse_kernel.domain.values import SkuKey, StockClass
from warehouse_kernel.exceptions import WarehouseKernelError


@dataclass(frozen=True)
class ItemError:
    """One failed item inside a batch result."""

    item_key: str
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, item_key: str, exc: Exception) -> "ItemError":
        code = getattr(exc, "code", type(exc).__name__)
        details = {}
        if isinstance(exc, WarehouseKernelError):
            details = {
                k: v for k, v in vars(exc).items() if not k.startswith("_")
            }
        return cls(item_key=item_key, code=code, message=str(exc), details=details)


@dataclass(frozen=True)
class ItemWarning:
    item_key: str
    code: str
    message: str


# ---------------------------------------------------------------------------
# Stock-in
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockInRow:
    """One received row as delivered by the upload collaborator."""

    cardmarket_id: Any
    is_foil: Any
    condition: Any
    qty: Any
    unit_cost_eur: Any
    source_code: str | None = None
    source_date: Any = None
    language: Any = None


@dataclass(frozen=True)
class ReceivedLot:
    """A validated, consolidated stock-in row ready for allocation."""

    sku: SkuKey
    qty: int
    unit_cost_eur: Decimal
    source_code: str
    source_date: date
    lines: tuple[int, ...] = ()


@dataclass(frozen=True)
class PicklistEntry:
    location: str
    lot_id: UUID
    sku: SkuKey
    qty: int
    source_code: str
    stock_class: StockClass


@dataclass(frozen=True)
class StockInResult:
    rows_received: int
    rows_valid: int
    lots_created: int
    balances_created: int
    balances_updated: int
    stock_class_counts: dict[str, int]
    picklist: tuple[PicklistEntry, ...]
    row_errors: tuple[ItemError, ...]
    warnings: tuple[ItemWarning, ...]


# ---------------------------------------------------------------------------
# Location backfill
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackfillResult:
    scanned: int
    planned: int
    updated: int
    dry_run: bool
    moves: tuple[tuple[UUID, str], ...]
    errors: tuple[ItemError, ...]


# ---------------------------------------------------------------------------
# Sales application
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SaleRecord:
    """Snapshot of a pending SalesLog row, taken before processing."""

    id: UUID
    source: str
    external_id: str
    cardmarket_id: Any
    is_foil: Any
    condition: Any
    language: Any
    qty: Any
    ts: datetime


@dataclass(frozen=True)
class LotDrawSummary:
    lot_id: UUID
    qty: int
    remaining_after: int
    location: str | None


@dataclass(frozen=True)
class SaleConsumption:
    """What one sale consumed (or would consume, when simulating)."""

    sale_id: UUID
    source: str
    external_id: str
    sku: SkuKey
    qty: int
    draws: tuple[LotDrawSummary, ...]
    unfilled: int

    @property
    def is_oversell(self) -> bool:
        return self.unfilled > 0


@dataclass(frozen=True)
class ApplySalesResult:
    since: datetime | None
    simulate: bool
    found: int
    processed: int
    skipped: int
    consumptions: tuple[SaleConsumption, ...]
    errors: tuple[ItemError, ...]

    @property
    def oversold(self) -> int:
        return sum(1 for c in self.consumptions if c.is_oversell)


# ---------------------------------------------------------------------------
# Worklist / moves
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorklistLot:
    lot_id: UUID
    qty_remaining: int
    location: str | None
    source_code: str
    source_date: date


@dataclass(frozen=True)
class WorklistItem:
    sku: SkuKey
    stock_class: StockClass
    qty_on_hand: int
    current_locations: tuple[str, ...]
    suggested_location: str | None
    lots: tuple[WorklistLot, ...] = ()


@dataclass(frozen=True)
class LocationMove:
    lot_id: Any
    location: Any


@dataclass(frozen=True)
class MoveResult:
    requested: int
    updated: int
    errors: tuple[ItemError, ...]


# ---------------------------------------------------------------------------
# Historical lot import
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HistoricalLotRow:
    cardmarket_id: Any
    is_foil: Any
    condition: Any
    qty_in: Any
    source_date: Any
    source_code: str | None = None
    language: Any = None
    qty_remaining: Any = None
    unit_cost_eur: Any = None
    location: Any = None


@dataclass(frozen=True)
class HistoricalLotPlan:
    sku: SkuKey
    source_code: str
    source_date: date
    qty_in: int
    qty_remaining: int
    unit_cost_eur: Decimal | None
    synthetic: bool = False
    location: str | None = None


@dataclass(frozen=True)
class HistoricalImportResult:
    dry_run: bool
    rows_received: int
    skus: int
    lots_planned: int
    lots_created: int
    qty_remaining_total: int
    plans: tuple[HistoricalLotPlan, ...]
    row_errors: tuple[ItemError, ...]
    warnings: tuple[ItemWarning, ...]
