"""
Stock-in service (``warehouse_services.stock_in_service``).

Responsibility
--------------
Turns received rows into located lots: validate, consolidate, resolve stock
class, allocate a location, create the lot with its LOT_IN ledger row, and
fold the quantity into the SKU balance with a moving-average cost.

Architecture
------------
Layer: **Services** -- stateful orchestration over the pure
``LocationAllocator``.  Occupancy is read once per import into an
``OccupancySnapshot`` and updated in memory after every created lot, so
rows of one upload never race each other for the same space.

Invariants
----------
- The service owns its transaction boundary: one transaction per import,
  committed on success, rolled back (and re-raised) on unexpected failure.
- Each row is written inside its own SAVEPOINT.  A database error rolls back
  that row only and is reported as TRANSACTION_FAILURE; the snapshot is only
  updated once the savepoint has been released.
- Rows sharing (SKU, source_code, source_date) within one upload become a
  single lot with a qty-weighted unit cost.

Failure Modes
-------------
- ValidationError per row -> itemised in ``row_errors``, row skipped.
- AllocationCapacityExhaustedError -> itemised, no lot created.
- Missing stock class mapping -> REGULAR, reported in ``warnings``.

Usage::

    service = StockInService(session, resolver, clock)
    result = service.import_rows(rows, default_source_code="ORDER-1042")
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warehouse_config.schema import ImportConfig
from warehouse_engines.allocation import LocationAllocator
from warehouse_engines.capacity import CapacityModel
from warehouse_engines.occupancy import OccupancySnapshot
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    ItemError,
    ItemWarning,
    PicklistEntry,
    ReceivedLot,
    StockInResult,
    StockInRow,
)
from warehouse_kernel.domain.values import (
    SkuKey,
    StockClass,
    coerce_bool,
    coerce_positive_int,
    normalize_condition,
    normalize_language,
)
from warehouse_kernel.exceptions import (
    AllocationCapacityExhaustedError,
    TransactionFailureError,
    ValidationError,
)
from warehouse_kernel.logging_config import LogContext, get_logger
from warehouse_kernel.models.inventory import (
    InventoryBalanceModel,
    InventoryLotModel,
    InventoryTxnKind,
    InventoryTxnModel,
)
from warehouse_kernel.selectors.inventory_selector import InventorySelector, sku_filter
from warehouse_services.stock_class_resolver import (
    PolicyTableStockClassResolver,
    StockClassResolver,
)

logger = get_logger("services.stock_in")

COST_QUANTUM = Decimal("0.000001")
STOCK_IN_REF = "STOCK_IN"

_DMY_RE = re.compile(r"^(\d{2})[-/.](\d{2})[-/.](\d{4})$")


def parse_source_date(value: Any) -> date | None:
    """Accept a date, an ISO date (or datetime) string, or DD-MM-YYYY."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    match = _DMY_RE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def parse_cost(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError("unit_cost_eur", value, "required")
    try:
        cost = Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        raise ValidationError("unit_cost_eur", value, "not a number") from None
    if not cost.is_finite() or cost < 0:
        raise ValidationError("unit_cost_eur", value, "must be a non-negative number")
    return cost


def weighted_cost(qty_a: int, cost_a: Decimal, qty_b: int, cost_b: Decimal) -> Decimal:
    total = qty_a + qty_b
    if total <= 0:
        return cost_b
    return ((qty_a * cost_a + qty_b * cost_b) / total).quantize(COST_QUANTUM)


def consolidate(lots: Sequence[ReceivedLot]) -> list[ReceivedLot]:
    """Merge rows with the same (SKU, source_code, source_date), keeping first-seen order."""
    merged: dict[tuple, ReceivedLot] = {}
    for lot in lots:
        key = (lot.sku, lot.source_code, lot.source_date)
        prev = merged.get(key)
        if prev is None:
            merged[key] = lot
            continue
        merged[key] = ReceivedLot(
            sku=lot.sku,
            qty=prev.qty + lot.qty,
            unit_cost_eur=weighted_cost(prev.qty, prev.unit_cost_eur, lot.qty, lot.unit_cost_eur),
            source_code=lot.source_code,
            source_date=lot.source_date,
            lines=prev.lines + lot.lines,
        )
    return list(merged.values())


class StockInService:
    """
    Receives stock into located lots.

    Transaction boundary: ``import_rows`` commits on success and rolls back
    on unexpected failure.  ``allocate_location`` is read-only.
    """

    def __init__(
        self,
        session: Session,
        resolver: StockClassResolver | None = None,
        clock: Clock | None = None,
        capacity: CapacityModel | None = None,
        config: ImportConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._resolver = resolver or PolicyTableStockClassResolver(session)
        self._allocator = LocationAllocator(capacity or CapacityModel.default())
        self._config = config or ImportConfig()
        self._selector = InventorySelector(session)

    # =========================================================================
    # Allocation
    # =========================================================================

    def load_occupancy(self) -> OccupancySnapshot:
        return OccupancySnapshot.from_located(self._selector.located_lots())

    def allocate_location(self, stock_class: StockClass, source_code: str, qty: int) -> str:
        """
        Pick a location for one incoming lot against current occupancy.

        Reads occupancy fresh on every call and writes nothing.

        Raises:
            AllocationCapacityExhaustedError: no allowed row can take ``qty``.
        """
        allocation = self._allocator.allocate(
            self.load_occupancy(), stock_class, source_code, qty
        )
        return str(allocation.location)

    # =========================================================================
    # Import
    # =========================================================================

    def validate_row(
        self,
        row: StockInRow,
        line: int,
        default_source_code: str | None = None,
        default_source_date: date | None = None,
    ) -> ReceivedLot:
        cardmarket_id = coerce_positive_int(row.cardmarket_id, "cardmarket_id")
        is_foil = coerce_bool(row.is_foil)
        condition = normalize_condition(row.condition)
        if not condition:
            raise ValidationError("condition", row.condition, "required")
        qty = coerce_positive_int(row.qty, "qty")
        cost = parse_cost(row.unit_cost_eur)

        source_code = (
            (row.source_code or "").strip()
            or (default_source_code or "").strip()
            or self._config.default_source_code
        )
        source_date = (
            parse_source_date(row.source_date)
            or default_source_date
            or self._clock.today()
        )
        return ReceivedLot(
            sku=SkuKey(cardmarket_id, is_foil, condition, normalize_language(row.language)),
            qty=qty,
            unit_cost_eur=cost,
            source_code=source_code,
            source_date=source_date,
            lines=(line,),
        )

    def import_rows(
        self,
        rows: Sequence[StockInRow],
        default_source_code: str | None = None,
        default_source_date: date | None = None,
    ) -> StockInResult:
        """
        Receive a batch of rows.

        Postconditions:
            - One lot (with location), one LOT_IN transaction and one balance
              upsert per consolidated row that validated and fit.
            - Session committed on success, rolled back on unexpected failure.
        """
        run_id = str(uuid4())
        row_errors: list[ItemError] = []
        warnings: list[ItemWarning] = []
        picklist: list[PicklistEntry] = []
        class_counts: Counter[str] = Counter()
        balances_created = 0
        balances_updated = 0

        with LogContext.bind(run_id=run_id):
            received: list[ReceivedLot] = []
            for line, row in enumerate(rows, start=1):
                try:
                    received.append(
                        self.validate_row(row, line, default_source_code, default_source_date)
                    )
                except ValidationError as exc:
                    row_errors.append(ItemError.from_exception(f"line {line}", exc))

            lots = consolidate(received)
            logger.info(
                "stock_in_started",
                extra={
                    "rows_received": len(rows),
                    "rows_valid": len(received),
                    "lots_to_create": len(lots),
                },
            )

            try:
                snapshot = self.load_occupancy()
                warned: set[int] = set()

                for lot in lots:
                    item_key = f"{lot.sku}|{lot.source_code}|{lot.source_date.isoformat()}"

                    resolution = self._resolver.resolve(lot.sku.cardmarket_id)
                    if resolution.warning_code and lot.sku.cardmarket_id not in warned:
                        warned.add(lot.sku.cardmarket_id)
                        warnings.append(
                            ItemWarning(item_key, resolution.warning_code, resolution.warning or "")
                        )

                    try:
                        allocation = self._allocator.allocate(
                            snapshot, resolution.stock_class, lot.source_code, lot.qty
                        )
                    except AllocationCapacityExhaustedError as exc:
                        row_errors.append(ItemError.from_exception(item_key, exc))
                        continue

                    location = str(allocation.location)
                    savepoint = self._session.begin_nested()
                    try:
                        lot_model, created = self._write_lot(lot, location)
                        savepoint.commit()
                    except SQLAlchemyError as exc:
                        savepoint.rollback()
                        logger.warning(
                            "stock_in_row_failed",
                            extra={"item_key": item_key, "error": str(exc)},
                        )
                        row_errors.append(
                            ItemError.from_exception(
                                item_key, TransactionFailureError(item_key, str(exc))
                            )
                        )
                        continue

                    snapshot.reserve(allocation.location, lot.source_code, lot.qty)
                    class_counts[resolution.stock_class.value] += 1
                    if created:
                        balances_created += 1
                    else:
                        balances_updated += 1
                    picklist.append(
                        PicklistEntry(
                            location=location,
                            lot_id=lot_model.id,
                            sku=lot.sku,
                            qty=lot.qty,
                            source_code=lot.source_code,
                            stock_class=resolution.stock_class,
                        )
                    )

                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.exception("stock_in_aborted")
                raise

            picklist.sort(key=lambda p: (p.location, p.sku))
            logger.info(
                "stock_in_completed",
                extra={
                    "lots_created": len(picklist),
                    "row_errors": len(row_errors),
                    "warnings": len(warnings),
                    "stock_class_counts": dict(class_counts),
                },
            )

        return StockInResult(
            rows_received=len(rows),
            rows_valid=len(received),
            lots_created=len(picklist),
            balances_created=balances_created,
            balances_updated=balances_updated,
            stock_class_counts=dict(class_counts),
            picklist=tuple(picklist),
            row_errors=tuple(row_errors),
            warnings=tuple(warnings),
        )

    def _write_lot(self, lot: ReceivedLot, location: str) -> tuple[InventoryLotModel, bool]:
        now = self._clock.now()
        sku = lot.sku

        lot_model = InventoryLotModel(
            cardmarket_id=sku.cardmarket_id,
            is_foil=sku.is_foil,
            condition=sku.condition,
            language=sku.language,
            qty_in=lot.qty,
            qty_remaining=lot.qty,
            avg_unit_cost_eur=lot.unit_cost_eur,
            source_code=lot.source_code,
            source_date=lot.source_date,
            location=location,
            created_at=now,
        )
        self._session.add(lot_model)
        self._session.flush()

        self._session.add(
            InventoryTxnModel(
                kind=InventoryTxnKind.LOT_IN.value,
                ts=now,
                cardmarket_id=sku.cardmarket_id,
                is_foil=sku.is_foil,
                condition=sku.condition,
                language=sku.language,
                qty=lot.qty,
                unit_cost_eur=lot.unit_cost_eur,
                lot_id=lot_model.id,
                ref_source=STOCK_IN_REF,
                ref_external_id=lot.source_code,
                created_at=now,
            )
        )

        balance = self._session.execute(
            select(InventoryBalanceModel)
            .where(*sku_filter(InventoryBalanceModel, sku))
            .with_for_update()
        ).scalar_one_or_none()

        created = balance is None
        if balance is None:
            self._session.add(
                InventoryBalanceModel(
                    cardmarket_id=sku.cardmarket_id,
                    is_foil=sku.is_foil,
                    condition=sku.condition,
                    language=sku.language,
                    qty_on_hand=lot.qty,
                    avg_unit_cost_eur=lot.unit_cost_eur,
                    updated_at=now,
                )
            )
        else:
            # Oversold (negative) stock carries no cost weight.
            if balance.avg_unit_cost_eur is None:
                weight = 0
                old_cost = Decimal("0")
            else:
                weight = max(balance.qty_on_hand, 0)
                old_cost = Decimal(balance.avg_unit_cost_eur)
            balance.avg_unit_cost_eur = weighted_cost(weight, old_cost, lot.qty, lot.unit_cost_eur)
            balance.qty_on_hand = balance.qty_on_hand + lot.qty
            balance.updated_at = now

        self._session.flush()
        logger.info(
            "stock_in_lot_created",
            extra={
                "lot_id": str(lot_model.id),
                "sku": str(sku),
                "qty": lot.qty,
                "location": location,
                "source_code": lot.source_code,
            },
        )
        return lot_model, created
