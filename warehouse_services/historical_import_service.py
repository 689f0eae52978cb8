"""
Historical lot import (``warehouse_services.historical_import_service``).

Responsibility
--------------
Rebuilds lots for stock that was already on hand before lot tracking, from
an export of past purchases, without touching balances.  Per SKU the lots
created carry exactly the current on-hand quantity (``qty_on_hand`` clamped
at 0): rows are taken oldest source date first, and each row keeps
``min(desired, budget left)`` where desired is the row's own
``qty_remaining`` if given, else its ``qty_in``.

Optionally a synthetic lot (source ``BACKFILL``, dated 2000-01-01) is
created for SKUs that have positive stock but neither lots nor history
rows, so FIFO consumption has something to draw from.

A row may name the location its stock already sits in; it must be a valid
location code and is stored normalised.  Lots without one are left
unplaced for ``BackfillService``.

Invariants
----------
- 0 <= qty_remaining <= qty_in on every planned lot.
- Balances are never modified.
- ``dry_run`` plans only.  Otherwise lots are inserted in chunks (default
  1000), each chunk its own transaction.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warehouse_config.loader import parse_date
from warehouse_config.schema import ImportConfig
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    HistoricalImportResult,
    HistoricalLotPlan,
    HistoricalLotRow,
    ItemError,
    ItemWarning,
)
from warehouse_kernel.domain.values import (
    LocationCode,
    SkuKey,
    coerce_bool,
    coerce_positive_int,
    normalize_condition,
    normalize_language,
)
from warehouse_kernel.exceptions import (
    LOT_CAPACITY_EXCEEDED,
    TransactionFailureError,
    ValidationError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.inventory import InventoryLotModel
from warehouse_kernel.selectors.inventory_selector import InventorySelector
from warehouse_services.stock_in_service import parse_cost, parse_source_date

logger = get_logger("services.historical_import")


def _optional_non_negative(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        as_int = int(str(value).strip())
    except ValueError:
        raise ValidationError(field, value, "expected a non-negative integer") from None
    if as_int < 0:
        raise ValidationError(field, value, "expected a non-negative integer")
    return as_int


class HistoricalImportService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ImportConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ImportConfig()
        self._selector = InventorySelector(session)

    def _parse_row(self, row: HistoricalLotRow) -> tuple[SkuKey, HistoricalLotPlan, int]:
        cardmarket_id = coerce_positive_int(row.cardmarket_id, "cardmarket_id")
        condition = normalize_condition(row.condition)
        if not condition:
            raise ValidationError("condition", row.condition, "required")
        qty_in = coerce_positive_int(row.qty_in, "qty_in")
        source_date = parse_source_date(row.source_date)
        if source_date is None:
            raise ValidationError("source_date", row.source_date, "required")
        desired = _optional_non_negative(row.qty_remaining, "qty_remaining")
        cost = None if row.unit_cost_eur in (None, "") else parse_cost(row.unit_cost_eur)
        location = (
            None
            if row.location is None or not str(row.location).strip()
            else str(LocationCode.parse_strict(str(row.location)))
        )

        sku = SkuKey(
            cardmarket_id, coerce_bool(row.is_foil), condition, normalize_language(row.language)
        )
        plan = HistoricalLotPlan(
            sku=sku,
            source_code=(row.source_code or "").strip() or self._config.default_source_code,
            source_date=source_date,
            qty_in=qty_in,
            qty_remaining=0,
            unit_cost_eur=cost,
            location=location,
        )
        return sku, plan, min(qty_in, desired if desired is not None else qty_in)

    def plan(
        self,
        rows: Sequence[HistoricalLotRow],
        synthesize_missing: bool = False,
    ) -> tuple[list[HistoricalLotPlan], list[ItemError], list[ItemWarning]]:
        errors: list[ItemError] = []
        warnings: list[ItemWarning] = []
        by_sku: dict[SkuKey, list[tuple[HistoricalLotPlan, int]]] = defaultdict(list)

        for line, row in enumerate(rows, start=1):
            try:
                sku, draft, desired = self._parse_row(row)
            except ValidationError as exc:
                errors.append(ItemError.from_exception(f"line {line}", exc))
                continue
            by_sku[sku].append((draft, desired))

        plans: list[HistoricalLotPlan] = []
        for sku, drafts in by_sku.items():
            balance = self._selector.balance(sku)
            budget = max(balance.qty_on_hand, 0) if balance else 0
            drafts.sort(key=lambda d: d[0].source_date)

            for draft, desired in drafts:
                take = min(desired, budget)
                budget -= take
                if take < desired:
                    warnings.append(
                        ItemWarning(
                            item_key=f"{sku}|{draft.source_code}|{draft.source_date}",
                            code=LOT_CAPACITY_EXCEEDED,
                            message=f"qty_remaining clipped from {desired} to {take} by on-hand balance",
                        )
                    )
                plans.append(
                    HistoricalLotPlan(
                        sku=sku,
                        source_code=draft.source_code,
                        source_date=draft.source_date,
                        qty_in=draft.qty_in,
                        qty_remaining=take,
                        unit_cost_eur=draft.unit_cost_eur,
                        location=draft.location,
                    )
                )

        if synthesize_missing:
            plans.extend(self._synthetic_plans(set(by_sku)))

        return plans, errors, warnings

    def _synthetic_plans(self, skus_with_rows: set[SkuKey]) -> list[HistoricalLotPlan]:
        with_lots = self._selector.skus_with_lots()
        synthetic_date = parse_date(self._config.synthetic_source_date)
        plans = []
        for balance in self._selector.balances(positive_only=True):
            if balance.sku in skus_with_rows or balance.sku in with_lots:
                continue
            plans.append(
                HistoricalLotPlan(
                    sku=balance.sku,
                    source_code=self._config.synthetic_source_code,
                    source_date=synthetic_date,
                    qty_in=balance.qty_on_hand,
                    qty_remaining=balance.qty_on_hand,
                    unit_cost_eur=None,
                    synthetic=True,
                )
            )
        return plans

    def import_history(
        self,
        rows: Sequence[HistoricalLotRow],
        dry_run: bool = False,
        synthesize_missing: bool = False,
    ) -> HistoricalImportResult:
        try:
            plans, errors, warnings = self.plan(rows, synthesize_missing)
        except Exception:
            self._session.rollback()
            raise

        created = 0
        if not dry_run:
            created = self._insert(plans, errors)

        logger.info(
            "historical_import_completed",
            extra={
                "rows_received": len(rows),
                "lots_planned": len(plans),
                "lots_created": created,
                "dry_run": dry_run,
            },
        )
        return HistoricalImportResult(
            dry_run=dry_run,
            rows_received=len(rows),
            skus=len({p.sku for p in plans}),
            lots_planned=len(plans),
            lots_created=created,
            qty_remaining_total=sum(p.qty_remaining for p in plans),
            plans=tuple(plans),
            row_errors=tuple(errors),
            warnings=tuple(warnings),
        )

    def _insert(self, plans: list[HistoricalLotPlan], errors: list[ItemError]) -> int:
        chunk_size = self._config.historical_chunk_size
        created = 0
        for start in range(0, len(plans), chunk_size):
            chunk = plans[start:start + chunk_size]
            now = self._clock.now()
            try:
                self._session.add_all(
                    InventoryLotModel(
                        cardmarket_id=p.sku.cardmarket_id,
                        is_foil=p.sku.is_foil,
                        condition=p.sku.condition,
                        language=p.sku.language,
                        qty_in=p.qty_in,
                        qty_remaining=p.qty_remaining,
                        avg_unit_cost_eur=(
                            Decimal(p.unit_cost_eur) if p.unit_cost_eur is not None else None
                        ),
                        source_code=p.source_code,
                        source_date=p.source_date,
                        location=p.location,
                        created_at=now,
                    )
                    for p in chunk
                )
                self._session.commit()
                created += len(chunk)
            except SQLAlchemyError as exc:
                self._session.rollback()
                key = f"chunk {start // chunk_size}"
                logger.warning(
                    "historical_import_chunk_failed",
                    extra={"chunk_start": start, "size": len(chunk), "error": str(exc)},
                )
                errors.append(ItemError.from_exception(key, TransactionFailureError(key, str(exc))))
        return created
