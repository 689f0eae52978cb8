"""
Sales application service (``warehouse_services.sales_service``).

Responsibility
--------------
Applies logged sales to inventory: consumes lots oldest first, writes one
SALE_OUT ledger row per consumed lot, decrements the SKU balance and marks
the sale applied.

Architecture
------------
Layer: **Services** -- stateful orchestration over the pure
``FifoConsumptionEngine``.  Pending sales are snapshotted into frozen
``SaleRecord``s before processing, so nothing depends on live ORM state
across sale transactions.

Invariants
----------
- One transaction per sale.  Lot decrements, ledger rows, the balance
  update and ``inventory_applied_at`` commit together or not at all.
- Idempotent: only rows with ``inventory_applied_at IS NULL`` are selected,
  and the sale row is re-read (FOR UPDATE on PostgreSQL) inside its
  transaction; a row found already applied is a silent no-op.
- Oversell never fails: the balance always drops by the full sale quantity
  even when the lots ran out first, leaving a negative balance for
  diagnostics to surface.
- A failing sale is rolled back and reported; the batch carries on.

Failure Modes
-------------
- ValidationError -> itemised, the sale stays pending.
- SQLAlchemyError -> TRANSACTION_FAILURE, the sale stays pending.
- MissingSinceError -> raised when no ``since``, cursor or explicit ids.

Usage::

    result = SalesService(session, clock=clock).apply_sales(since=cutoff)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warehouse_config.schema import SalesConfig
from warehouse_engines.fifo import ConsumptionPlan, FifoConsumptionEngine
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    ApplySalesResult,
    ItemError,
    LotDrawSummary,
    SaleConsumption,
    SaleRecord,
)
from warehouse_kernel.domain.inventory import LotLayer
from warehouse_kernel.domain.values import (
    SkuKey,
    coerce_bool,
    coerce_positive_int,
    normalize_condition,
    normalize_language,
)
from warehouse_kernel.exceptions import (
    UNHANDLED_EXCEPTION,
    MissingSinceError,
    SaleAlreadyAppliedError,
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
from warehouse_kernel.models.sales import SalesLogModel
from warehouse_kernel.selectors.inventory_selector import (
    InventorySelector,
    fifo_lots_query,
    sku_filter,
)
from warehouse_kernel.selectors.sales_selector import SalesSelector

logger = get_logger("services.sales")


@dataclass(frozen=True)
class ValidSale:
    record: SaleRecord
    sku: SkuKey
    qty: int

    @property
    def item_key(self) -> str:
        return f"{self.record.source}:{self.record.external_id}"


def validate_sale(record: SaleRecord) -> ValidSale:
    """Normalise the SKU identity of a logged sale or raise ValidationError."""
    cardmarket_id = coerce_positive_int(record.cardmarket_id, "cardmarket_id")
    is_foil = coerce_bool(record.is_foil)
    condition = normalize_condition(record.condition)
    if not condition:
        raise ValidationError("condition", record.condition, "required")
    qty = coerce_positive_int(record.qty, "qty")
    return ValidSale(
        record=record,
        sku=SkuKey(cardmarket_id, is_foil, condition, normalize_language(record.language)),
        qty=qty,
    )


class SalesService:
    """
    Applies pending sales FIFO.

    Transaction boundary: every sale commits or rolls back on its own.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SalesConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or SalesConfig()
        self._engine = FifoConsumptionEngine()
        self._sales = SalesSelector(session)
        self._inventory = InventorySelector(session)

    def apply_sales(
        self,
        since: datetime | None = None,
        limit: int | None = None,
        simulate: bool = False,
        only_source: str | None = None,
        sale_ids: Sequence[UUID] | None = None,
    ) -> ApplySalesResult:
        """
        Apply (or, with ``simulate``, preview) pending sales.

        Args:
            since: Only sales logged at or after this time.  Falls back to the
                configured sync cursor.  Ignored when ``sale_ids`` is given, so
                a pending sale older than the cursor can still be re-run.
            limit: Maximum sales per run (default from config).
            simulate: Read-only preview of what would be consumed.
            only_source: Restrict to one marketplace source.
            sale_ids: Restrict to these SalesLog ids.

        Raises:
            MissingSinceError: no since, no cursor and no explicit sale ids.
        """
        limit = limit if limit and limit > 0 else self._config.default_limit

        if sale_ids:
            since = None
        elif since is None:
            since = self._sales.cursor(self._config.cursor_key)
            if since is None:
                raise MissingSinceError(self._config.cursor_key)

        pending = self._sales.pending(since, limit, only_source, sale_ids)

        processed = 0
        skipped = 0
        consumptions: list[SaleConsumption] = []
        errors: list[ItemError] = []

        with LogContext.bind(run_id=str(uuid4())):
            logger.info(
                "apply_sales_started",
                extra={"found": len(pending), "simulate": simulate, "since": since},
            )
            for record in pending:
                item_key = f"{record.source}:{record.external_id}"
                try:
                    sale = validate_sale(record)
                except ValidationError as exc:
                    errors.append(ItemError.from_exception(item_key, exc))
                    continue

                with LogContext.bind(sale_id=str(record.id)):
                    try:
                        if simulate:
                            consumption = self._simulate(sale)
                        else:
                            consumption = self._apply_one(sale)
                            self._session.commit()
                        consumptions.append(consumption)
                        processed += 1
                    except SaleAlreadyAppliedError:
                        self._session.rollback()
                        skipped += 1
                        logger.info("apply_sale_noop", extra={"item_key": item_key})
                    except SQLAlchemyError as exc:
                        self._session.rollback()
                        logger.warning(
                            "apply_sale_failed",
                            extra={"item_key": item_key, "error": str(exc)},
                        )
                        errors.append(
                            ItemError.from_exception(
                                item_key, TransactionFailureError(item_key, str(exc))
                            )
                        )
                    except Exception as exc:
                        self._session.rollback()
                        logger.exception("apply_sale_unhandled", extra={"item_key": item_key})
                        errors.append(
                            ItemError(
                                item_key=item_key,
                                code=UNHANDLED_EXCEPTION,
                                message=f"{type(exc).__name__}: {exc}",
                            )
                        )

            logger.info(
                "apply_sales_completed",
                extra={
                    "found": len(pending),
                    "processed": processed,
                    "skipped": skipped,
                    "errors": len(errors),
                    "oversold": sum(1 for c in consumptions if c.is_oversell),
                    "simulate": simulate,
                },
            )

        return ApplySalesResult(
            since=since,
            simulate=simulate,
            found=len(pending),
            processed=processed,
            skipped=skipped,
            consumptions=tuple(consumptions),
            errors=tuple(errors),
        )

    def _cutoff(self, sale: ValidSale) -> date | None:
        if self._config.respect_sale_date_cutoff:
            return sale.record.ts.date()
        return None

    def _summarize(self, sale: ValidSale, plan: ConsumptionPlan) -> SaleConsumption:
        return SaleConsumption(
            sale_id=sale.record.id,
            source=sale.record.source,
            external_id=sale.record.external_id,
            sku=sale.sku,
            qty=sale.qty,
            draws=tuple(
                LotDrawSummary(d.lot_id, d.qty, d.remaining_after, d.location)
                for d in plan.draws
            ),
            unfilled=plan.unfilled,
        )

    def _simulate(self, sale: ValidSale) -> SaleConsumption:
        layers = self._inventory.fifo_layers(sale.sku, self._cutoff(sale))
        return self._summarize(sale, self._engine.plan(layers, sale.qty))

    def _apply_one(self, sale: ValidSale) -> SaleConsumption:
        record = sale.record
        sale_row = self._session.execute(
            select(SalesLogModel)
            .where(SalesLogModel.id == record.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if sale_row.inventory_applied_at is not None:
            raise SaleAlreadyAppliedError(str(record.id))

        lots = list(
            self._session.execute(
                fifo_lots_query(sale.sku, self._cutoff(sale)).with_for_update()
            ).scalars()
        )
        by_id: dict[UUID, InventoryLotModel] = {lot.id: lot for lot in lots}
        plan = self._engine.plan(
            [
                LotLayer(lot.id, lot.qty_remaining, lot.source_date, lot.created_at, lot.location)
                for lot in lots
            ],
            sale.qty,
        )

        now = self._clock.now()
        sku = sale.sku
        for draw in plan.draws:
            lot = by_id[draw.lot_id]
            lot.qty_remaining = lot.qty_remaining - draw.qty
            self._session.add(
                InventoryTxnModel(
                    kind=InventoryTxnKind.SALE_OUT.value,
                    ts=record.ts,
                    cardmarket_id=sku.cardmarket_id,
                    is_foil=sku.is_foil,
                    condition=sku.condition,
                    language=sku.language,
                    qty=-draw.qty,
                    unit_cost_eur=lot.avg_unit_cost_eur,
                    lot_id=lot.id,
                    sales_log_id=record.id,
                    ref_source=record.source,
                    ref_external_id=record.external_id,
                    created_at=now,
                )
            )

        balance = self._session.execute(
            select(InventoryBalanceModel)
            .where(*sku_filter(InventoryBalanceModel, sku))
            .with_for_update()
        ).scalar_one_or_none()
        if balance is None:
            self._session.add(
                InventoryBalanceModel(
                    cardmarket_id=sku.cardmarket_id,
                    is_foil=sku.is_foil,
                    condition=sku.condition,
                    language=sku.language,
                    qty_on_hand=-sale.qty,
                    avg_unit_cost_eur=None,
                    last_sale_at=record.ts,
                    updated_at=now,
                )
            )
        else:
            balance.qty_on_hand = balance.qty_on_hand - sale.qty
            balance.last_sale_at = record.ts
            balance.updated_at = now

        sale_row.inventory_applied_at = now
        self._session.flush()

        summary = self._summarize(sale, plan)
        log = logger.warning if plan.is_oversell else logger.info
        log(
            "apply_sale_consumed",
            extra={
                "item_key": sale.item_key,
                "sku": str(sku),
                "qty": sale.qty,
                "lots_consumed": len(plan.draws),
                "unfilled": plan.unfilled,
            },
        )
        return summary
