"""
Module: warehouse_kernel.selectors.inventory_selector
Responsibility: Read-only queries over lots and balances: located lots for
    occupancy, location-less lots for backfill, FIFO candidate layers, and the
    per-SKU aggregates used by diagnostics and the worklist.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - FIFO order is (source_date ASC, created_at ASC, id ASC) everywhere a
      lot list is consumed; fifo_lots_query() is the single definition.
"""

from datetime import date

from sqlalchemy import Select, func, or_, select

from warehouse_kernel.domain.dtos import WorklistLot
from warehouse_kernel.domain.inventory import (
    BalanceSnapshot,
    LocatedQty,
    LotAggregate,
    LotLayer,
    SoldAggregate,
    UnlocatedLot,
)
from warehouse_kernel.domain.values import SkuKey
from warehouse_kernel.models.inventory import InventoryBalanceModel, InventoryLotModel
from warehouse_kernel.models.sales import SalesLogModel
from warehouse_kernel.selectors.base import BaseSelector


def sku_filter(model, sku: SkuKey) -> tuple:
    return (
        model.cardmarket_id == sku.cardmarket_id,
        model.is_foil == sku.is_foil,
        model.condition == sku.condition,
        model.language == sku.language,
    )


def fifo_lots_query(sku: SkuKey, cutoff: date | None = None) -> Select:
    """Lots of ``sku`` with stock left, oldest first.

    ``cutoff`` excludes lots whose source_date is after it.  Rows are always
    refreshed from the database so every layer carries stored timestamps.
    """
    stmt = select(InventoryLotModel).where(
        *sku_filter(InventoryLotModel, sku),
        InventoryLotModel.qty_remaining > 0,
    )
    if cutoff is not None:
        stmt = stmt.where(InventoryLotModel.source_date <= cutoff)
    return stmt.order_by(
        InventoryLotModel.source_date.asc(),
        InventoryLotModel.created_at.asc(),
        InventoryLotModel.id.asc(),
    ).execution_options(populate_existing=True)


def _unlocated():
    return or_(InventoryLotModel.location.is_(None), InventoryLotModel.location == "")


class InventorySelector(BaseSelector[InventoryLotModel]):
    """Read side of the lot and balance tables."""

    def located_lots(self) -> list[LocatedQty]:
        """Every lot with a non-blank location, exhausted lots included."""
        rows = self.session.execute(
            select(
                InventoryLotModel.location,
                InventoryLotModel.qty_remaining,
                InventoryLotModel.source_code,
            ).where(
                InventoryLotModel.location.is_not(None),
                InventoryLotModel.location != "",
            )
        ).all()
        return [LocatedQty(r.location, r.qty_remaining, r.source_code) for r in rows]

    def unlocated_lots(self, limit: int) -> list[UnlocatedLot]:
        rows = self.session.execute(
            select(InventoryLotModel)
            .where(_unlocated(), InventoryLotModel.qty_remaining > 0)
            .order_by(InventoryLotModel.created_at.asc(), InventoryLotModel.id.asc())
            .limit(limit)
        ).scalars()
        return [
            UnlocatedLot(
                lot_id=lot.id,
                sku=lot.sku,
                qty_remaining=lot.qty_remaining,
                source_code=lot.source_code,
                created_at=lot.created_at,
            )
            for lot in rows
        ]

    def fifo_layers(self, sku: SkuKey, cutoff: date | None = None) -> list[LotLayer]:
        lots = self.session.execute(fifo_lots_query(sku, cutoff)).scalars()
        return [
            LotLayer(
                lot_id=lot.id,
                qty_remaining=lot.qty_remaining,
                source_date=lot.source_date,
                created_at=lot.created_at,
                location=lot.location,
            )
            for lot in lots
        ]

    def lots_for_sku(self, sku: SkuKey) -> list[WorklistLot]:
        lots = self.session.execute(fifo_lots_query(sku)).scalars()
        return [
            WorklistLot(
                lot_id=lot.id,
                qty_remaining=lot.qty_remaining,
                location=lot.location,
                source_code=lot.source_code,
                source_date=lot.source_date,
            )
            for lot in lots
        ]

    def balance(self, sku: SkuKey) -> BalanceSnapshot | None:
        row = self.session.execute(
            select(InventoryBalanceModel).where(*sku_filter(InventoryBalanceModel, sku))
        ).scalar_one_or_none()
        if row is None:
            return None
        return BalanceSnapshot(row.sku, row.qty_on_hand)

    def balances(self, positive_only: bool = False) -> list[BalanceSnapshot]:
        stmt = select(InventoryBalanceModel)
        if positive_only:
            stmt = stmt.where(InventoryBalanceModel.qty_on_hand > 0)
        stmt = stmt.order_by(
            InventoryBalanceModel.cardmarket_id,
            InventoryBalanceModel.is_foil,
            InventoryBalanceModel.condition,
            InventoryBalanceModel.language,
        )
        return [
            BalanceSnapshot(b.sku, b.qty_on_hand)
            for b in self.session.execute(stmt).scalars()
        ]

    def skus_with_lots(self) -> set[SkuKey]:
        rows = self.session.execute(
            select(
                InventoryLotModel.cardmarket_id,
                InventoryLotModel.is_foil,
                InventoryLotModel.condition,
                InventoryLotModel.language,
            ).distinct()
        ).all()
        return {SkuKey(r[0], r[1], r[2], r[3]) for r in rows}

    def lot_aggregates(self) -> list[LotAggregate]:
        L = InventoryLotModel
        rows = self.session.execute(
            select(
                L.cardmarket_id,
                L.is_foil,
                L.condition,
                L.language,
                func.coalesce(func.sum(L.qty_in), 0),
                func.coalesce(func.sum(L.qty_remaining), 0),
            ).group_by(L.cardmarket_id, L.is_foil, L.condition, L.language)
        ).all()
        return [
            LotAggregate(
                sku=SkuKey(r[0], bool(r[1]), r[2], r[3]),
                total_in=int(r[4]),
                total_remaining=int(r[5]),
            )
            for r in rows
        ]

    def applied_sale_aggregates(self) -> list[SoldAggregate]:
        S = SalesLogModel
        rows = self.session.execute(
            select(
                S.cardmarket_id,
                S.is_foil,
                S.condition,
                S.language,
                func.coalesce(func.sum(S.qty), 0),
            )
            .where(
                S.inventory_applied_at.is_not(None),
                S.cardmarket_id.is_not(None),
                S.qty.is_not(None),
            )
            .group_by(S.cardmarket_id, S.is_foil, S.condition, S.language)
        ).all()
        return [
            SoldAggregate(
                sku=SkuKey(r[0], bool(r[1]), r[2] or "", r[3] or ""),
                qty=int(r[4]),
            )
            for r in rows
        ]
