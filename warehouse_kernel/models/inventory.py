"""
Module: warehouse_kernel.models.inventory
Responsibility: ORM persistence for physical inventory lots, aggregate SKU
    balances, and the append-only inventory transaction ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Quantity bounds: 0 <= qty_remaining <= qty_in on every lot (CHECK
      constraint ck_inventory_lot_qty_bounds).
    - qty_in is frozen at creation; only qty_remaining and location change.
    - Lots are never deleted; exhausted lots (qty_remaining = 0) remain as
      audit trail.
    - FIFO support: (sku..., source_date, created_at) composite index backs
      the oldest-first candidate query.
    - Balances are unique per SKU key and may go negative (oversell).

Audit relevance:
    Every lot creation writes a LOT_IN transaction and every sale
    consumption writes one SALE_OUT transaction per consumed lot, so the
    ledger replays to the current lot and balance state.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import Base, UUIDString
from warehouse_kernel.domain.values import LocationCode, SkuKey


class InventoryTxnKind(str, Enum):
    LOT_IN = "LOT_IN"
    SALE_OUT = "SALE_OUT"


class InventoryLotModel(Base):
    """
    One physical lot of identical cards received together.

    Contract:
        A lot is created by stock-in (with a location) or by historical
        import (without one, to be filled by the backfill allocator).
        qty_remaining is decremented FIFO by sale application.

    Non-goals:
        Only a single location per lot is stored, even when allocation
        credited capacity from later rows of the same drawer.
    """

    __tablename__ = "inventory_lots"

    __table_args__ = (
        CheckConstraint(
            "qty_remaining >= 0 AND qty_remaining <= qty_in",
            name="ck_inventory_lot_qty_bounds",
        ),
        CheckConstraint("qty_in > 0", name="ck_inventory_lot_qty_in_positive"),
        Index(
            "idx_inventory_lot_fifo",
            "cardmarket_id",
            "is_foil",
            "condition",
            "language",
            "source_date",
            "created_at",
        ),
        Index("idx_inventory_lot_location", "location"),
    )

    cardmarket_id: Mapped[int] = mapped_column(nullable=False)
    is_foil: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    condition: Mapped[str] = mapped_column(String(8), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False, default="EN")

    qty_in: Mapped[int] = mapped_column(nullable=False)
    qty_remaining: Mapped[int] = mapped_column(nullable=False)
    avg_unit_cost_eur: Mapped[Decimal | None] = mapped_column(nullable=True)

    source_code: Mapped[str] = mapped_column(String(100), nullable=False)
    source_date: Mapped[date] = mapped_column(Date, nullable=False)

    location: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def sku(self) -> SkuKey:
        return SkuKey(self.cardmarket_id, self.is_foil, self.condition, self.language)

    @property
    def location_code(self) -> LocationCode | None:
        return LocationCode.parse(self.location)

    def __repr__(self) -> str:
        return (
            f"<InventoryLotModel {self.id} {self.sku} "
            f"{self.qty_remaining}/{self.qty_in} @ {self.location}>"
        )


class InventoryBalanceModel(Base):
    """
    Aggregate on-hand quantity per SKU key.

    Contract:
        qty_on_hand is signed.  A sale always decrements by its full
        quantity even when lots ran out, so a negative value is a legitimate
        oversell signal surfaced by diagnostics.
    """

    __tablename__ = "inventory_balances"

    __table_args__ = (
        UniqueConstraint(
            "cardmarket_id",
            "is_foil",
            "condition",
            "language",
            name="uq_inventory_balance_sku",
        ),
    )

    cardmarket_id: Mapped[int] = mapped_column(nullable=False)
    is_foil: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    condition: Mapped[str] = mapped_column(String(8), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False, default="EN")

    qty_on_hand: Mapped[int] = mapped_column(nullable=False, default=0)
    avg_unit_cost_eur: Mapped[Decimal | None] = mapped_column(nullable=True)
    last_sale_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def sku(self) -> SkuKey:
        return SkuKey(self.cardmarket_id, self.is_foil, self.condition, self.language)

    def __repr__(self) -> str:
        return f"<InventoryBalanceModel {self.sku} on_hand={self.qty_on_hand}>"


class InventoryTxnModel(Base):
    """Append-only inventory movement ledger row."""

    __tablename__ = "inventory_txns"

    __table_args__ = (
        Index("idx_inventory_txn_lot", "lot_id"),
        Index("idx_inventory_txn_sale", "sales_log_id"),
        Index("idx_inventory_txn_ref", "ref_source", "ref_external_id"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    ts: Mapped[datetime] = mapped_column(nullable=False)

    cardmarket_id: Mapped[int] = mapped_column(nullable=False)
    is_foil: Mapped[bool] = mapped_column(Boolean, nullable=False)
    condition: Mapped[str] = mapped_column(String(8), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)

    # Signed: positive for LOT_IN, negative for SALE_OUT
    qty: Mapped[int] = mapped_column(nullable=False)
    unit_cost_eur: Mapped[Decimal | None] = mapped_column(nullable=True)

    lot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    sales_log_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    ref_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ref_external_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryTxnModel {self.kind} {self.qty} lot={self.lot_id}>"
