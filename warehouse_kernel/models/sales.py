"""
Module: warehouse_kernel.models.sales
Responsibility: ORM persistence for the externally produced sales log and the
    sync cursors that mark how far consumers have read it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (source, external_id) is unique: a marketplace sale is logged once.
    - inventory_applied_at is the idempotency marker.  It is set in the same
      transaction that consumes lots, so a sale is applied at most once.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import Base


class SalesLogModel(Base):
    """
    One sold line from a marketplace.

    Contract:
        Rows are inserted by the sales-sync collaborator and may be
        malformed; SKU fields and qty are therefore nullable here and
        validated when applied.
    """

    __tablename__ = "sales_log"

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_sales_log_source_external"),
        Index("idx_sales_log_pending", "inventory_applied_at", "created_at"),
        Index("idx_sales_log_ts", "ts"),
    )

    source: Mapped[str] = mapped_column(String(50), nullable=False)
    external_id: Mapped[str] = mapped_column(String(200), nullable=False)

    cardmarket_id: Mapped[int | None] = mapped_column(nullable=True)
    is_foil: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    condition: Mapped[str | None] = mapped_column(String(40), nullable=True)
    language: Mapped[str | None] = mapped_column(String(20), nullable=True)
    qty: Mapped[int | None] = mapped_column(nullable=True)

    ts: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    inventory_applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<SalesLogModel {self.source}:{self.external_id} qty={self.qty}>"


class SyncCursorModel(Base):
    """Named high-water mark, stored as an ISO-8601 string."""

    __tablename__ = "sync_cursors"

    __table_args__ = (UniqueConstraint("key", name="uq_sync_cursor_key"),)

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
