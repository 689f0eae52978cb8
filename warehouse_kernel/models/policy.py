"""
Module: warehouse_kernel.models.policy
Responsibility: Card metadata lookup and stock policy tables backing the
    default stock class resolver.

    card_lookups maps a marketplace cardmarket_id to a stable card identity
    (printing-independent); stock_policies maps that identity to a
    StockClass.  A card with no row in either table is stored as REGULAR.
"""

from __future__ import annotations

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import Base


class CardLookupModel(Base):
    __tablename__ = "card_lookups"

    __table_args__ = (
        UniqueConstraint("cardmarket_id", name="uq_card_lookup_cardmarket_id"),
    )

    cardmarket_id: Mapped[int] = mapped_column(nullable=False)
    card_identity: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    set_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    collector_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<CardLookupModel {self.cardmarket_id} -> {self.card_identity}>"


class StockPolicyModel(Base):
    __tablename__ = "stock_policies"

    __table_args__ = (
        UniqueConstraint("card_identity", name="uq_stock_policy_card_identity"),
    )

    card_identity: Mapped[str] = mapped_column(String(64), nullable=False)
    stock_class: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<StockPolicyModel {self.card_identity} = {self.stock_class}>"
