"""
Stock class resolution.

Allocation needs to know whether a card is CORE, COMMANDER, REGULAR or
CTBULK.  That knowledge lives outside the allocator, in card metadata and
policy tables, and is reached through the StockClassResolver protocol:

    resolve(cardmarket_id) -> StockClassResolution

A card with no mapping is treated as REGULAR and the resolution carries a
STOCK_CLASS_UNRESOLVED warning so the import result can report it.

Two implementations:
    PolicyTableStockClassResolver  card_lookups -> stock_policies
    CallableStockClassResolver     wraps a plain function (None = unmapped)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from warehouse_kernel.domain.values import StockClass
from warehouse_kernel.exceptions import STOCK_CLASS_UNRESOLVED
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.policy import CardLookupModel, StockPolicyModel

logger = get_logger("services.stock_class")


@dataclass(frozen=True)
class StockClassResolution:
    cardmarket_id: int
    stock_class: StockClass
    warning_code: str | None = None
    warning: str | None = None

    @property
    def is_default(self) -> bool:
        return self.warning_code is not None


def unresolved(cardmarket_id: int, reason: str) -> StockClassResolution:
    return StockClassResolution(
        cardmarket_id=cardmarket_id,
        stock_class=StockClass.REGULAR,
        warning_code=STOCK_CLASS_UNRESOLVED,
        warning=f"cardmarket_id {cardmarket_id}: {reason}; stored as REGULAR",
    )


class StockClassResolver(Protocol):
    def resolve(self, cardmarket_id: int) -> StockClassResolution: ...


class CallableStockClassResolver:
    """Adapts ``fn(cardmarket_id) -> StockClass | str | None``."""

    def __init__(self, fn: Callable[[int], StockClass | str | None]):
        self._fn = fn

    def resolve(self, cardmarket_id: int) -> StockClassResolution:
        raw = self._fn(cardmarket_id)
        stock_class = raw if isinstance(raw, StockClass) else StockClass.parse(raw)
        if stock_class is None:
            return unresolved(cardmarket_id, "no stock class mapping")
        return StockClassResolution(cardmarket_id, stock_class)


class PolicyTableStockClassResolver:
    """Resolves through card_lookups and stock_policies, caching per instance."""

    def __init__(self, session: Session):
        self._session = session
        self._cache: dict[int, StockClassResolution] = {}

    def resolve(self, cardmarket_id: int) -> StockClassResolution:
        cached = self._cache.get(cardmarket_id)
        if cached is not None:
            return cached

        identity = self._session.execute(
            select(CardLookupModel.card_identity).where(
                CardLookupModel.cardmarket_id == cardmarket_id
            )
        ).scalar_one_or_none()

        if identity is None:
            resolution = unresolved(cardmarket_id, "missing card lookup")
        else:
            raw = self._session.execute(
                select(StockPolicyModel.stock_class).where(
                    StockPolicyModel.card_identity == identity
                )
            ).scalar_one_or_none()
            stock_class = StockClass.parse(raw)
            if stock_class is None:
                resolution = unresolved(cardmarket_id, "no stock policy")
            else:
                resolution = StockClassResolution(cardmarket_id, stock_class)

        if resolution.is_default:
            logger.debug(
                "stock_class_defaulted",
                extra={"cardmarket_id": cardmarket_id, "reason": resolution.warning},
            )
        self._cache[cardmarket_id] = resolution
        return resolution
