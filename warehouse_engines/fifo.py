"""
Module: warehouse_engines.fifo
Responsibility: Decide which lots a sale consumes and by how much.
Architecture position: Engines -- pure, zero I/O.  SalesService loads the
    candidate lots (locked), applies the plan and writes the ledger rows.

Invariants enforced:
    - Oldest first: lots are drawn in (source_date, created_at) order.
    - Each draw is min(still needed, lot.qty_remaining); no lot goes below 0.
    - Sum of draws = min(requested, sum of qty_remaining).  Any shortfall is
      reported as ``unfilled`` instead of failing.

Failure modes:
    - ValueError on a non-positive requested quantity.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from warehouse_kernel.domain.inventory import LotLayer
from warehouse_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class LotDraw:
    lot_id: UUID
    qty: int
    remaining_after: int
    location: str | None


@dataclass(frozen=True)
class ConsumptionPlan:
    requested: int
    draws: tuple[LotDraw, ...]

    @property
    def consumed(self) -> int:
        return sum(d.qty for d in self.draws)

    @property
    def unfilled(self) -> int:
        return self.requested - self.consumed

    @property
    def is_oversell(self) -> bool:
        return self.unfilled > 0


def fifo_order(layers: Iterable[LotLayer]) -> list[LotLayer]:
    return sorted(layers, key=lambda l: (l.source_date, l.created_at))


class FifoConsumptionEngine:
    """Plans FIFO draws against a set of lot layers."""

    def plan(self, layers: Iterable[LotLayer], qty: int) -> ConsumptionPlan:
        if qty <= 0:
            logger.error("fifo_invalid_quantity", extra={"qty": qty})
            raise ValueError(f"Quantity to consume must be positive, got {qty}")

        remaining = qty
        draws: list[LotDraw] = []
        for layer in fifo_order(layers):
            if remaining <= 0:
                break
            if layer.qty_remaining <= 0:
                continue
            take = min(remaining, layer.qty_remaining)
            draws.append(
                LotDraw(
                    lot_id=layer.lot_id,
                    qty=take,
                    remaining_after=layer.qty_remaining - take,
                    location=layer.location,
                )
            )
            remaining -= take

        plan = ConsumptionPlan(requested=qty, draws=tuple(draws))
        if plan.is_oversell:
            logger.warning(
                "fifo_lots_exhausted",
                extra={"requested": qty, "consumed": plan.consumed},
            )
        return plan
