"""
InventoryReconciliationChecker -- Pure engine for stock drift detection.

Compares three independent views of how many cards of a SKU are on hand:

    theoretical   sum(lot.qty_in) - sum(applied sale qty)
    lots          sum(lot.qty_remaining)
    balance       inventory_balances.qty_on_hand (0 when no row exists)

and reports every SKU where they disagree or any of them is negative.

Architecture: warehouse_engines -- pure calculation, zero I/O, zero DB access.
Aggregates are loaded by InventorySelector and merged here by normalised SKU
key, so legacy rows stored as "Near Mint" / "ENG" line up with "NM" / "EN".
Drift is reported, never corrected.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from warehouse_kernel.domain.inventory import (
    BalanceSnapshot,
    LotAggregate,
    SoldAggregate,
)
from warehouse_kernel.domain.values import SkuKey
from warehouse_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


class CheckSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ReconciliationFinding:
    code: str
    severity: CheckSeverity
    message: str
    details: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class DriftRow:
    """One SKU whose lot, sale and balance views disagree."""

    sku: SkuKey
    total_in: int
    total_remaining: int
    sold_applied: int
    balance_qty: int
    has_balance: bool
    findings: tuple[ReconciliationFinding, ...] = field(default=())

    @property
    def theoretical_on_hand(self) -> int:
        return self.total_in - self.sold_applied

    @property
    def diff_qty(self) -> int:
        return self.theoretical_on_hand - self.balance_qty

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(f.code for f in self.findings)


@dataclass
class _Totals:
    total_in: int = 0
    total_remaining: int = 0
    sold: int = 0
    balance: int = 0
    has_balance: bool = False


class InventoryReconciliationChecker:
    """Merges per-SKU aggregates and flags disagreements.

    Usage:
        checker = InventoryReconciliationChecker()
        rows = checker.check(lots, sold, balances, limit=500)
    """

    def merge(
        self,
        lots: Iterable[LotAggregate],
        sold: Iterable[SoldAggregate],
        balances: Iterable[BalanceSnapshot],
    ) -> dict[SkuKey, _Totals]:
        totals: dict[SkuKey, _Totals] = {}

        def bucket(sku: SkuKey) -> _Totals:
            return totals.setdefault(sku.normalized(), _Totals())

        for agg in lots:
            t = bucket(agg.sku)
            t.total_in += agg.total_in
            t.total_remaining += agg.total_remaining
        for agg in sold:
            bucket(agg.sku).sold += agg.qty
        for bal in balances:
            t = bucket(bal.sku)
            t.balance += bal.qty_on_hand
            t.has_balance = True
        return totals

    def check_sku(self, sku: SkuKey, totals: _Totals) -> DriftRow:
        theoretical = totals.total_in - totals.sold
        findings: list[ReconciliationFinding] = []
        values = {
            "theoretical_on_hand": theoretical,
            "total_remaining": totals.total_remaining,
            "balance_qty": totals.balance,
        }

        if theoretical != totals.balance:
            findings.append(ReconciliationFinding(
                code="THEORETICAL_BALANCE_MISMATCH",
                severity=CheckSeverity.ERROR,
                message=(
                    f"{sku}: lots in minus applied sales is {theoretical}, "
                    f"balance is {totals.balance}"
                ),
                details=values,
            ))
        if totals.total_remaining != totals.balance:
            findings.append(ReconciliationFinding(
                code="LOTS_BALANCE_MISMATCH",
                severity=CheckSeverity.WARNING,
                message=(
                    f"{sku}: lots hold {totals.total_remaining}, "
                    f"balance is {totals.balance}"
                ),
                details=values,
            ))
        if totals.total_remaining != theoretical:
            findings.append(ReconciliationFinding(
                code="LOTS_THEORETICAL_MISMATCH",
                severity=CheckSeverity.WARNING,
                message=(
                    f"{sku}: lots hold {totals.total_remaining}, "
                    f"expected {theoretical} from receipts and sales"
                ),
                details=values,
            ))
        if theoretical < 0:
            findings.append(ReconciliationFinding(
                code="NEGATIVE_THEORETICAL",
                severity=CheckSeverity.ERROR,
                message=f"{sku}: more applied sales than cards ever received",
                details=values,
            ))
        if totals.balance < 0:
            findings.append(ReconciliationFinding(
                code="NEGATIVE_BALANCE",
                severity=CheckSeverity.ERROR,
                message=f"{sku}: balance is negative ({totals.balance})",
                details=values,
            ))

        return DriftRow(
            sku=sku,
            total_in=totals.total_in,
            total_remaining=totals.total_remaining,
            sold_applied=totals.sold,
            balance_qty=totals.balance,
            has_balance=totals.has_balance,
            findings=tuple(findings),
        )

    def check(
        self,
        lots: Iterable[LotAggregate],
        sold: Iterable[SoldAggregate],
        balances: Iterable[BalanceSnapshot],
        limit: int | None = None,
    ) -> tuple[DriftRow, ...]:
        """Return drifting SKUs ordered by theoretical minus balance, ascending."""
        totals = self.merge(lots, sold, balances)
        rows = [self.check_sku(sku, t) for sku, t in totals.items()]
        flagged = [r for r in rows if r.findings]
        flagged.sort(key=lambda r: (r.diff_qty, r.sku))

        logger.info(
            "reconciliation_checked",
            extra={"skus_checked": len(rows), "skus_flagged": len(flagged)},
        )
        if limit is not None:
            flagged = flagged[:limit]
        return tuple(flagged)
