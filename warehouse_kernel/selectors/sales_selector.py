"""
Module: warehouse_kernel.selectors.sales_selector
Responsibility: Read pending sales rows and sync cursors.
Architecture position: Kernel > Selectors.

Pending means ``inventory_applied_at IS NULL``.  Rows are returned as frozen
SaleRecord snapshots so processing never depends on live ORM state.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select

from warehouse_kernel.domain.dtos import SaleRecord
from warehouse_kernel.models.sales import SalesLogModel, SyncCursorModel
from warehouse_kernel.selectors.base import BaseSelector


def parse_cursor_value(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SalesSelector(BaseSelector[SalesLogModel]):
    def pending(
        self,
        since: datetime | None,
        limit: int,
        only_source: str | None = None,
        sale_ids: Sequence[UUID] | None = None,
    ) -> list[SaleRecord]:
        """Unapplied sales ordered by sale timestamp, oldest first."""
        S = SalesLogModel
        stmt = select(S).where(S.inventory_applied_at.is_(None))
        if since is not None:
            stmt = stmt.where(S.created_at >= since)
        if only_source:
            stmt = stmt.where(S.source == only_source)
        if sale_ids:
            stmt = stmt.where(S.id.in_(list(sale_ids)))
        stmt = stmt.order_by(S.ts.asc(), S.created_at.asc(), S.id.asc()).limit(limit)

        return [
            SaleRecord(
                id=row.id,
                source=row.source,
                external_id=row.external_id,
                cardmarket_id=row.cardmarket_id,
                is_foil=row.is_foil,
                condition=row.condition,
                language=row.language,
                qty=row.qty,
                ts=row.ts,
            )
            for row in self.session.execute(stmt).scalars()
        ]

    def cursor(self, key: str) -> datetime | None:
        value = self.session.execute(
            select(SyncCursorModel.value).where(SyncCursorModel.key == key)
        ).scalar_one_or_none()
        return parse_cursor_value(value)
