"""
Tests for BackfillService.

Covers:
- Strict single-row placement of unlocated lots
- Idempotency and dry runs
- Existing occupancy and holding class for CORE lots
- Unplaceable lots and chunk-level transaction failures
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Update

from tests.conftest import load_lots, make_sku
from warehouse_config.schema import BackfillConfig
from warehouse_engines.backfill import NO_REGULAR_CAPACITY
from warehouse_kernel.domain.values import StockClass
from warehouse_services.backfill_service import BackfillService


@pytest.fixture
def service(db_session, resolver, clock):
    return BackfillService(db_session, resolver=resolver, clock=clock)


def _locations(session):
    return {lot.id: lot.location for lot in load_lots(session)}


class TestBackfill:
    def test_places_unlocated_lots(self, db_session, service, add_lot):
        a = add_lot(make_sku(1), qty_in=10, source_code="S1")
        b = add_lot(make_sku(2), qty_in=5, source_code="S1")
        c = add_lot(make_sku(3), qty_in=5, source_code="S2")

        result = service.backfill()

        assert result.scanned == 3
        assert result.planned == 3
        assert result.updated == 3
        assert result.errors == ()
        assert result.moves == ((a.id, "D01.01"), (b.id, "D01.01"), (c.id, "D01.02"))
        assert _locations(db_session) == {a.id: "D01.01", b.id: "D01.01", c.id: "D01.02"}

    def test_second_run_updates_nothing(self, db_session, service, add_lot):
        add_lot(make_sku(1))
        service.backfill()

        result = service.backfill()

        assert result.scanned == 0
        assert result.updated == 0

    def test_blank_location_is_unlocated(self, db_session, service, add_lot):
        lot = add_lot(make_sku(1), location="")
        result = service.backfill()
        assert result.updated == 1
        assert _locations(db_session) == {lot.id: "D01.01"}

    def test_exhausted_lots_ignored(self, service, add_lot):
        add_lot(make_sku(1), qty_in=5, qty_remaining=0)
        assert service.backfill().scanned == 0

    def test_dry_run_writes_nothing(self, db_session, service, add_lot):
        lot = add_lot(make_sku(1))

        result = service.backfill(dry_run=True)

        assert result.dry_run is True
        assert result.planned == 1
        assert result.updated == 0
        assert result.moves == ((lot.id, "D01.01"),)
        assert _locations(db_session) == {lot.id: None}

    def test_existing_occupancy_respected(self, db_session, service, add_lot):
        add_lot(make_sku(9), qty_in=900, location="D01.01")
        lot = add_lot(make_sku(1), qty_in=1)

        service.backfill()

        assert _locations(db_session)[lot.id] == "D02.01"

    def test_core_lots_held_in_regular_rows(self, db_session, service, add_lot, class_map):
        class_map[1] = StockClass.CORE
        lot = add_lot(make_sku(1))

        service.backfill()

        assert _locations(db_session)[lot.id] == "D01.01"

    def test_lot_larger_than_a_row_unplaced(self, db_session, service, add_lot):
        big = add_lot(make_sku(1), qty_in=901)
        small = add_lot(make_sku(2), qty_in=3)

        result = service.backfill()

        assert result.updated == 1
        [error] = result.errors
        assert error.item_key == str(big.id)
        assert error.code == "ALLOCATION_CAPACITY_EXHAUSTED"
        assert error.message == NO_REGULAR_CAPACITY
        assert _locations(db_session) == {big.id: None, small.id: "D01.01"}

    def test_limit(self, service, add_lot):
        first = add_lot(make_sku(1))
        second = add_lot(make_sku(2))
        add_lot(make_sku(3))

        result = service.backfill(limit=2)

        assert result.scanned == 2
        assert [lot_id for lot_id, _ in result.moves] == [first.id, second.id]

    def test_failed_chunk_does_not_stop_later_chunks(
        self, db_session, resolver, clock, add_lot, monkeypatch
    ):
        failing = add_lot(make_sku(1), source_code="S1")
        ok = add_lot(make_sku(2), source_code="S2")
        service = BackfillService(
            db_session, resolver=resolver, clock=clock, config=BackfillConfig(chunk_size=1)
        )

        original = db_session.execute
        state = {"failed": False}

        def flaky(statement, *args, **kwargs):
            if isinstance(statement, Update) and not state["failed"]:
                state["failed"] = True
                raise OperationalError("UPDATE", {}, Exception("lock timeout"))
            return original(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", flaky)
        result = service.backfill()

        assert result.planned == 2
        assert result.updated == 1
        assert [(e.item_key, e.code) for e in result.errors] == [
            (str(failing.id), "TRANSACTION_FAILURE")
        ]
        monkeypatch.undo()
        assert _locations(db_session) == {failing.id: None, ok.id: "D01.02"}

    def test_completion_logged(self, service, add_lot, captured_logs):
        add_lot(make_sku(1))
        service.backfill()
        [record] = [r for r in captured_logs() if r["message"] == "backfill_completed"]
        assert record["updated"] == 1
        assert record["dry_run"] is False
