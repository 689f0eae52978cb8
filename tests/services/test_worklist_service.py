"""Tests for WorklistService: relocation worklist and manual moves."""

from uuid import uuid4

import pytest

from tests.conftest import load_lots, make_sku
from warehouse_kernel.domain.dtos import LocationMove
from warehouse_kernel.domain.values import StockClass
from warehouse_services.worklist_service import WorklistService


@pytest.fixture
def service(db_session, resolver):
    return WorklistService(db_session, resolver=resolver)


@pytest.fixture
def misplaced_core(class_map, add_lot, add_balance):
    class_map[1] = StockClass.CORE
    lot = add_lot(make_sku(1), qty_in=5, location="D01.01")
    add_balance(make_sku(1), qty_on_hand=5)
    return lot


class TestBuildWorklist:
    def test_lists_core_stock_outside_c_rows(self, service, misplaced_core):
        [item] = service.build_worklist()

        assert item.sku == make_sku(1)
        assert item.stock_class == StockClass.CORE
        assert item.qty_on_hand == 5
        assert item.current_locations == ("D01.01",)
        assert item.suggested_location == "C01.01"
        assert [lot.lot_id for lot in item.lots] == [misplaced_core.id]

    def test_without_lots(self, service, misplaced_core):
        [item] = service.build_worklist(include_lots=False)
        assert item.lots == ()

    def test_commander_and_regular(self, service, class_map, add_lot, add_balance):
        class_map[2] = StockClass.COMMANDER
        add_lot(make_sku(2), qty_in=3)
        add_balance(make_sku(2), qty_on_hand=3)
        add_lot(make_sku(3), qty_in=3, location="D01.01")
        add_balance(make_sku(3), qty_on_hand=3)

        [item] = service.build_worklist()

        assert item.sku == make_sku(2)
        assert item.current_locations == ()
        assert item.suggested_location == "C03.01"

    def test_placed_and_empty_skus_skipped(self, service, class_map, add_lot, add_balance):
        class_map[1] = StockClass.CORE
        class_map[2] = StockClass.CORE
        add_lot(make_sku(1), qty_in=4, location="C02.01")
        add_balance(make_sku(1), qty_on_hand=4)
        add_balance(make_sku(2), qty_on_hand=0)

        assert service.build_worklist() == ()


class TestApplyMoves:
    def test_move_written(self, db_session, service, misplaced_core):
        result = service.apply_moves([LocationMove(str(misplaced_core.id), "c01.01")])

        assert result.requested == 1
        assert result.updated == 1
        assert result.errors == ()
        assert [lot.location for lot in load_lots(db_session)] == ["C01.01"]
        assert service.build_worklist() == ()

    def test_no_capacity_check(self, db_session, service, misplaced_core, add_lot):
        add_lot(make_sku(9), qty_in=900, location="C01.01")
        result = service.apply_moves([LocationMove(misplaced_core.id, "C01.01")])
        assert result.updated == 1

    def test_any_invalid_move_rejects_all(self, db_session, service, misplaced_core):
        result = service.apply_moves(
            [
                LocationMove(misplaced_core.id, "C01.02"),
                LocationMove(misplaced_core.id, "C1.2"),
                LocationMove(uuid4(), "C01.01"),
                LocationMove("not-a-uuid", "C01.01"),
            ]
        )

        assert result.requested == 4
        assert result.updated == 0
        assert [(e.item_key, e.code) for e in result.errors] == [
            ("move 1", "INVALID_LOCATION_CODE"),
            ("move 2", "LOT_NOT_FOUND"),
            ("move 3", "VALIDATION_ERROR"),
        ]
        assert [lot.location for lot in load_lots(db_session)] == ["D01.01"]

    def test_override_logged(self, service, misplaced_core, captured_logs):
        service.apply_moves([LocationMove(misplaced_core.id, "C01.01")])
        [record] = [r for r in captured_logs() if r["message"] == "lot_location_overridden"]
        assert record["from"] == "D01.01"
        assert record["to"] == "C01.01"
