"""
Tests for StockInService.

Covers:
- Lot, ledger and balance writes per received row
- Consolidation of duplicate rows within one upload
- Moving-average balance cost, including oversold balances
- Location allocation against existing and in-upload occupancy
- Row-level validation, capacity and transaction failures
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from tests.conftest import FIXED_NOW, load_balance, load_lots, make_sku
from warehouse_engines.capacity import CapacityModel
from warehouse_kernel.domain.dtos import StockInRow
from warehouse_kernel.domain.values import StockClass
from warehouse_kernel.exceptions import STOCK_CLASS_UNRESOLVED, ValidationError
from warehouse_kernel.models import InventoryTxnKind, InventoryTxnModel
from warehouse_services.stock_in_service import (
    StockInService,
    consolidate,
    parse_cost,
    parse_source_date,
)


def _row(cmid=1001, qty=5, cost="1.00", source="ABC123", source_date="2026-01-15", **kw):
    defaults = dict(is_foil=False, condition="NM", language="EN")
    defaults.update(kw)
    return StockInRow(
        cardmarket_id=cmid,
        qty=qty,
        unit_cost_eur=cost,
        source_code=source,
        source_date=source_date,
        **defaults,
    )


@pytest.fixture
def service(db_session, resolver, clock):
    return StockInService(db_session, resolver=resolver, clock=clock)


class TestImportRows:
    def test_creates_lot_txn_and_balance(self, db_session, service, class_map):
        class_map[1001] = StockClass.REGULAR
        row = StockInRow(
            cardmarket_id="1001",
            is_foil="false",
            condition="Near Mint",
            qty="5",
            unit_cost_eur="0,50",
            source_code="ABC123",
            source_date="01-02-2026",
        )

        result = service.import_rows([row])

        assert result.rows_received == 1
        assert result.lots_created == 1
        assert result.balances_created == 1
        assert result.row_errors == ()
        assert result.warnings == ()
        assert result.stock_class_counts == {"REGULAR": 1}

        sku = make_sku(1001)
        [lot] = load_lots(db_session, sku)
        assert lot.qty_in == lot.qty_remaining == 5
        assert lot.location == "D01.01"
        assert lot.source_code == "ABC123"
        assert lot.source_date == date(2026, 2, 1)
        assert lot.avg_unit_cost_eur == Decimal("0.5")

        [entry] = result.picklist
        assert entry.lot_id == lot.id
        assert entry.location == "D01.01"
        assert entry.sku == sku

        txn = db_session.execute(select(InventoryTxnModel)).scalar_one()
        assert txn.kind == InventoryTxnKind.LOT_IN.value
        assert txn.qty == 5
        assert txn.lot_id == lot.id
        assert txn.ref_source == "STOCK_IN"
        assert txn.ref_external_id == "ABC123"

        assert load_balance(db_session, sku).qty_on_hand == 5

    def test_duplicate_rows_consolidated(self, db_session, service):
        result = service.import_rows([_row(qty=2, cost="1.00"), _row(qty=3, cost="2.00")])

        assert result.rows_valid == 2
        assert result.lots_created == 1
        [lot] = load_lots(db_session)
        assert lot.qty_in == 5
        assert lot.avg_unit_cost_eur == Decimal("1.6")

    def test_different_source_dates_not_consolidated(self, db_session, service):
        result = service.import_rows(
            [_row(source_date="2026-01-01"), _row(source_date="2026-01-02")]
        )
        assert result.lots_created == 2
        assert result.balances_created == 1
        assert result.balances_updated == 1
        assert {lot.location for lot in load_lots(db_session)} == {"D01.01"}

    def test_balance_cost_reaveraged(self, db_session, service, add_balance):
        sku = make_sku()
        add_balance(sku, qty_on_hand=5, avg_unit_cost="1.00")

        result = service.import_rows([_row(qty=5, cost="3.00")])

        assert result.balances_updated == 1
        balance = load_balance(db_session, sku)
        assert balance.qty_on_hand == 10
        assert balance.avg_unit_cost_eur == Decimal("2")

    def test_oversold_balance_carries_no_cost_weight(self, db_session, service, add_balance):
        sku = make_sku()
        add_balance(sku, qty_on_hand=-3, avg_unit_cost="1.00")

        service.import_rows([_row(qty=5, cost="2.00")])

        balance = load_balance(db_session, sku)
        assert balance.qty_on_hand == 2
        assert balance.avg_unit_cost_eur == Decimal("2")

    def test_unresolved_class_warned_once_per_card(self, db_session, service):
        result = service.import_rows(
            [_row(source="A"), _row(source="B"), _row(cmid=2002, source="A")]
        )

        assert result.lots_created == 3
        assert [w.code for w in result.warnings] == [STOCK_CLASS_UNRESOLVED] * 2
        assert result.stock_class_counts == {"REGULAR": 3}

    def test_policy_tables_resolve_class(self, db_session, clock, add_policy):
        add_policy(2002, StockClass.CORE)
        add_policy(3003, StockClass.COMMANDER)
        service = StockInService(db_session, clock=clock)

        result = service.import_rows(
            [_row(cmid=1001), _row(cmid=2002), _row(cmid=3003)]
        )

        locations = {e.sku.cardmarket_id: e.location for e in result.picklist}
        assert locations == {1001: "D01.01", 2002: "C01.01", 3003: "C03.01"}
        assert [e.location for e in result.picklist] == ["C01.01", "C03.01", "D01.01"]
        assert len(result.warnings) == 1

    def test_upload_rows_see_each_other(self, db_session, service):
        result = service.import_rows(
            [
                _row(cmid=1, qty=500, source="A"),
                _row(cmid=2, qty=300, source="A"),
                _row(cmid=3, qty=50, source="B"),
            ]
        )
        locations = {e.sku.cardmarket_id: e.location for e in result.picklist}
        assert locations == {1: "D01.01", 2: "D01.01", 3: "D01.02"}

    def test_existing_occupancy_respected(self, db_session, service, add_lot):
        add_lot(make_sku(9), qty_in=900, location="D01.01", source_code="OLD")

        result = service.import_rows([_row(qty=1)])

        assert result.picklist[0].location == "D02.01"

    def test_defaults_for_source(self, db_session, service):
        row = _row(source=None, source_date=None)
        result = service.import_rows(
            [row], default_source_code="ORDER-7", default_source_date=date(2026, 1, 9)
        )
        [lot] = load_lots(db_session)
        assert lot.source_code == "ORDER-7"
        assert lot.source_date == date(2026, 1, 9)
        assert result.picklist[0].source_code == "ORDER-7"

    def test_fallbacks_without_defaults(self, db_session, service):
        service.import_rows([_row(source="  ", source_date="not a date")])
        [lot] = load_lots(db_session)
        assert lot.source_code == "UNKNOWN"
        assert lot.source_date == FIXED_NOW.date()

    def test_invalid_rows_itemised(self, db_session, service):
        result = service.import_rows(
            [
                _row(qty="x"),
                _row(condition=""),
                _row(cost="-1"),
                _row(is_foil="sometimes"),
                _row(cmid=77),
            ]
        )

        assert [e.item_key for e in result.row_errors] == ["line 1", "line 2", "line 3", "line 4"]
        assert {e.code for e in result.row_errors} == {"VALIDATION_ERROR"}
        assert result.rows_valid == 1
        assert result.lots_created == 1

    def test_capacity_exhausted_itemised(self, db_session, resolver, clock):
        service = StockInService(
            db_session,
            resolver=resolver,
            clock=clock,
            capacity=CapacityModel.build(row_capacity=10, regular_drawers=("D",)),
        )

        result = service.import_rows([_row(cmid=1, qty=100), _row(cmid=2, qty=4)])

        assert [e.code for e in result.row_errors] == ["ALLOCATION_CAPACITY_EXHAUSTED"]
        assert result.row_errors[0].item_key.startswith("1|nonfoil|NM|EN|ABC123|")
        assert [lot.cardmarket_id for lot in load_lots(db_session)] == [2]

    def test_row_transaction_failure_isolated(self, db_session, service, monkeypatch):
        original = StockInService._write_lot
        calls = {"n": 0}

        def flaky(self, lot, location):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return original(self, lot, location)

        monkeypatch.setattr(StockInService, "_write_lot", flaky)

        result = service.import_rows([_row(cmid=1, source="A"), _row(cmid=2, source="B")])

        assert [e.code for e in result.row_errors] == ["TRANSACTION_FAILURE"]
        assert result.lots_created == 1
        # The failed row never reserved its batch, so B gets batch 1.
        assert result.picklist[0].location == "D01.01"
        assert [lot.cardmarket_id for lot in load_lots(db_session)] == [2]

    def test_completion_logged(self, service, captured_logs):
        service.import_rows([_row()])
        messages = [r["message"] for r in captured_logs()]
        assert "stock_in_lot_created" in messages
        assert "stock_in_completed" in messages
        completed = next(r for r in captured_logs() if r["message"] == "stock_in_completed")
        assert "run_id" in completed


class TestAllocateLocation:
    def test_read_only(self, db_session, service):
        assert service.allocate_location(StockClass.REGULAR, "X", 10) == "D01.01"
        assert service.allocate_location(StockClass.REGULAR, "Y", 10) == "D01.01"
        assert load_lots(db_session) == []

    def test_sees_committed_lots(self, service):
        service.import_rows([_row(source="X", qty=10)])
        assert service.allocate_location(StockClass.REGULAR, "X", 10) == "D01.01"
        assert service.allocate_location(StockClass.REGULAR, "Y", 10) == "D01.02"
        assert service.allocate_location(StockClass.CORE, "Y", 10) == "C01.01"


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2026-01-15", date(2026, 1, 15)),
            ("2026-01-15T08:30:00Z", date(2026, 1, 15)),
            ("15-01-2026", date(2026, 1, 15)),
            ("15/01/2026", date(2026, 1, 15)),
            ("15.01.2026", date(2026, 1, 15)),
            ("31-02-2026", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_source_date(self, raw, expected):
        assert parse_source_date(raw) == expected

    def test_parse_cost(self):
        assert parse_cost("1,25") == Decimal("1.25")
        assert parse_cost(0) == Decimal("0")
        for bad in (None, "abc", "-0.01", "NaN"):
            with pytest.raises(ValidationError):
                parse_cost(bad)

    def test_consolidate_keeps_first_seen_order(self, service):
        lots = [
            service.validate_row(_row(cmid=2), 1),
            service.validate_row(_row(cmid=1), 2),
            service.validate_row(_row(cmid=2, qty=1, cost="4.00"), 3),
        ]
        merged = consolidate(lots)
        assert [m.sku.cardmarket_id for m in merged] == [2, 1]
        assert merged[0].qty == 6
        assert merged[0].lines == (1, 3)
        assert merged[0].unit_cost_eur == Decimal("1.500000")
