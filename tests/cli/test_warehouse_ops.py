"""End-to-end tests for scripts/warehouse_ops.py against a file-backed SQLite database."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from scripts.warehouse_ops import DATABASE_URL_ENV, main
from warehouse_kernel.models import InventoryBalanceModel, InventoryLotModel, SalesLogModel

SEEDED_AT = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    url = f"sqlite:///{tmp_path / 'warehouse.db'}"
    assert main(["--database-url", url, "init-db"]) == 0
    return url


def _seed(url, *objects):
    engine = create_engine(url)
    try:
        with Session(engine) as session:
            session.add_all(objects)
            session.commit()
    finally:
        engine.dispose()


def _lot(cmid, qty, location=None):
    return InventoryLotModel(
        cardmarket_id=cmid,
        is_foil=False,
        condition="NM",
        language="EN",
        qty_in=qty,
        qty_remaining=qty,
        avg_unit_cost_eur=Decimal("1.00"),
        source_code="SEED",
        source_date=date(2026, 1, 1),
        location=location,
        created_at=SEEDED_AT,
    )


def _balance(cmid, qty):
    return InventoryBalanceModel(
        cardmarket_id=cmid,
        is_foil=False,
        condition="NM",
        language="EN",
        qty_on_hand=qty,
        updated_at=SEEDED_AT,
    )


def _run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr()
    return code, out


class TestInitDb:
    def test_creates_tables(self, tmp_path, capsys, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        url = f"sqlite:///{tmp_path / 'fresh.db'}"

        code, out = _run(capsys, "--database-url", url, "init-db")

        assert code == 0
        tables = json.loads(out.out)["tables"]
        assert {"inventory_lots", "inventory_balances", "inventory_txns", "sales_log"} <= set(tables)

    def test_url_from_environment(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, f"sqlite:///{tmp_path / 'env.db'}")
        code, _ = _run(capsys, "init-db")
        assert code == 0
        assert (tmp_path / "env.db").exists()

    def test_missing_config_file(self, tmp_path, capsys):
        code, out = _run(capsys, "--config", str(tmp_path / "nope.yaml"), "init-db")
        assert code == 1
        assert "Failed to load config" in out.err


class TestCommands:
    def test_backfill_then_clean_diagnostics(self, db_url, capsys):
        _seed(db_url, _lot(1, 4), _balance(1, 4))
        capsys.readouterr()

        code, out = _run(capsys, "--database-url", db_url, "backfill", "--dry-run")
        assert code == 0
        assert json.loads(out.out)["planned"] == 1

        code, out = _run(capsys, "--database-url", db_url, "backfill")
        payload = json.loads(out.out)
        assert code == 0
        assert payload["updated"] == 1
        assert payload["moves"][0][1] == "D01.01"

        code, out = _run(capsys, "--database-url", db_url, "diagnostics")
        assert code == 0
        assert json.loads(out.out) == {"skus_checked": 1, "flagged": 0, "rows": []}

    def test_diagnostics_flags_drift(self, db_url, capsys):
        _seed(db_url, _lot(1, 4), _balance(1, 6))
        capsys.readouterr()

        code, out = _run(capsys, "--database-url", db_url, "diagnostics", "--limit", "5")

        assert code == 1
        [row] = json.loads(out.out)["rows"]
        assert row["sku"] == "1|nonfoil|NM|EN"
        assert row["diff_qty"] == -2

    def test_apply_sales_requires_since(self, db_url, capsys):
        code, out = _run(capsys, "--database-url", db_url, "apply-sales")
        assert code == 1
        assert "MISSING_SINCE" in out.err

    def test_apply_sales(self, db_url, capsys):
        _seed(
            db_url,
            _lot(1, 4, location="D01.01"),
            _balance(1, 4),
            SalesLogModel(
                source="cardmarket",
                external_id="order-1",
                cardmarket_id=1,
                is_foil=False,
                condition="NM",
                language="EN",
                qty=3,
                ts=datetime(2026, 3, 1, tzinfo=timezone.utc),
                created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            ),
        )
        capsys.readouterr()
        args = ("--database-url", db_url, "apply-sales", "--since", "2026-02-01T00:00:00Z")

        code, out = _run(capsys, *args, "--simulate")
        assert code == 0
        assert json.loads(out.out)["simulate"] is True

        code, out = _run(capsys, *args)
        payload = json.loads(out.out)
        assert code == 0
        assert payload["processed"] == 1
        assert payload["oversold"] == 0
        assert payload["consumptions"][0]["draws"][0]["qty"] == 3

        code, out = _run(capsys, *args)
        assert json.loads(out.out)["found"] == 0

    def test_worklist(self, db_url, capsys):
        code, out = _run(capsys, "--database-url", db_url, "worklist", "--no-lots")
        assert code == 0
        assert json.loads(out.out) == {"items": []}

    def test_invalid_since_rejected(self, db_url, capsys):
        with pytest.raises(SystemExit):
            main(["--database-url", db_url, "apply-sales", "--since", "yesterday"])
