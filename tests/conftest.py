"""
Pytest fixtures for the warehouse test suite.

Provides:
- In-memory SQLite sessions with SAVEPOINT support (one fresh database per test)
- A deterministic clock
- Builders for lots, balances, sales, cursors and stock policies
- Structured log capture

Services own their transactions and commit, so fixtures commit the rows they
create instead of relying on rollback isolation.
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse_kernel.db.base import Base
from warehouse_kernel.db.engine import install_sqlite_savepoint_support
from warehouse_kernel.domain.clock import DeterministicClock
from warehouse_kernel.domain.values import SkuKey, StockClass
from warehouse_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from warehouse_kernel.models import (
    CardLookupModel,
    InventoryBalanceModel,
    InventoryLotModel,
    SalesLogModel,
    StockPolicyModel,
    SyncCursorModel,
    import_all_models,
)
from warehouse_services.stock_class_resolver import CallableStockClassResolver

FIXED_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture warehouse_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, db_session):
            ...
            logs = captured_logs()
            assert any(r["message"] == "backfill_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("warehouse_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    import_all_models()
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    install_sqlite_savepoint_support(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


# =============================================================================
# Resolvers
# =============================================================================


@pytest.fixture
def class_map() -> dict[int, StockClass]:
    """Mutable cardmarket_id -> StockClass mapping behind ``resolver``."""
    return {}


@pytest.fixture
def resolver(class_map) -> CallableStockClassResolver:
    return CallableStockClassResolver(class_map.get)


# =============================================================================
# Row builders
# =============================================================================


def make_sku(
    cardmarket_id: int = 1001,
    is_foil: bool = False,
    condition: str = "NM",
    language: str = "EN",
) -> SkuKey:
    return SkuKey(cardmarket_id, is_foil, condition, language)


@pytest.fixture
def add_lot(db_session, clock) -> Callable[..., InventoryLotModel]:
    """Insert and commit one lot.  Each call ticks the clock."""

    def _add(
        sku: SkuKey | None = None,
        qty_in: int = 10,
        qty_remaining: int | None = None,
        source_code: str = "SRC",
        source_date: date = date(2026, 1, 1),
        location: str | None = None,
        unit_cost: str | None = "1.00",
    ) -> InventoryLotModel:
        sku = sku or make_sku()
        lot = InventoryLotModel(
            cardmarket_id=sku.cardmarket_id,
            is_foil=sku.is_foil,
            condition=sku.condition,
            language=sku.language,
            qty_in=qty_in,
            qty_remaining=qty_in if qty_remaining is None else qty_remaining,
            avg_unit_cost_eur=Decimal(unit_cost) if unit_cost is not None else None,
            source_code=source_code,
            source_date=source_date,
            location=location,
            created_at=clock.tick(),
        )
        db_session.add(lot)
        db_session.commit()
        return lot

    return _add


@pytest.fixture
def add_balance(db_session, clock) -> Callable[..., InventoryBalanceModel]:
    def _add(
        sku: SkuKey | None = None,
        qty_on_hand: int = 0,
        avg_unit_cost: str | None = None,
    ) -> InventoryBalanceModel:
        sku = sku or make_sku()
        balance = InventoryBalanceModel(
            cardmarket_id=sku.cardmarket_id,
            is_foil=sku.is_foil,
            condition=sku.condition,
            language=sku.language,
            qty_on_hand=qty_on_hand,
            avg_unit_cost_eur=Decimal(avg_unit_cost) if avg_unit_cost is not None else None,
            updated_at=clock.now(),
        )
        db_session.add(balance)
        db_session.commit()
        return balance

    return _add


@pytest.fixture
def add_sale(db_session, clock) -> Callable[..., SalesLogModel]:
    """Insert and commit one pending sales_log row.

    ``sku`` fills the SKU columns; pass raw column values through ``overrides``
    to simulate malformed feed rows.
    """
    counter = {"n": 0}

    def _add(
        sku: SkuKey | None = None,
        qty: int | None = 1,
        source: str = "cardmarket",
        external_id: str | None = None,
        ts: datetime | None = None,
        **overrides,
    ) -> SalesLogModel:
        counter["n"] += 1
        sku = sku or make_sku()
        created = clock.tick()
        columns = dict(
            source=source,
            external_id=external_id or f"order-{counter['n']}",
            cardmarket_id=sku.cardmarket_id,
            is_foil=sku.is_foil,
            condition=sku.condition,
            language=sku.language,
            qty=qty,
            ts=ts or created,
            created_at=created,
        )
        columns.update(overrides)
        sale = SalesLogModel(**columns)
        db_session.add(sale)
        db_session.commit()
        return sale

    return _add


@pytest.fixture
def set_cursor(db_session, clock) -> Callable[[str, str], SyncCursorModel]:
    def _set(key: str, value: str) -> SyncCursorModel:
        cursor = SyncCursorModel(key=key, value=value, updated_at=clock.now())
        db_session.add(cursor)
        db_session.commit()
        return cursor

    return _set


@pytest.fixture
def add_policy(db_session) -> Callable[[int, StockClass | str], None]:
    """Map a cardmarket_id to a stock class through the policy tables."""

    def _add(cardmarket_id: int, stock_class: StockClass | str) -> None:
        identity = f"card-{cardmarket_id}"
        db_session.add(CardLookupModel(cardmarket_id=cardmarket_id, card_identity=identity))
        db_session.add(
            StockPolicyModel(
                card_identity=identity,
                stock_class=getattr(stock_class, "value", stock_class),
            )
        )
        db_session.commit()

    return _add


def load_lots(session: Session, sku: SkuKey | None = None) -> list[InventoryLotModel]:
    stmt = select(InventoryLotModel)
    if sku is not None:
        stmt = stmt.where(
            InventoryLotModel.cardmarket_id == sku.cardmarket_id,
            InventoryLotModel.is_foil == sku.is_foil,
            InventoryLotModel.condition == sku.condition,
            InventoryLotModel.language == sku.language,
        )
    session.expire_all()
    return list(
        session.execute(
            stmt.order_by(InventoryLotModel.source_date, InventoryLotModel.created_at)
        ).scalars()
    )


def load_balance(session: Session, sku: SkuKey) -> InventoryBalanceModel | None:
    session.expire_all()
    return session.execute(
        select(InventoryBalanceModel).where(
            InventoryBalanceModel.cardmarket_id == sku.cardmarket_id,
            InventoryBalanceModel.is_foil == sku.is_foil,
            InventoryBalanceModel.condition == sku.condition,
            InventoryBalanceModel.language == sku.language,
        )
    ).scalar_one_or_none()
