#!/usr/bin/env python3
"""
Warehouse operations: schema setup, location backfill, sale application,
consistency diagnostics and the relocation worklist.

Every subcommand prints one JSON document to stdout.  Logs go to stderr as
structured JSON lines.

Database URL resolution: --database-url, then $WAREHOUSE_DATABASE_URL, then
``database_url`` from the config file.

Usage:
    python3 scripts/warehouse_ops.py [--config PATH] [--database-url URL] <command> [options]

Examples:
    # Create tables
    python3 scripts/warehouse_ops.py --database-url sqlite:///warehouse.db init-db

    # Preview, then run, a location backfill
    python3 scripts/warehouse_ops.py backfill --limit 500 --dry-run
    python3 scripts/warehouse_ops.py backfill --limit 500

    # Apply sales logged since a timestamp (default: the stored sync cursor)
    python3 scripts/warehouse_ops.py apply-sales --since 2026-02-01T00:00:00Z --simulate

    # Drift report and worklist
    python3 scripts/warehouse_ops.py diagnostics --limit 100
    python3 scripts/warehouse_ops.py worklist --no-lots
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DATABASE_URL_ENV = "WAREHOUSE_DATABASE_URL"


def _since(value: str):
    from warehouse_kernel.selectors.sales_selector import parse_cursor_value

    parsed = parse_cursor_value(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Card warehouse operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Warehouse config YAML (default: warehouse_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help=f"Database URL (default: ${DATABASE_URL_ENV} or the config's database_url).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables.")

    backfill = sub.add_parser("backfill", help="Assign locations to lots without one.")
    backfill.add_argument("--limit", type=int, default=None, help="Maximum lots to scan.")
    backfill.add_argument("--dry-run", action="store_true", help="Plan only; write nothing.")

    sales = sub.add_parser("apply-sales", help="Apply pending sales FIFO.")
    sales.add_argument("--since", type=_since, default=None, help="ISO-8601 lower bound on created_at.")
    sales.add_argument("--limit", type=int, default=None, help="Maximum sales to process.")
    sales.add_argument("--simulate", action="store_true", help="Preview consumption; write nothing.")
    sales.add_argument("--source", default=None, help="Only sales from this marketplace source.")
    sales.add_argument(
        "--sale-id",
        action="append",
        type=UUID,
        default=None,
        dest="sale_ids",
        help="Only this sales_log id (repeatable).",
    )

    diagnostics = sub.add_parser("diagnostics", help="Report lot/sale/balance drift.")
    diagnostics.add_argument("--limit", type=int, default=None, help="Maximum rows to report.")

    worklist = sub.add_parser("worklist", help="List CORE/COMMANDER stock outside its C rows.")
    worklist.add_argument("--no-lots", action="store_true", help="Omit per-lot detail.")

    return parser


def to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def _emit(payload: Any) -> None:
    print(json.dumps(to_jsonable(payload), indent=2, default=str))


def _run(args: argparse.Namespace, session, config) -> int:
    from warehouse_config import build_capacity_model
    from warehouse_kernel.domain.clock import SystemClock
    from warehouse_services import (
        BackfillService,
        DiagnosticsService,
        SalesService,
        WorklistService,
    )

    clock = SystemClock()
    capacity = build_capacity_model(config)

    if args.command == "backfill":
        result = BackfillService(
            session, clock=clock, capacity=capacity, config=config.backfill
        ).backfill(limit=args.limit, dry_run=args.dry_run)
        _emit(result)
        return 0 if not result.errors else 1

    if args.command == "apply-sales":
        result = SalesService(session, clock=clock, config=config.sales).apply_sales(
            since=args.since,
            limit=args.limit,
            simulate=args.simulate,
            only_source=args.source,
            sale_ids=args.sale_ids,
        )
        payload = to_jsonable(result)
        payload["oversold"] = result.oversold
        _emit(payload)
        return 0 if not result.errors else 1

    if args.command == "diagnostics":
        report = DiagnosticsService(session, config=config.diagnostics).report(limit=args.limit)
        _emit(
            {
                "skus_checked": report.skus_checked,
                "flagged": len(report.rows),
                "rows": [
                    {
                        "sku": str(row.sku),
                        "total_in": row.total_in,
                        "total_remaining": row.total_remaining,
                        "sold_applied": row.sold_applied,
                        "theoretical_on_hand": row.theoretical_on_hand,
                        "balance_qty": row.balance_qty,
                        "diff_qty": row.diff_qty,
                        "codes": list(row.codes),
                    }
                    for row in report.rows
                ],
            }
        )
        return 0 if report.is_clean else 1

    if args.command == "worklist":
        items = WorklistService(session, capacity=capacity).build_worklist(
            include_lots=not args.no_lots
        )
        _emit({"items": items})
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Lazy imports so we fail fast on args first
    from warehouse_config import get_active_config
    from warehouse_kernel.db.engine import (
        create_tables,
        get_session,
        init_engine_from_url,
        reset_engine,
    )
    from warehouse_kernel.exceptions import WarehouseKernelError
    from warehouse_kernel.logging_config import configure_logging

    try:
        config = get_active_config(args.config)
    except (OSError, WarehouseKernelError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(level=getattr(logging, config.log_level, logging.INFO))

    database_url = args.database_url or os.environ.get(DATABASE_URL_ENV) or config.database_url
    if not database_url:
        print("ERROR: No database URL configured.", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(database_url)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "init-db":
            create_tables()
            from warehouse_kernel.db.base import Base

            _emit({"tables": sorted(Base.metadata.tables)})
            return 0

        session = get_session()
        try:
            return _run(args, session, config)
        except WarehouseKernelError as e:
            session.rollback()
            print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
            return 1
        finally:
            session.close()
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
