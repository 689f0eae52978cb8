"""
Tests for warehouse configuration loading.

Covers:
- Shipped default set
- Section parsing, unknown keys and value validation
- Bridging into the capacity model
"""

from datetime import date

import pytest
import yaml

from warehouse_config import build_capacity_model, get_active_config
from warehouse_config.loader import compute_checksum, parse_date, parse_warehouse_config
from warehouse_config.schema import BackfillConfig, WarehouseConfig
from warehouse_kernel.domain.values import RowKey, StockClass
from warehouse_kernel.exceptions import ConfigurationError


class TestDefaultConfig:
    def test_loads_shipped_defaults(self):
        config = get_active_config()

        assert isinstance(config, WarehouseConfig)
        assert config.config_id == "default"
        assert config.capacity.row_capacity == 900
        assert config.capacity.regular_drawers == ("D", "E", "F", "A", "B", "G", "H", "I", "J")
        assert config.backfill.chunk_size == 500
        assert config.sales.cursor_key == "sales.apply.since"
        assert config.imports.synthetic_source_code == "BACKFILL"
        assert len(config.checksum) == 64

    def test_load_is_logged(self, captured_logs):
        get_active_config()
        records = [r for r in captured_logs() if r["message"] == "warehouse_config_loaded"]
        assert records and records[0]["config_id"] == "default"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParsing:
    def test_empty_document_uses_defaults(self):
        config = parse_warehouse_config({})
        assert config.capacity.max_batch == 99
        assert config.log_level == "INFO"

    def test_overrides(self, tmp_path):
        path = tmp_path / "small.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "config_id": "small",
                    "log_level": "debug",
                    "capacity": {"row_capacity": 50, "regular_drawers": ["E", "D"]},
                    "sales": {"respect_sale_date_cutoff": True},
                }
            )
        )
        config = get_active_config(path)

        assert config.config_id == "small"
        assert config.log_level == "DEBUG"
        assert config.capacity.row_capacity == 50
        assert config.sales.respect_sale_date_cutoff is True

        capacity = build_capacity_model(config)
        assert capacity.row_capacity == 50
        assert capacity.rows_for(StockClass.REGULAR)[0] == RowKey("E", 1)
        assert capacity.rows_for(StockClass.CORE) == (RowKey("C", 1), RowKey("C", 2))

    def test_unknown_top_level_key(self):
        with pytest.raises(ConfigurationError, match="Unknown top-level"):
            parse_warehouse_config({"capacty": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ConfigurationError, match="row_cap"):
            parse_warehouse_config({"capacity": {"row_cap": 10}})

    @pytest.mark.parametrize(
        "section",
        [
            {"capacity": {"regular_drawers": ["C"]}},
            {"capacity": {"max_batch": 0}},
            {"capacity": {"core_rows": [1, 2], "commander_rows": [2, 3]}},
            {"backfill": {"chunk_size": 0}},
            {"backfill": {"default_limit": 50, "max_limit": 10}},
            {"sales": {"cursor_key": ""}},
        ],
    )
    def test_invalid_values(self, section):
        with pytest.raises(ConfigurationError):
            parse_warehouse_config(section)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_checksum_stable(self):
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})

    def test_parse_date(self):
        assert parse_date("2000-01-01") == date(2000, 1, 1)
        assert parse_date(date(2001, 2, 3)) == date(2001, 2, 3)


class TestBackfillLimit:
    @pytest.mark.parametrize(
        "limit,expected",
        [(None, 2000), (0, 1), (-4, 1), (150, 150), (10**9, 20000)],
    )
    def test_clamp(self, limit, expected):
        assert BackfillConfig().clamp_limit(limit) == expected
