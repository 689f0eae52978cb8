"""
WarehouseConfig schema.

Typed, frozen view of a warehouse configuration set.  YAML files are parsed
into these types by the loader; nothing else reads the YAML.

Every section has defaults matching the physical warehouse layout, so an
empty file yields a working configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from warehouse_engines.capacity import (
    COMMANDER_ROWS,
    CORE_ROWS,
    MAX_BATCH,
    REGULAR_DRAWER_PRIORITY,
    ROW_CAPACITY,
)
from warehouse_kernel.exceptions import ConfigurationError


def _require_positive(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class CapacityConfig:
    row_capacity: int = ROW_CAPACITY
    max_batch: int = MAX_BATCH
    regular_drawers: tuple[str, ...] = REGULAR_DRAWER_PRIORITY
    core_rows: tuple[int, ...] = CORE_ROWS
    commander_rows: tuple[int, ...] = COMMANDER_ROWS

    def __post_init__(self) -> None:
        _require_positive("capacity.row_capacity", self.row_capacity)
        if not 1 <= self.max_batch <= 99:
            raise ConfigurationError(
                f"capacity.max_batch must be within 1..99, got {self.max_batch}"
            )
        bad = [d for d in self.regular_drawers if len(d) != 1 or d not in "ABDEFGHIJ"]
        if bad or not self.regular_drawers:
            raise ConfigurationError(
                f"capacity.regular_drawers must be drawer letters other than C, got {bad}"
            )
        if set(self.core_rows) & set(self.commander_rows):
            raise ConfigurationError("capacity.core_rows and commander_rows overlap")


@dataclass(frozen=True)
class BackfillConfig:
    default_limit: int = 2000
    max_limit: int = 20000
    chunk_size: int = 500

    def __post_init__(self) -> None:
        _require_positive("backfill.default_limit", self.default_limit)
        _require_positive("backfill.max_limit", self.max_limit)
        _require_positive("backfill.chunk_size", self.chunk_size)
        if self.default_limit > self.max_limit:
            raise ConfigurationError("backfill.default_limit exceeds backfill.max_limit")

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(self.max_limit, int(limit)))


@dataclass(frozen=True)
class SalesConfig:
    default_limit: int = 500
    cursor_key: str = "sales.apply.since"
    # Ignore lots received after the sale date when picking FIFO candidates.
    respect_sale_date_cutoff: bool = False

    def __post_init__(self) -> None:
        _require_positive("sales.default_limit", self.default_limit)
        if not self.cursor_key:
            raise ConfigurationError("sales.cursor_key must not be empty")


@dataclass(frozen=True)
class ImportConfig:
    default_source_code: str = "UNKNOWN"
    historical_chunk_size: int = 1000
    synthetic_source_code: str = "BACKFILL"
    synthetic_source_date: str = "2000-01-01"

    def __post_init__(self) -> None:
        _require_positive("imports.historical_chunk_size", self.historical_chunk_size)


@dataclass(frozen=True)
class DiagnosticsConfig:
    default_limit: int = 500

    def __post_init__(self) -> None:
        _require_positive("diagnostics.default_limit", self.default_limit)


@dataclass(frozen=True)
class WarehouseConfig:
    config_id: str = "default"
    version: int = 1
    database_url: str | None = None
    log_level: str = "INFO"
    capacity: CapacityConfig = field(default_factory=CapacityConfig)
    backfill: BackfillConfig = field(default_factory=BackfillConfig)
    sales: SalesConfig = field(default_factory=SalesConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    checksum: str = ""
