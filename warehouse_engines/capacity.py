"""
Module: warehouse_engines.capacity
Responsibility: Which (drawer, row) pairs each stock class may occupy, in
    priority order, and the per-row and per-batch limits.
Architecture position: Engines -- pure, stateless, zero I/O.

Default layout:
    CORE       -> drawer C, rows 1-2
    COMMANDER  -> drawer C, rows 3-6
    REGULAR    -> drawers D, E, F, A, B, G, H, I, J (in that order), rows 1-6
    CTBULK     -> same rows as REGULAR

    Every row holds 900 cards.  Batch numbers run 1..99 within a row.

Backfill treats CORE and COMMANDER as REGULAR (holding_class): lots without
a location go to the general drawers first and are moved to their dedicated
C rows later through the worklist.
"""

from dataclasses import dataclass, field

from warehouse_kernel.domain.values import RowKey, StockClass
from warehouse_kernel.exceptions import ConfigurationError

ROW_CAPACITY = 900
MAX_BATCH = 99
DEDICATED_DRAWER = "C"
REGULAR_DRAWER_PRIORITY: tuple[str, ...] = ("D", "E", "F", "A", "B", "G", "H", "I", "J")
REGULAR_ROWS: tuple[int, ...] = (1, 2, 3, 4, 5, 6)
CORE_ROWS: tuple[int, ...] = (1, 2)
COMMANDER_ROWS: tuple[int, ...] = (3, 4, 5, 6)


@dataclass(frozen=True)
class RowGroup:
    """An ordered run of rows in one drawer.

    Contiguous-span credit during allocation only ever looks at later rows
    inside the same group.
    """

    drawer: str
    rows: tuple[int, ...]

    def row_keys(self) -> tuple[RowKey, ...]:
        return tuple(RowKey(self.drawer, r) for r in self.rows)


def _regular_groups(drawers: tuple[str, ...]) -> tuple[RowGroup, ...]:
    return tuple(RowGroup(d, REGULAR_ROWS) for d in drawers)


@dataclass(frozen=True)
class CapacityModel:
    """Immutable capacity rules parameterised by stock class."""

    row_capacity: int = ROW_CAPACITY
    max_batch: int = MAX_BATCH
    groups_by_class: dict[StockClass, tuple[RowGroup, ...]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        if self.row_capacity <= 0:
            raise ConfigurationError(
                f"row_capacity must be positive, got {self.row_capacity}"
            )
        if not 1 <= self.max_batch <= 99:
            raise ConfigurationError(
                f"max_batch must be within 1..99, got {self.max_batch}"
            )
        missing = [sc.value for sc in StockClass if sc not in self.groups_by_class]
        if missing:
            raise ConfigurationError(f"No row groups for stock classes: {missing}")

    @classmethod
    def default(cls) -> "CapacityModel":
        return cls.build()

    @classmethod
    def build(
        cls,
        row_capacity: int = ROW_CAPACITY,
        max_batch: int = MAX_BATCH,
        regular_drawers: tuple[str, ...] = REGULAR_DRAWER_PRIORITY,
        core_rows: tuple[int, ...] = CORE_ROWS,
        commander_rows: tuple[int, ...] = COMMANDER_ROWS,
    ) -> "CapacityModel":
        regular = _regular_groups(tuple(regular_drawers))
        return cls(
            row_capacity=row_capacity,
            max_batch=max_batch,
            groups_by_class={
                StockClass.CORE: (RowGroup(DEDICATED_DRAWER, tuple(core_rows)),),
                StockClass.COMMANDER: (
                    RowGroup(DEDICATED_DRAWER, tuple(commander_rows)),
                ),
                StockClass.REGULAR: regular,
                StockClass.CTBULK: regular,
            },
        )

    def groups_for(self, stock_class: StockClass) -> tuple[RowGroup, ...]:
        return self.groups_by_class[stock_class]

    def rows_for(self, stock_class: StockClass) -> tuple[RowKey, ...]:
        return tuple(rk for g in self.groups_for(stock_class) for rk in g.row_keys())

    def is_dedicated_row(self, stock_class: StockClass, row_key: RowKey) -> bool:
        return row_key in self.rows_for(stock_class)

    def capacity_of(self, row_key: RowKey) -> int:
        return self.row_capacity


def holding_class(stock_class: StockClass) -> StockClass:
    """Class whose rows a location-less lot is backfilled into."""
    if stock_class in (StockClass.CORE, StockClass.COMMANDER):
        return StockClass.REGULAR
    return stock_class
