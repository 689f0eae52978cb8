"""Domain models for the warehouse kernel."""

from warehouse_kernel.models.inventory import (
    InventoryBalanceModel,
    InventoryLotModel,
    InventoryTxnKind,
    InventoryTxnModel,
)
from warehouse_kernel.models.policy import CardLookupModel, StockPolicyModel
from warehouse_kernel.models.sales import SalesLogModel, SyncCursorModel

__all__ = [
    "InventoryLotModel",
    "InventoryBalanceModel",
    "InventoryTxnModel",
    "InventoryTxnKind",
    "SalesLogModel",
    "SyncCursorModel",
    "CardLookupModel",
    "StockPolicyModel",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every model module is imported so Base.metadata is complete."""
    from warehouse_kernel.models import inventory, policy, sales  # noqa: F401
