"""Read-only query selectors."""

from warehouse_kernel.selectors.base import BaseSelector
from warehouse_kernel.selectors.inventory_selector import InventorySelector
from warehouse_kernel.selectors.sales_selector import SalesSelector

__all__ = ["BaseSelector", "InventorySelector", "SalesSelector"]
