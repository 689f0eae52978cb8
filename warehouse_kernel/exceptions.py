"""
Typed exception hierarchy for the warehouse kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail one item at a time: a malformed sale row, a lot that
does not fit anywhere, a deadlock on one chunk of a backfill. Callers need to
tell those apart without parsing message strings, and batch results need a
stable machine-readable code per failed item.

Every exception here:
  1. Has a typed class (catch by type, not by message).
  2. Has a CODE class attribute (machine-readable, copied into ItemError).
  3. Carries structured data (SKU fields, quantities, lot ids).

Example:
    try:
        location = allocator.allocate(snapshot, StockClass.REGULAR, "ABC123", 500)
    except AllocationCapacityExhaustedError as e:
        errors.append(ItemError.from_exception(key, e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WarehouseKernelError (base)
    |
    +-- ValidationError                    input row rejected, item skipped
    |   +-- InvalidLocationCodeError
    |
    +-- AllocationError
    |   +-- AllocationCapacityExhaustedError
    |
    +-- SalesError
    |   +-- SaleAlreadyAppliedError        idempotency no-op, never surfaced
    |   +-- MissingSinceError
    |
    +-- LotNotFoundError
    +-- TransactionFailureError            one item rolled back, batch continues
    +-- ConfigurationError

Warning codes (recorded in results, not raised):

    STOCK_CLASS_UNRESOLVED   no class mapping, REGULAR assumed
    LOT_CAPACITY_EXCEEDED    historical import clipped a row to the balance
"""

from typing import Any

STOCK_CLASS_UNRESOLVED = "STOCK_CLASS_UNRESOLVED"
LOT_CAPACITY_EXCEEDED = "LOT_CAPACITY_EXCEEDED"
UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class WarehouseKernelError(Exception):
    """
    Base exception for all warehouse kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WAREHOUSE_KERNEL_ERROR"


# Input validation


class ValidationError(WarehouseKernelError):
    """An input row failed validation and was skipped."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class InvalidLocationCodeError(ValidationError):
    """Location string does not match <DRAWER><ROW:2>.<BATCH:2>."""

    code: str = "INVALID_LOCATION_CODE"

    def __init__(self, location: str):
        self.location = location
        super().__init__("location", location, "expected format like D03.07")


# Allocation


class AllocationError(WarehouseKernelError):
    """Base exception for location allocation errors."""

    code: str = "ALLOCATION_ERROR"


class AllocationCapacityExhaustedError(AllocationError):
    """No row allowed for the stock class can take the incoming quantity."""

    code: str = "ALLOCATION_CAPACITY_EXHAUSTED"

    def __init__(self, stock_class: str, qty: int, source_code: str):
        self.stock_class = stock_class
        self.qty = qty
        self.source_code = source_code
        super().__init__(
            f"No location capacity available for {qty} x {stock_class} "
            f"(source {source_code})"
        )


# Sales application


class SalesError(WarehouseKernelError):
    """Base exception for sale consumption errors."""

    code: str = "SALES_ERROR"


class SaleAlreadyAppliedError(SalesError):
    """Sale was already applied to inventory (idempotent no-op)."""

    code: str = "SALE_ALREADY_APPLIED"

    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Sale {sale_id} already applied to inventory")


class MissingSinceError(SalesError):
    """No `since` given, no sync cursor stored, and no explicit sale ids."""

    code: str = "MISSING_SINCE"

    def __init__(self, cursor_key: str):
        self.cursor_key = cursor_key
        super().__init__(
            f"No since timestamp given and sync cursor {cursor_key!r} is not set"
        )


# Persistence


class LotNotFoundError(WarehouseKernelError):
    """Referenced inventory lot does not exist."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Inventory lot not found: {lot_id}")


class TransactionFailureError(WarehouseKernelError):
    """A database error rolled back one item's transaction."""

    code: str = "TRANSACTION_FAILURE"

    def __init__(self, item_key: str, cause: str):
        self.item_key = item_key
        self.cause = cause
        super().__init__(f"Transaction for {item_key} rolled back: {cause}")


class ConfigurationError(WarehouseKernelError):
    """Warehouse configuration is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)
