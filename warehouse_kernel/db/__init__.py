"""Database layer - engine and base classes."""

from warehouse_kernel.db.base import UUID, Base, UUIDString
from warehouse_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
]
