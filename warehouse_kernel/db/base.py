"""
Declarative base shared by every warehouse table.

Each model gets a uuid4 primary key stored as ``String(36)`` so the same
schema runs on PostgreSQL and SQLite.  Quantities are ``BigInteger``, euro
costs are ``Numeric(38, 9)`` (never float) and timestamps are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID bound as its canonical string and loaded back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


__all__ = ["Base", "UUID", "UUIDString"]
