"""Database layer - engine, base classes, types, and immutability listeners."""

from pharmacy_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from pharmacy_kernel.db.engine import (
    create_engine_from_config,
    create_session_factory,
    create_tables,
    drop_tables,
)
from pharmacy_kernel.db.types import LongText, Money, Percentage, Quantity, ShortCode

__all__ = [
    "create_engine_from_config",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Percentage",
    "Quantity",
    "ShortCode",
    "LongText",
]
