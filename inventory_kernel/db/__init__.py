"""Database layer - engine, base classes, column types, in-memory store."""

from inventory_kernel.db.base import Base, ScaledDecimalType, TrackedBase, UTCDateTime, UUIDString
from inventory_kernel.db.engine import build_engine, create_tables, drop_tables
from inventory_kernel.db.memory import InMemoryStore, InMemoryTransaction

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "ScaledDecimalType",
    "UTCDateTime",
    "build_engine",
    "create_tables",
    "drop_tables",
    "InMemoryStore",
    "InMemoryTransaction",
]
