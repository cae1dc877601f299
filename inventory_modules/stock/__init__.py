"""
Stock area: warehouses, per-warehouse stock locations, movement history
and the ``StockLedger`` that mutates them.
"""

from inventory_modules.stock.config import StockConfig
from inventory_modules.stock.models import (
    MovementReason,
    SourceReference,
    StockDeltaResult,
    StockLocation,
    StockMovement,
    Warehouse,
)
from inventory_modules.stock.service import StockLedger

__all__ = [
    "MovementReason",
    "SourceReference",
    "StockConfig",
    "StockDeltaResult",
    "StockLedger",
    "StockLocation",
    "StockMovement",
    "Warehouse",
]
