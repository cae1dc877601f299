"""
Module: inventory_engines
Responsibility:
    Pure calculation engines for the inventory core.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ``inventory_kernel`` values, exceptions and logging.
    MUST NOT import ``inventory_modules`` or ``inventory_services``.

Invariants enforced:
    - Purity: engines never read the clock or touch storage.
    - ScaledDecimal-only arithmetic with explicit output scales.
    - Determinism: identical inputs always produce identical outputs.
"""

from inventory_engines.bom_explosion import (
    BomCostSummary,
    BomExplosion,
    BomExplosionEngine,
    ComponentRequirement,
)
from inventory_engines.stock_valuation import (
    StockValuation,
    WarehouseStockValue,
    value_stock,
    weighted_average_cost,
)

__all__ = [
    "BomCostSummary",
    "BomExplosion",
    "BomExplosionEngine",
    "ComponentRequirement",
    "StockValuation",
    "WarehouseStockValue",
    "value_stock",
    "weighted_average_cost",
]
