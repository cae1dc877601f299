"""
Catalog Domain Models.

Products are reference data for the inventory core: stock, BOM lines and
purchase order lines point at them by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, ScaledDecimal
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.catalog.models")


@dataclass(frozen=True)
class Product:
    """A stockable product."""
    id: UUID
    sku: str
    name: str
    unit: str = "pcs"
    cost_price: ScaledDecimal | None = None
    is_active: bool = True
    state: RecordState = field(default_factory=RecordState.active)
    version: int = 0

    def __post_init__(self):
        if not self.sku or not self.sku.strip():
            raise ValueError("Product sku is required")
        if not self.name or not self.name.strip():
            raise ValueError("Product name is required")
        if self.cost_price is not None:
            cost = ScaledDecimal.of(self.cost_price, MONEY_SCALE)
            if cost.is_negative:
                logger.warning(
                    "product_negative_cost_price",
                    extra={"product_id": str(self.id), "cost_price": str(cost)},
                )
                raise ValueError(f"cost_price cannot be negative: {cost}")
            object.__setattr__(self, "cost_price", cost)

    @property
    def is_deleted(self) -> bool:
        return self.state.is_deleted

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "cost_price": str(self.cost_price) if self.cost_price is not None else None,
            "is_active": self.is_active,
            "deleted_at": (
                self.state.deleted_at.isoformat() if self.state.deleted_at else None
            ),
        }
