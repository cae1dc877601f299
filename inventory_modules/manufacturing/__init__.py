"""
Manufacturing Module (``inventory_modules.manufacturing``).

Bills of materials with the ``BomService`` that edits and explodes them,
and production orders run by the ``ProductionOrderService``.
"""

from inventory_modules.manufacturing.config import ManufacturingConfig
from inventory_modules.manufacturing.models import (
    BillOfMaterials,
    BomLine,
    BomLineInput,
    ComponentReservation,
    ProductionOrder,
    ProductionStatus,
)
from inventory_modules.manufacturing.production import ProductionOrderService
from inventory_modules.manufacturing.service import BomService

__all__ = [
    "BillOfMaterials",
    "BomLine",
    "BomLineInput",
    "BomService",
    "ComponentReservation",
    "ManufacturingConfig",
    "ProductionOrder",
    "ProductionOrderService",
    "ProductionStatus",
]
