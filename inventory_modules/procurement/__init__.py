"""
Procurement Module (``inventory_modules.procurement``).

Purchase orders, their lifecycle workflow and goods receipt into stock.
"""

from inventory_modules.procurement.config import ProcurementConfig
from inventory_modules.procurement.models import (
    POStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderLineInput,
)
from inventory_modules.procurement.service import PurchaseOrderWorkflow
from inventory_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = [
    "PURCHASE_ORDER_WORKFLOW",
    "POStatus",
    "ProcurementConfig",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderLineInput",
    "PurchaseOrderWorkflow",
]
