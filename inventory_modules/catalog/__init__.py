"""
Catalog Module (``inventory_modules.catalog``).

Products: the reference data every stock location, BOM line and purchase
order line points at.
"""

from inventory_modules.catalog.models import Product
from inventory_modules.catalog.service import CatalogService

__all__ = ["CatalogService", "Product"]
