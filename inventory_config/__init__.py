"""
inventory_config -- YAML configuration for the inventory core.

``load_config()`` reads a configuration set (the bundled
``sets/default.yaml`` unless a path is given) into an ``InventoryConfig``.
The kernel never imports from this package; services receive the
per-area config objects through their constructors.
"""

from inventory_config.loader import compute_checksum, load_config
from inventory_config.schema import DatabaseSettings, InventoryConfig, LoggingSettings

__all__ = [
    "DatabaseSettings",
    "InventoryConfig",
    "LoggingSettings",
    "compute_checksum",
    "load_config",
]
