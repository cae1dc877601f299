"""
InventoryConfig schema.

The typed form of a configuration set.  YAML fragments are parsed into
these types by ``inventory_config.loader``; the per-area dataclasses come
from the modules that consume them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from inventory_modules.manufacturing.config import ManufacturingConfig
from inventory_modules.procurement.config import ProcurementConfig
from inventory_modules.stock.config import StockConfig


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``inventory_kernel.db.engine``."""

    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class InventoryConfig:
    """A loaded configuration set."""

    name: str = "default"
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    stock: StockConfig = field(default_factory=StockConfig)
    procurement: ProcurementConfig = field(default_factory=ProcurementConfig)
    manufacturing: ManufacturingConfig = field(default_factory=ManufacturingConfig)
    checksum: str = ""
