"""
Stock Configuration Schema.

Defaults for the stock ledger.  Values are loaded from the YAML
configuration at runtime (see ``inventory_config.loader``).
"""

from dataclasses import dataclass
from typing import Self

from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.stock.config")


@dataclass
class StockConfig:
    """
    Configuration schema for the stock ledger.

        config = StockConfig(movement_lookback_days=60)
    """

    # Products with movements inside this window cannot be deleted
    movement_lookback_days: int = 30

    # Negative-stock policy when a warehouse's settings omit the flag
    default_allow_negative_stock: bool = False

    # Maintain a moving average cost on incoming stock with a unit cost
    track_average_cost: bool = True

    def __post_init__(self):
        if self.movement_lookback_days < 0:
            raise ValueError(
                f"movement_lookback_days must be >= 0, got {self.movement_lookback_days}"
            )
        logger.info(
            "stock_config_initialized",
            extra={
                "movement_lookback_days": self.movement_lookback_days,
                "default_allow_negative_stock": self.default_allow_negative_stock,
                "track_average_cost": self.track_average_cost,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info("stock_config_loading_from_dict", extra={"keys": sorted(data.keys())})
        return cls(**data)
