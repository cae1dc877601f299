"""
Manufacturing Configuration Schema.

Bounds applied when BOMs are created or edited, and production order
numbering.
"""

from dataclasses import dataclass
from typing import Self

from inventory_kernel.domain.values import PERCENT_SCALE, ScaledDecimal
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.manufacturing.config")


@dataclass
class ManufacturingConfig:
    """Configuration schema for BOM validation and production orders."""

    # Upper bound of a line's waste factor, in percent
    max_waste_factor: ScaledDecimal = ScaledDecimal(10000, PERCENT_SCALE)

    # A BOM may not list the product it produces as a component
    reject_self_referencing_components: bool = True

    # Production orders are numbered <prefix>-YYYYMMDD-XXXXXXXX
    production_number_prefix: str = "PROD"

    def __post_init__(self):
        self.max_waste_factor = ScaledDecimal.of(self.max_waste_factor, PERCENT_SCALE)
        if self.max_waste_factor.is_negative:
            raise ValueError(f"max_waste_factor must be >= 0, got {self.max_waste_factor}")
        if not self.production_number_prefix:
            raise ValueError("production_number_prefix cannot be empty")
        logger.info(
            "manufacturing_config_initialized",
            extra={
                "max_waste_factor": str(self.max_waste_factor),
                "reject_self_referencing_components": self.reject_self_referencing_components,
                "production_number_prefix": self.production_number_prefix,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        data = dict(data)
        if "max_waste_factor" in data:
            data["max_waste_factor"] = ScaledDecimal.of(str(data["max_waste_factor"]), PERCENT_SCALE)
        return cls(**data)
