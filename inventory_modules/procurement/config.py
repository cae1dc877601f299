"""
Procurement Configuration Schema.

Defaults for purchase order numbering, incoming-quantity tracking and
bulk receipt.
"""

from dataclasses import dataclass
from typing import Self

from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass
class ProcurementConfig:
    """
    Configuration schema for the purchase order workflow.

        config = ProcurementConfig(receive_full_max_workers=4)
    """

    # Order numbers look like <prefix>-YYYYMMDD-XXXXXXXX
    po_number_prefix: str = "PO"

    # Keep quantity_ordered on stock locations in step with open orders
    track_incoming_quantities: bool = True

    # 1 receives lines sequentially; more uses a thread pool
    receive_full_max_workers: int = 1

    def __post_init__(self):
        if not self.po_number_prefix:
            raise ValueError("po_number_prefix must not be empty")
        if self.receive_full_max_workers < 1:
            raise ValueError(
                f"receive_full_max_workers must be >= 1, got {self.receive_full_max_workers}"
            )
        logger.info(
            "procurement_config_initialized",
            extra={
                "po_number_prefix": self.po_number_prefix,
                "track_incoming_quantities": self.track_incoming_quantities,
                "receive_full_max_workers": self.receive_full_max_workers,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info("procurement_config_loading_from_dict", extra={"keys": sorted(data.keys())})
        return cls(**data)
