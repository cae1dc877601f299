"""
Module ORM Registry (``inventory_modules._orm_registry``).

Imports every module ORM model so that ``Base.metadata`` holds all table
definitions before ``create_tables()`` runs.  Kernel models come first;
module tables reference them and each other by foreign key.
"""


def import_all_orm_models() -> None:
    """Register kernel and module ORM models.  Idempotent."""
    import inventory_kernel.models  # noqa: F401
    # fmt: off
    import inventory_modules.catalog.orm  # noqa: F401
    import inventory_modules.stock.orm  # noqa: F401
    import inventory_modules.manufacturing.orm  # noqa: F401
    import inventory_modules.procurement.orm  # noqa: F401
    # fmt: on
