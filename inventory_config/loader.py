"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into a typed
``InventoryConfig``.  Area sections (``stock``, ``procurement``,
``manufacturing``) go through each area's ``from_dict``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError``, ``TypeError`` or ``KeyError``; an
  unknown key in an area section is a ``TypeError`` from the dataclass.
* ``INVENTORY_DATABASE_URL`` in the environment overrides the file's
  database url.
* ``compute_checksum`` is a deterministic SHA-256 over the raw parsed
  document, so the same file always has the same identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import DatabaseSettings, InventoryConfig, LoggingSettings
from inventory_kernel.logging_config import get_logger
from inventory_modules.manufacturing.config import ManufacturingConfig
from inventory_modules.procurement.config import ProcurementConfig
from inventory_modules.stock.config import StockConfig

logger = get_logger("config.loader")

DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = os.environ.get(DATABASE_URL_ENV) or data.get("url", DatabaseSettings.url)
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 10)),
        max_overflow=int(data.get("max_overflow", 5)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    return LoggingSettings(level=str(data.get("level", "INFO")).upper())


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """Build an ``InventoryConfig`` from a parsed document."""
    return InventoryConfig(
        name=str(data.get("name", "default")),
        database=parse_database(data.get("database") or {}),
        logging=parse_logging(data.get("logging") or {}),
        stock=StockConfig.from_dict(data.get("stock") or {}),
        procurement=ProcurementConfig.from_dict(data.get("procurement") or {}),
        manufacturing=ManufacturingConfig.from_dict(data.get("manufacturing") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path | str | None = None) -> InventoryConfig:
    """Load the configuration set at ``path`` (the bundled default if omitted)."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(config_path)
    config = parse_config(data)
    logger.info(
        "inventory_config_loaded",
        extra={
            "config_name": config.name,
            "path": str(config_path),
            "checksum": config.checksum,
            "database_dialect": config.database.url.split(":", 1)[0],
        },
    )
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
