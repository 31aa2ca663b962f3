"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``inventory_kernel``.  The kernel MUST
    NEVER import from ``inventory_config``; ``inventory_config.bridges``
    turns a config into kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``inventory_config_loaded`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from inventory_config.loader import load_config_file
from inventory_config.schema import InventoryConfig
from inventory_config.validator import validate_configuration

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "INVENTORY_CONFIG_PATH"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path`` argument, then the
    ``INVENTORY_CONFIG_PATH`` environment variable, then
    ``inventory_config/sets/default.yaml``.  ``DATABASE_URL`` overrides
    ``database.url`` when set.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If parsing or validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_config_file(path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    _logger.info(
        "inventory_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "database_dialect": config.database.url.split(":", 1)[0],
        },
    )
    return config


__all__ = ["InventoryConfig", "get_active_config"]
