"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``inventory_config.schema`` dataclasses.  Runtime callers use
``inventory_config.get_active_config()`` instead of calling this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    AlertConfig,
    AllocationConfig,
    DatabaseConfig,
    InventoryConfig,
    LoggingConfig,
)

_SECTIONS = {
    "database": DatabaseConfig,
    "allocation": AllocationConfig,
    "alerts": AlertConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_section(name: str, raw: Any) -> Any:
    cls = _SECTIONS[name]
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"unknown keys in section '{name}': {sorted(unknown)}")

    values = dict(raw)
    if name == "alerts" and "critical_ratio" in values:
        values["critical_ratio"] = Decimal(str(values["critical_ratio"]))
    return cls(**values)


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """Build an ``InventoryConfig`` from a parsed YAML mapping."""
    allowed = set(_SECTIONS) | {"config_id", "version"}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"unknown top-level keys: {sorted(unknown)}")

    return InventoryConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        **{name: _parse_section(name, data.get(name)) for name in _SECTIONS},
    )


def load_config_file(path: Path) -> InventoryConfig:
    return parse_config(load_yaml_file(path))
