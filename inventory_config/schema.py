"""
Configuration schema (``inventory_config.schema``).

Frozen dataclasses for the runtime inventory configuration.  One YAML
document maps onto one ``InventoryConfig``; each top-level key maps onto
one section dataclass.

    InventoryConfig
    +-- database:   DatabaseConfig
    +-- allocation: AllocationConfig
    +-- alerts:     AlertConfig
    +-- logging:    LoggingConfig

Defaults here are the values used when a key is absent from the YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine settings passed to ``create_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class AllocationConfig:
    """Retry budget for the orchestrator and FEFO candidate filtering."""

    max_retries: int = 3
    retry_backoff_seconds: float = 0.05
    exclude_expired: bool = False


@dataclass(frozen=True)
class AlertConfig:
    """Thresholds for the low-stock and expiring-lot queries."""

    expiry_warning_days: int = 30
    critical_ratio: Decimal = Decimal("0.5")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class InventoryConfig:
    """The single runtime configuration artifact."""

    config_id: str = "default"
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
