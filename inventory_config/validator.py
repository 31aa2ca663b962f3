"""
Configuration Validator (``inventory_config.validator``).

Checks value ranges of a parsed ``InventoryConfig`` before it is handed to
the kernel.  Errors are collected, not raised one at a time, so a bad file
reports everything wrong with it at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from inventory_config.schema import InventoryConfig

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping()) - {"NOTSET"}


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_configuration(config: InventoryConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()
    errors = result.errors

    if not config.database.url:
        errors.append("database.url must not be empty")
    if config.database.pool_size < 1:
        errors.append("database.pool_size must be >= 1")
    if config.database.max_overflow < 0:
        errors.append("database.max_overflow must be >= 0")

    if config.allocation.max_retries < 0:
        errors.append("allocation.max_retries must be >= 0")
    if config.allocation.retry_backoff_seconds < 0:
        errors.append("allocation.retry_backoff_seconds must be >= 0")

    if config.alerts.expiry_warning_days < 0:
        errors.append("alerts.expiry_warning_days must be >= 0")
    if not (Decimal("0") <= config.alerts.critical_ratio <= Decimal("1")):
        errors.append("alerts.critical_ratio must be between 0 and 1")

    if config.logging.level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.level '{config.logging.level}' is not a logging level")

    return result
