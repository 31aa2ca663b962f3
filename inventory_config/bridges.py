"""
Config -> Kernel Bridges.

Functions that turn an ``InventoryConfig`` into kernel objects.  They live
in inventory_config (the producer) because the kernel must NEVER import
inventory_config.

Usage:
    from inventory_config import get_active_config
    from inventory_config.bridges import build_orchestrator

    orchestrator = build_orchestrator(get_active_config())
"""

from __future__ import annotations

from sqlalchemy import Engine

from inventory_config.schema import InventoryConfig
from inventory_kernel.db.engine import create_all, create_engine_from_url, make_session_factory
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import configure_logging
from inventory_kernel.services.inventory_orchestrator import InventoryOrchestrator


def build_engine(config: InventoryConfig) -> Engine:
    db = config.database
    return create_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def build_orchestrator(
    config: InventoryConfig,
    engine: Engine | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> InventoryOrchestrator:
    """
    Wire logging, persistence and the orchestrator from one config.

    ``engine`` defaults to one built from ``config.database``.  With
    ``create_schema`` the kernel tables (and PostgreSQL triggers) are
    created if missing.
    """
    configure_logging(level=config.logging.level.upper())
    register_immutability_listeners()

    engine = engine or build_engine(config)
    if create_schema:
        create_all(engine)

    return InventoryOrchestrator(
        make_session_factory(engine),
        clock=clock,
        max_retries=config.allocation.max_retries,
        retry_backoff_seconds=config.allocation.retry_backoff_seconds,
        expiry_warning_days=config.alerts.expiry_warning_days,
        critical_ratio=config.alerts.critical_ratio,
        exclude_expired=config.allocation.exclude_expired,
    )
