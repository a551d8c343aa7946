"""
Creation of the `happy` schema used by the probe.
"""

from __future__ import annotations

from failover_probe.config import InitConfig
from failover_probe.infrastructure import postgres
from failover_probe.infrastructure.remote_store import (
    ConnectFactory,
    close_quietly,
    connect_with_retry,
    with_timeout,
)
from failover_probe.utils.logging import get_logger

log = get_logger(__name__)


async def init_schema(config: InitConfig, connect: ConnectFactory = postgres.connect) -> None:
    """
    Create `happy.stamps` and the unlogged `happy.store` if they do not exist.

    Raises
    ------
    RemoteStoreError
        If the database cannot be reached or the DDL fails.
    """
    store = await connect_with_retry(connect, config.dsn, timeout=config.timeout, attempts=1)
    try:
        await with_timeout(store.create_schema(), config.timeout, "create schema")
    finally:
        await close_quietly(store, config.timeout)
    log.info("Database schema initialized successfully")


__all__ = ["init_schema"]
