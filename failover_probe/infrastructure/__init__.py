"""
Infrastructure package for failover-probe.

Centralizes database connectivity concerns: the remote store contract and
its PostgreSQL implementation. Keep this layer focused on I/O and resource
management, decoupled from the generator loop and reconciler logic.
"""

from failover_probe.infrastructure.postgres import PostgresStore, connect
from failover_probe.infrastructure.remote_store import (
    ConnectFactory,
    RemoteStore,
    close_quietly,
    connect_with_retry,
    with_timeout,
)

__all__ = [
    "ConnectFactory",
    "PostgresStore",
    "RemoteStore",
    "close_quietly",
    "connect",
    "connect_with_retry",
    "with_timeout",
]
