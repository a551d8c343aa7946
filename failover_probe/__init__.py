"""
failover-probe - detect data lost by a PostgreSQL failover.

The probe writes a monotonic stream of stamps to a durable local log and
mirrors each one into PostgreSQL, tolerating connection loss along the way.
Reconciliation later reports every stamp the local log holds that the
database does not:

- `failover_probe.store` - the local log (append + replay)
- `failover_probe.generator` - the resilient generate-and-send loop
- `failover_probe.reconciler` - the set-difference computed by PostgreSQL
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from failover_probe.config import (
    CompareConfig,
    InitConfig,
    LoadConfig,
    Settings,
    get_settings,
    parse_duration,
)
from failover_probe.domain.models import Record, Stamp, generate_payload
from failover_probe.errors import (
    FailoverProbeError,
    LocalLogError,
    LogDecodeError,
    LoopCancelled,
    RemoteStoreError,
    RemoteTimeoutError,
)
from failover_probe.generator import GeneratorLoop, LoopSummary, Stage, run_load
from failover_probe.infrastructure.remote_store import RemoteStore
from failover_probe.reconciler import ReconcileResult, Reconciler, run_compare
from failover_probe.store.local_log import LocalLog
from failover_probe.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "CompareConfig",
    "InitConfig",
    "LoadConfig",
    "Settings",
    "get_settings",
    "parse_duration",
    # Domain
    "Record",
    "Stamp",
    "generate_payload",
    # Errors
    "FailoverProbeError",
    "LocalLogError",
    "LogDecodeError",
    "LoopCancelled",
    "RemoteStoreError",
    "RemoteTimeoutError",
    # Engine
    "GeneratorLoop",
    "LocalLog",
    "LoopSummary",
    "ReconcileResult",
    "Reconciler",
    "RemoteStore",
    "Stage",
    "run_compare",
    "run_load",
    # Logging
    "configure_logging",
    "get_logger",
]
