"""
Local persistence for failover-probe.

The local log is the ground truth the database is compared against.
"""

from failover_probe.store.local_log import LocalLog

__all__ = ["LocalLog"]
