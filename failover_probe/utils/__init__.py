"""
Utilities package for failover-probe.

Exports shared helpers for logging and timing. Keep this package lightweight
and free of domain-specific logic.
"""

from failover_probe.utils.logging import configure_logging, get_logger
from failover_probe.utils.timing import TimingStats, timed_block

__all__ = [
    "configure_logging",
    "get_logger",
    "TimingStats",
    "timed_block",
]
