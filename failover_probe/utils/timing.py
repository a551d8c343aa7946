"""
Timing helper used to report the cost of bulk operations.

Usage:
    with timed_block("copy-store") as stats:
        count = await store.copy_stamps(local_log)

    log.info("copied", extra={"seconds": stats.duration_seconds})
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class TimingStats:
    """
    Wall-clock duration of a block and the process RSS when it ended.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    rss_bytes: Optional[int] = field(default=None)

    def rate(self, count: int) -> float:
        """Items per second over the block, 0.0 when nothing was measured."""
        return count / self.duration_seconds if self.duration_seconds > 0 else 0.0


@contextlib.contextmanager
def timed_block(label: str) -> Generator[TimingStats, None, None]:
    """
    Measure the wall-clock duration of a block (also when it raises).
    """
    stats = TimingStats(label=label)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        try:
            stats.rss_bytes = psutil.Process().memory_info().rss
        except psutil.Error:
            stats.rss_bytes = None


__all__ = ["TimingStats", "timed_block"]
