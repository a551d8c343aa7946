"""
Error taxonomy for failover-probe.

Only `LocalLogError` (and its subclass `LogDecodeError`) is fatal to the
generate loop: the local log is the ground truth and cannot be retried
around. Everything raised by the remote side is a `RemoteStoreError` and is
logged and retried by the loop. `LoopCancelled` marks an intentional stop.
"""

from __future__ import annotations


class FailoverProbeError(Exception):
    """Base class for all errors raised by failover-probe."""


class LocalLogError(FailoverProbeError):
    """The local log could not be opened, written or read."""


class LogDecodeError(LocalLogError):
    """
    A complete entry of the local log could not be decoded.

    Attributes
    ----------
    count : int
        Number of entries successfully read before the malformed one.
    """

    def __init__(self, message: str, count: int) -> None:
        super().__init__(f"{message} ({count} records read)")
        self.count = count


class RemoteStoreError(FailoverProbeError):
    """A remote database operation failed."""


class RemoteTimeoutError(RemoteStoreError):
    """A remote database operation did not complete within its timeout."""


class LoopCancelled(FailoverProbeError):
    """The stop signal was raised while a remote operation was in flight."""


__all__ = [
    "FailoverProbeError",
    "LocalLogError",
    "LogDecodeError",
    "RemoteStoreError",
    "RemoteTimeoutError",
    "LoopCancelled",
]
