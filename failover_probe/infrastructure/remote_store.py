"""
Remote store contract for failover-probe.

The generator loop and the reconciler only depend on the `RemoteStore`
protocol below; `PostgresStore` is the production implementation. Methods
are coroutines without their own deadlines: callers bound them, either with
`with_timeout` (one-shot commands) or with the generator loop's guard, which
also races them against the stop signal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Protocol, TypeVar, runtime_checkable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from failover_probe.domain.models import Record, Stamp
from failover_probe.errors import RemoteStoreError, RemoteTimeoutError
from failover_probe.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@runtime_checkable
class RemoteStore(Protocol):
    """
    Capabilities the probe needs from the database under test.

    Ground truth lives in `happy.stamps`; `happy.store` is the unlogged
    comparison table filled from the local log during reconciliation.
    """

    @property
    def is_usable(self) -> bool:
        """False once the connection is closed, broken or left mid-transaction."""
        ...

    async def close(self) -> None:
        ...

    async def create_schema(self) -> None:
        ...

    async def truncate_tables(self) -> None:
        ...

    async def next_id(self) -> int:
        """Return ``max(id) + 1`` over the ground-truth table, 1 when empty."""
        ...

    async def insert_record(self, record: Record) -> None:
        """Insert one record in its own transaction."""
        ...

    async def copy_stamps(self, stamps: Iterable[Stamp]) -> int:
        """Replace the comparison table with `stamps`; return the row count."""
        ...

    async def missing_stamps(self) -> List[Stamp]:
        """Stamps of the comparison table absent from the ground-truth table."""
        ...


ConnectFactory = Callable[[str], Awaitable[RemoteStore]]


async def with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await `awaitable`, converting an expired deadline into `RemoteTimeoutError`.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise RemoteTimeoutError(f"{operation} timed out after {timeout:g}s") from exc


async def connect_with_retry(
    connect: ConnectFactory,
    dsn: str,
    timeout: float,
    attempts: int = 3,
    wait_seconds: float = 1.0,
) -> RemoteStore:
    """
    Open a connection for a one-shot command, retrying transient failures.

    Retries up to `attempts` times with a fixed wait between attempts.

    Raises
    ------
    RemoteStoreError
        If every attempt failed; the last failure is re-raised.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(wait_seconds),
        retry=retry_if_exception_type(RemoteStoreError),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            log.info("Connecting to PostgreSQL", extra={"attempt": attempt.retry_state.attempt_number})
            return await with_timeout(connect(dsn), timeout, "connect")
    raise RemoteStoreError("could not connect")  # pragma: no cover - reraise=True


async def close_quietly(store: RemoteStore, timeout: float) -> None:
    """
    Close `store` within `timeout`, logging rather than raising on failure.
    """
    try:
        await with_timeout(store.close(), timeout, "close")
    except RemoteStoreError as exc:
        log.warning("Could not close connection cleanly", extra={"error": str(exc)})


__all__ = [
    "ConnectFactory",
    "RemoteStore",
    "close_quietly",
    "connect_with_retry",
    "with_timeout",
]
