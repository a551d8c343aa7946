"""
Reconciliation of the local log against the database.

Loads the whole local log into the unlogged `happy.store` table (replacing
whatever a previous run left there), then asks PostgreSQL for the stamps
present in `happy.store` but absent from `happy.stamps`: the records the
failover lost. Any failure aborts the run; there is no partial result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from failover_probe.config import CompareConfig
from failover_probe.domain.models import Stamp
from failover_probe.infrastructure import postgres
from failover_probe.infrastructure.remote_store import (
    ConnectFactory,
    close_quietly,
    connect_with_retry,
    with_timeout,
)
from failover_probe.store.local_log import LocalLog
from failover_probe.utils.logging import get_logger
from failover_probe.utils.timing import timed_block

log = get_logger(__name__)


@dataclass
class ReconcileResult:
    """
    Outcome of one reconciliation.

    Attributes
    ----------
    missing : list[Stamp]
        Stamps of the local log the database does not hold, in the order
        PostgreSQL returned them.
    loaded : int | None
        Rows copied from the local log, None when the load was skipped.
    """

    missing: List[Stamp] = field(default_factory=list)
    loaded: Optional[int] = None

    @property
    def count(self) -> int:
        return len(self.missing)

    @property
    def missing_ids(self) -> List[int]:
        return [stamp.id for stamp in self.missing]


class Reconciler:
    """
    One-shot comparison of the local log with the ground-truth table.
    """

    def __init__(
        self,
        config: CompareConfig,
        connect: ConnectFactory = postgres.connect,
        retry_wait_seconds: float = 1.0,
    ) -> None:
        self.config = config
        self._connect = connect
        self._retry_wait_seconds = retry_wait_seconds

    async def run(self) -> ReconcileResult:
        """
        Load the local log (unless `no_load`) and compute the missing stamps.

        Raises
        ------
        LocalLogError
            If the local log cannot be opened or read.
        LogDecodeError
            If a complete entry of the local log is malformed.
        RemoteStoreError
            If connecting, loading or querying fails.
        """
        config = self.config
        with LocalLog.open(config.store_path, reset=False, fsync=False) as local_log:
            store = await connect_with_retry(
                self._connect,
                config.dsn,
                timeout=config.timeout,
                attempts=config.connect_attempts,
                wait_seconds=self._retry_wait_seconds,
            )
            try:
                result = ReconcileResult()
                if not config.no_load:
                    log.info("Copying store to database", extra={"path": str(config.store_path)})
                    with timed_block("copy-store") as stats:
                        result.loaded = await with_timeout(
                            store.copy_stamps(local_log), config.timeout, "copy"
                        )
                    log.info(
                        f"copied {result.loaded} rows",
                        extra={
                            "rows": result.loaded,
                            "duration_seconds": round(stats.duration_seconds, 3),
                            "rows_per_sec": round(stats.rate(result.loaded), 1),
                            "rss_bytes": stats.rss_bytes,
                        },
                    )
                else:
                    log.info("Skipping load, comparing with the existing store table")

                result.missing = await with_timeout(
                    store.missing_stamps(), config.timeout, "compare"
                )
            finally:
                await close_quietly(store, config.timeout)

        log.info(f"differences: {result.count}", extra={"missing": result.count})
        return result


async def run_compare(
    config: CompareConfig,
    connect: ConnectFactory = postgres.connect,
) -> ReconcileResult:
    return await Reconciler(config, connect=connect).run()


__all__ = ["ReconcileResult", "Reconciler", "run_compare"]
