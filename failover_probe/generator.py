"""
Resilient generate-and-send loop.

Every cycle stamps the next id, appends it to the local log, then tries to
insert the same record into PostgreSQL. Only a local log failure stops the
loop; remote failures are logged and retried after the pacing interval,
forever, so the probe can run unattended through a failover. The id is
advanced whether or not the insert succeeded: a hole in `happy.stamps` is
exactly what reconciliation reports later.

The loop moves through explicit stages:

    DISCONNECTED -> CONNECTING -> CONNECTED -> ID_RESOLVED -> WRITING
                                                  ^              |
                                                  +--------------+

and falls back to DISCONNECTED whenever the connection is found unusable
after a remote operation. The next id is resolved only once per run.

Usage:
    config = LoadConfig(dsn="postgresql://...", store_path="/tmp/probe.data")
    summary = asyncio.run(run_load(config))
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from failover_probe.config import LoadConfig
from failover_probe.domain.models import Record, generate_payload
from failover_probe.errors import LoopCancelled, RemoteStoreError, RemoteTimeoutError
from failover_probe.infrastructure import postgres
from failover_probe.infrastructure.remote_store import ConnectFactory, RemoteStore, close_quietly
from failover_probe.store.local_log import LocalLog
from failover_probe.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class Stage(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ID_RESOLVED = "id_resolved"
    WRITING = "writing"


@dataclass
class LoopSummary:
    """Counters reported when the loop stops."""

    generated: int = 0
    inserted: int = 0
    failed: int = 0
    last_id: int = 0


def _now() -> datetime:
    return datetime.now().astimezone()


class GeneratorLoop:
    """
    The generate loop of one `load` run.

    Parameters
    ----------
    config : LoadConfig
        Immutable options of the run.
    local_log : LocalLog
        Open log the loop appends to; owned by the loop while it runs.
    connect : ConnectFactory
        Coroutine function opening a `RemoteStore` for a DSN.
    stop : asyncio.Event, optional
        Stop signal, polled at the top of every cycle and raced against
        in-flight remote operations.
    clock : callable, optional
        Returns the timezone-aware timestamp of a new record.
    payload : str, optional
        Payload for every record of the run; random printable ASCII of
        `config.payload_size` characters when omitted.
    """

    def __init__(
        self,
        config: LoadConfig,
        local_log: LocalLog,
        connect: ConnectFactory = postgres.connect,
        stop: Optional[asyncio.Event] = None,
        clock: Callable[[], datetime] = _now,
        payload: Optional[str] = None,
    ) -> None:
        self.config = config
        self.stop = stop or asyncio.Event()
        self.stage = Stage.DISCONNECTED
        self.current_id = 0
        self.summary = LoopSummary()
        self._local_log = local_log
        self._connect = connect
        self._clock = clock
        self._store: Optional[RemoteStore] = None
        if payload is None:
            log.info("Generating random payload", extra={"size": config.payload_size})
            payload = generate_payload(config.payload_size)
        self._payload = payload

    @property
    def connected(self) -> bool:
        return self._store is not None and self.stage not in (
            Stage.DISCONNECTED,
            Stage.CONNECTING,
        )

    async def run(self) -> LoopSummary:
        """
        Run cycles until the stop signal is raised.

        Raises
        ------
        LocalLogError
            If a record cannot be appended to the local log.
        """
        try:
            while True:
                if self.stop.is_set():
                    log.info("Stop requested, exiting")
                    break
                try:
                    await self.step()
                except LoopCancelled as exc:
                    log.info("Stop requested, exiting", extra={"interrupted": str(exc)})
                    break
                await self._pace()
        finally:
            await self._disconnect()

        log.info(
            "Generate loop stopped",
            extra={
                "generated": self.summary.generated,
                "inserted": self.summary.inserted,
                "failed": self.summary.failed,
                "last_id": self.summary.last_id,
            },
        )
        return self.summary

    async def step(self) -> None:
        """Run one cycle, resuming from the current stage."""
        if self.stage in (Stage.DISCONNECTED, Stage.CONNECTING):
            if not await self._connect_stage():
                return
        if self.stage is Stage.CONNECTED:
            if not await self._resolve_stage():
                return
        await self._write_stage()

    async def _connect_stage(self) -> bool:
        self.stage = Stage.CONNECTING
        log.info("Connecting to PostgreSQL")
        try:
            self._store = await self._guard(self._connect(self.config.dsn), "connect")
        except RemoteStoreError as exc:
            log.warning(f"could not connect: {exc}", extra={"error": str(exc)})
            self.stage = Stage.DISCONNECTED
            return False

        self.stage = Stage.CONNECTED if self.current_id == 0 else Stage.ID_RESOLVED
        return True

    async def _resolve_stage(self) -> bool:
        # Resolving once per run keeps ids unique across restarts of the probe.
        store = self._require_store()
        if self.config.truncate:
            log.info("Truncating tables")
            try:
                await self._guard(store.truncate_tables(), "truncate")
            except RemoteStoreError as exc:
                log.warning(f"could not truncate tables: {exc}", extra={"error": str(exc)})
            next_id = 1
        else:
            log.info("Getting next id")
            try:
                next_id = await self._guard(store.next_id(), "next id")
            except RemoteStoreError as exc:
                log.warning(f"could not get next id: {exc}", extra={"error": str(exc)})
                await self._check_connection(Stage.CONNECTED)
                return False

        self.current_id = next_id
        log.info(f"next id is: {next_id}", extra={"id": next_id})
        return await self._check_connection(Stage.ID_RESOLVED)

    async def _write_stage(self) -> None:
        store = self._require_store()
        self.stage = Stage.WRITING
        record = Record(id=self.current_id, ts=self._clock(), payload=self._payload)

        # Local durability comes first; a failure here ends the run.
        self._local_log.append(record)
        self.summary.generated += 1
        self.summary.last_id = record.id

        log.info(f"insert data: id={record.id}", extra={"id": record.id})
        try:
            await self._guard(store.insert_record(record), "insert")
            self.summary.inserted += 1
        except RemoteStoreError as exc:
            self.summary.failed += 1
            log.warning(
                f"could not insert ({record.id}, {record.ts.isoformat()}): {exc}",
                extra={"id": record.id, "error": str(exc)},
            )
        except LoopCancelled:
            self.summary.failed += 1
            raise
        finally:
            self.current_id += 1
            await self._check_connection(Stage.ID_RESOLVED)

    def _require_store(self) -> RemoteStore:
        if self._store is None:
            raise RuntimeError(f"no remote connection in stage {self.stage.value}")
        return self._store

    async def _check_connection(self, stage_if_usable: Stage) -> bool:
        if self._store is not None and self._store.is_usable:
            self.stage = stage_if_usable
            return True
        log.warning("Connection is no longer usable, reconnecting on next cycle")
        await self._disconnect()
        return False

    async def _disconnect(self) -> None:
        store, self._store = self._store, None
        self.stage = Stage.DISCONNECTED
        if store is not None:
            await close_quietly(store, self.config.timeout)

    async def _guard(self, awaitable: Awaitable[T], operation: str) -> T:
        """
        Await a remote operation under the per-operation timeout and the stop signal.

        Raises
        ------
        LoopCancelled
            If the stop signal was raised first.
        RemoteTimeoutError
            If the timeout expired first.
        """
        task = asyncio.ensure_future(awaitable)
        stop_waiter = asyncio.ensure_future(self.stop.wait())
        try:
            done, _ = await asyncio.wait(
                {task, stop_waiter},
                timeout=self.config.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop_waiter.cancel()

        if task in done:
            return task.result()

        await self._abandon(task)
        if stop_waiter in done:
            raise LoopCancelled(f"{operation} interrupted by stop signal")
        raise RemoteTimeoutError(f"{operation} timed out after {self.config.timeout:g}s")

    async def _abandon(self, task: asyncio.Future) -> None:
        task.cancel()
        await asyncio.wait({task}, timeout=self.config.timeout)
        if not task.done() or task.cancelled():
            return
        if task.exception() is not None:
            log.debug("Abandoned operation failed", extra={"error": str(task.exception())})
            return
        # A connect that completed anyway must not leak its connection.
        result = task.result()
        if isinstance(result, RemoteStore):
            await close_quietly(result, self.config.timeout)

    async def _pace(self) -> None:
        if self.config.pause <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self.stop.wait(), self.config.pause)
        except asyncio.TimeoutError:
            pass


def install_stop_handlers(stop: asyncio.Event) -> Callable[[], None]:
    """
    Set `stop` on SIGINT or SIGTERM; return a callable removing the handlers.
    """
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)

    def _on_signal(signum: int) -> None:
        log.info(f"received signal {signal.Signals(signum).name}, exiting")
        stop.set()

    for signum in signals:
        loop.add_signal_handler(signum, _on_signal, signum)

    def _remove() -> None:
        for signum in signals:
            loop.remove_signal_handler(signum)

    return _remove


async def run_load(
    config: LoadConfig,
    connect: ConnectFactory = postgres.connect,
    stop: Optional[asyncio.Event] = None,
) -> LoopSummary:
    """
    Open the local log and run the generate loop until SIGINT/SIGTERM.

    The local log is truncated first when `config.truncate` is set.
    """
    stop = stop or asyncio.Event()
    with LocalLog.open(config.store_path, reset=config.truncate, fsync=config.fsync) as local_log:
        remove_handlers = install_stop_handlers(stop)
        try:
            generator = GeneratorLoop(config, local_log, connect=connect, stop=stop)
            return await generator.run()
        finally:
            remove_handlers()


__all__ = [
    "GeneratorLoop",
    "LoopSummary",
    "Stage",
    "install_stop_handlers",
    "run_load",
]
