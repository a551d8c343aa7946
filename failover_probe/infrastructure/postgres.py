"""
PostgreSQL implementation of the remote store.

Uses a single psycopg `AsyncConnection` in autocommit mode; every write runs
inside an explicit `transaction()` block, which commits on success and
attempts a rollback on any error (a failed rollback is logged by psycopg and
the original error is kept). psycopg errors are re-raised as
`RemoteStoreError` so callers handle one transient error type.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

import psycopg
from psycopg import AsyncConnection
from psycopg.pq import TransactionStatus

from failover_probe.domain.models import Record, Stamp
from failover_probe.errors import RemoteStoreError
from failover_probe.utils.logging import get_logger

log = get_logger(__name__)

SCHEMA_STATEMENTS = (
    "create schema if not exists happy",
    "create table if not exists happy.stamps ("
    " id int primary key, ts timestamptz not null, payload text )",
    "create unlogged table if not exists happy.store ("
    " id int primary key, ts timestamptz not null )",
)
TRUNCATE_STATEMENTS = (
    "truncate happy.stamps",
    "truncate happy.store",
)
NEXT_ID_SQL = "select coalesce(max(id) + 1, 1) from happy.stamps"
INSERT_SQL = "insert into happy.stamps (id, ts, payload) values (%s, %s, %s)"
COPY_SQL = "copy happy.store (id, ts) from stdin"
COMPARE_SQL = (
    "select r.id, r.ts from happy.stamps s"
    " full join happy.store r using (id) where s.id is null"
)


class PostgresStore:
    """
    `RemoteStore` backed by one psycopg async connection.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    @classmethod
    async def connect(cls, dsn: str) -> "PostgresStore":
        """
        Open a new connection to `dsn`.

        Raises
        ------
        RemoteStoreError
            If the server cannot be reached or refuses the connection.
        """
        try:
            conn = await AsyncConnection.connect(dsn, autocommit=True)
        except psycopg.Error as exc:
            raise RemoteStoreError(f"could not connect: {exc}") from exc
        return cls(conn)

    @property
    def is_usable(self) -> bool:
        conn = self._conn
        if conn.closed or conn.broken:
            return False
        return conn.info.transaction_status == TransactionStatus.IDLE

    async def close(self) -> None:
        if self._conn.closed:
            return
        try:
            await self._conn.close()
        except psycopg.Error as exc:
            raise RemoteStoreError(f"could not close connection: {exc}") from exc

    async def _run_transaction(self, statements: Sequence[str]) -> None:
        try:
            async with self._conn.transaction():
                for sql in statements:
                    await self._conn.execute(sql)
        except psycopg.Error as exc:
            raise RemoteStoreError(f"query failed: {exc}") from exc

    async def create_schema(self) -> None:
        await self._run_transaction(SCHEMA_STATEMENTS)

    async def truncate_tables(self) -> None:
        await self._run_transaction(TRUNCATE_STATEMENTS)

    async def next_id(self) -> int:
        try:
            cur = await self._conn.execute(NEXT_ID_SQL)
            row = await cur.fetchone()
        except psycopg.Error as exc:
            raise RemoteStoreError(f"query failed: {exc}") from exc
        return int(row[0])

    async def insert_record(self, record: Record) -> None:
        try:
            async with self._conn.transaction():
                await self._conn.execute(INSERT_SQL, (record.id, record.ts, record.payload))
        except psycopg.Error as exc:
            raise RemoteStoreError(f"insert failed: {exc}") from exc

    async def copy_stamps(self, stamps: Iterable[Stamp]) -> int:
        count = 0
        try:
            async with self._conn.transaction():
                await self._conn.execute("truncate happy.store")
                async with self._conn.cursor() as cur:
                    async with cur.copy(COPY_SQL) as copy:
                        for stamp in stamps:
                            await copy.write_row((stamp.id, stamp.ts))
                            count += 1
        except psycopg.Error as exc:
            raise RemoteStoreError(
                f"could not load store contents to database: {exc}"
            ) from exc
        return count

    async def missing_stamps(self) -> List[Stamp]:
        try:
            async with self._conn.cursor() as cur:
                await cur.execute(COMPARE_SQL)
                rows = await cur.fetchall()
        except psycopg.Error as exc:
            raise RemoteStoreError(f"compare query failed: {exc}") from exc
        return [Stamp(id=row_id, ts=ts) for row_id, ts in rows]


async def connect(dsn: str) -> PostgresStore:
    """Default connect factory for the generator loop and the reconciler."""
    return await PostgresStore.connect(dsn)


__all__ = [
    "COMPARE_SQL",
    "NEXT_ID_SQL",
    "PostgresStore",
    "connect",
]
