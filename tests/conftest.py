"""
Pytest configuration for failover-probe.

Provides fixtures for:
- An in-memory remote store standing in for PostgreSQL in unit tests
- Local log paths and load/compare configs pointing at them
- Database connection management for integration tests
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import psycopg
import pytest

from failover_probe.config import CompareConfig, LoadConfig, Settings
from failover_probe.domain.models import Record, Stamp
from failover_probe.errors import RemoteStoreError

BASE_TS = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))


def make_stamp(stamp_id: int) -> Stamp:
    return Stamp(id=stamp_id, ts=BASE_TS + timedelta(milliseconds=500 * stamp_id))


@dataclass
class FakeDatabase:
    """
    State of a fake PostgreSQL server; survives reconnects like a real one.

    Failure knobs are consumed as the loop hits them. `stop` is set once
    `stop_after_inserts` insert attempts or `stop_after_connects` connection
    attempts have been made.
    """

    stamps: Dict[int, Record] = field(default_factory=dict)
    store: List[Stamp] = field(default_factory=list)
    fail_connects: int = 0
    hang_connect: bool = False
    next_id_failures: int = 0
    truncate_failures: int = 0
    fail_insert_ids: Set[int] = field(default_factory=set)
    drop_connection_ids: Set[int] = field(default_factory=set)
    hang_insert_ids: Set[int] = field(default_factory=set)
    stop: Optional[asyncio.Event] = None
    stop_after_inserts: Optional[int] = None
    stop_after_connects: Optional[int] = None
    connect_calls: int = 0
    next_id_calls: int = 0
    truncate_calls: int = 0
    insert_attempts: List[int] = field(default_factory=list)
    copy_calls: int = 0
    connections: List["FakeRemoteStore"] = field(default_factory=list)

    def _maybe_stop(self) -> None:
        if self.stop is None:
            return
        if self.stop_after_inserts is not None and len(self.insert_attempts) >= self.stop_after_inserts:
            self.stop.set()
        if self.stop_after_connects is not None and self.connect_calls >= self.stop_after_connects:
            self.stop.set()

    async def connect(self, dsn: str) -> "FakeRemoteStore":
        self.connect_calls += 1
        try:
            if self.hang_connect:
                await asyncio.Event().wait()
            if self.fail_connects > 0:
                self.fail_connects -= 1
                raise RemoteStoreError(f"could not connect to {dsn}: connection refused")
            store = FakeRemoteStore(self)
            self.connections.append(store)
            return store
        finally:
            self._maybe_stop()


class FakeRemoteStore:
    """In-memory `RemoteStore` bound to a `FakeDatabase`."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.closed = False
        self.busy = False
        self.close_calls = 0

    @property
    def is_usable(self) -> bool:
        return not self.closed and not self.busy

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    def _check_open(self) -> None:
        if self.closed:
            raise RemoteStoreError("the connection is closed")

    async def create_schema(self) -> None:
        self._check_open()

    async def truncate_tables(self) -> None:
        self._check_open()
        self.db.truncate_calls += 1
        if self.db.truncate_failures > 0:
            self.db.truncate_failures -= 1
            raise RemoteStoreError("query failed: lock timeout")
        self.db.stamps.clear()
        self.db.store.clear()

    async def next_id(self) -> int:
        self._check_open()
        self.db.next_id_calls += 1
        if self.db.next_id_failures > 0:
            self.db.next_id_failures -= 1
            raise RemoteStoreError("query failed: the database system is starting up")
        return max(self.db.stamps, default=0) + 1

    async def insert_record(self, record: Record) -> None:
        self._check_open()
        self.db.insert_attempts.append(record.id)
        try:
            if record.id in self.db.hang_insert_ids:
                self.busy = True
                await asyncio.Event().wait()
            if record.id in self.db.drop_connection_ids:
                self.closed = True
                raise RemoteStoreError("insert failed: server closed the connection unexpectedly")
            if record.id in self.db.fail_insert_ids:
                raise RemoteStoreError("insert failed: cannot execute INSERT in a read-only transaction")
            if record.id in self.db.stamps:
                raise RemoteStoreError("insert failed: duplicate key value violates unique constraint")
            self.db.stamps[record.id] = record
        finally:
            self.db._maybe_stop()

    async def copy_stamps(self, stamps: Iterable[Stamp]) -> int:
        self._check_open()
        self.db.copy_calls += 1
        loaded = list(stamps)
        self.db.store = loaded
        return len(loaded)

    async def missing_stamps(self) -> List[Stamp]:
        self._check_open()
        # A hash join gives no ordering guarantee.
        return [stamp for stamp in reversed(self.db.store) if stamp.id not in self.db.stamps]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "failover_probe.data"


@pytest.fixture
def load_config(log_path: Path) -> LoadConfig:
    return LoadConfig(
        dsn="postgresql://probe@fake/probe",
        store_path=log_path,
        timeout=1.0,
        pause=0,
        payload_size=12,
        fsync=False,
    )


@pytest.fixture
def compare_config(log_path: Path) -> CompareConfig:
    return CompareConfig(dsn="postgresql://probe@fake/probe", store_path=log_path, timeout=1.0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        database_url=os.getenv("DATABASE_URL"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return test_settings.dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def stamp_factory():
    return make_stamp
