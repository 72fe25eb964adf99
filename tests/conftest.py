"""Shared test fixtures.

Sets fake environment variables so the config package loads without a
.env file, and provides an in-memory remote table, a controllable clock
and a connectivity switch.
"""

import os

# Patch env vars BEFORE any production_tracker imports
os.environ.setdefault("GEMINI_API_KEY", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date
from typing import Callable, Iterable, Optional

import pytest

from production_tracker.audit import SyncAuditLogger
from production_tracker.models import InstallationRecord, SyncState, sort_records
from production_tracker.services import (
    LocalKeyValueStore,
    RecordStore,
    RecordTableInterface,
    RemoteUnavailableError,
    SettingsStore,
)


TODAY = date(2024, 3, 15)
DEVICE_ID = "device-test-1"


class InMemoryRecordTable(RecordTableInterface):
    """Remote table held in a dict, with switches to make calls fail."""

    def __init__(self):
        self.rows: dict[str, InstallationRecord] = {}
        self.fail_fetch = False
        self.fail_insert = False
        self.fail_delete = False
        self.insert_calls: list[list[str]] = []
        self.delete_calls: list[list[str]] = []
        self._watchers: list = []

    def seed(self, *records: InstallationRecord) -> None:
        for record in records:
            self.rows[record.id] = record.with_sync_state(SyncState.SYNCED)

    async def fetch_all(self, user_id: Optional[str] = None) -> list[InstallationRecord]:
        if self.fail_fetch:
            raise RemoteUnavailableError("fetch failed")
        return sort_records([
            r for r in self.rows.values()
            if user_id is None or r.user_id == user_id
        ])

    async def insert_many(self, records: list[InstallationRecord]) -> None:
        if self.fail_insert:
            raise RemoteUnavailableError("insert failed")
        self.insert_calls.append([r.id for r in records])
        self.seed(*records)

    async def delete(self, record_id: str, user_id: Optional[str] = None) -> bool:
        return await self.delete_many([record_id], user_id) > 0

    async def delete_many(self, record_ids: Iterable[str], user_id: Optional[str] = None) -> int:
        if self.fail_delete:
            raise RemoteUnavailableError("delete failed")
        ids = list(record_ids)
        self.delete_calls.append(ids)
        removed = 0
        for record_id in ids:
            record = self.rows.get(record_id)
            if record is not None and (user_id is None or record.user_id == user_id):
                del self.rows[record_id]
                removed += 1
        return removed

    async def delete_all(self, user_id: str) -> int:
        owned = [r.id for r in self.rows.values() if r.user_id == user_id]
        return await self.delete_many(owned, user_id)

    async def ping(self) -> bool:
        return not self.fail_fetch

    def watch(self, callback) -> Callable[[], None]:
        self._watchers.append(callback)
        return lambda: self._watchers.remove(callback)

    async def notify(self) -> None:
        for callback in list(self._watchers):
            await callback()


class FakeClock:
    """Epoch milliseconds; every reading moves time forward one second."""

    def __init__(self, start: int = 1_710_500_000_000):
        self.now = start

    def __call__(self) -> int:
        current = self.now
        self.now += 1000
        return current


class Connectivity:
    def __init__(self, online: bool = True):
        self.online = online

    def __call__(self) -> bool:
        return self.online


@pytest.fixture
def local_store(tmp_path):
    """Local key-value store backed by a temp directory."""
    return LocalKeyValueStore(tmp_path / "data")


@pytest.fixture
def settings_store(local_store):
    return SettingsStore(local_store, device_id=DEVICE_ID)


@pytest.fixture
def remote():
    return InMemoryRecordTable()


@pytest.fixture
def connectivity():
    return Connectivity(online=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def record_store(local_store, settings_store, remote, connectivity, clock):
    """RecordStore wired to the in-memory remote table."""
    return RecordStore(
        local_store,
        settings_store,
        remote=remote,
        is_online=connectivity,
        clock=clock,
        today=lambda: TODAY,
        audit=SyncAuditLogger(),
    )


@pytest.fixture
def local_only_store(local_store, settings_store, clock):
    """RecordStore with no remote table configured."""
    return RecordStore(
        local_store,
        settings_store,
        remote=None,
        clock=clock,
        today=lambda: TODAY,
    )


def make_record(
    install_type="RESIDENTIAL",
    amount="7",
    day=TODAY,
    timestamp=1_700_000_000_000,
    user_id=DEVICE_ID,
    **kwargs,
) -> InstallationRecord:
    """Build a single-unit record for seeding caches and tables."""
    return InstallationRecord(
        user_id=user_id,
        type=install_type,
        unit_price=amount,
        amount=amount,
        date=day,
        timestamp=timestamp,
        **kwargs,
    )
