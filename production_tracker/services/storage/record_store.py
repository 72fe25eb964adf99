"""
Record Store (sync layer)

Owns the canonical list of production records. Two copies exist: the
local durable cache on the device and the remote table. The store favours
availability over consistency:

- Offline, every operation works against the local cache only.
- Online, list_records() uploads whatever the cache has that the remote
  table lacks, then overwrites the cache with the merged result.
- list_records / add_records / delete_record always return a record list.
  Remote failures are logged and the local path is taken instead.

Deletions that fail to reach the remote table are queued locally and
retried on the next online list_records(); otherwise the record would come
back from the remote table on the next sync.

CONCURRENCY: one asyncio.Lock serialises every read-modify-write of the
cache, so two overlapping calls in the same process cannot lose an update.
"""

import asyncio
import inspect
import time
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from production_tracker.audit import SyncAuditLogger
from production_tracker.models.record import (
    InstallationRecord,
    InstallType,
    SyncState,
    parse_effective_date,
    sort_records,
)
from production_tracker.services.connectivity import BackendStatus, ConnectivityProbe
from production_tracker.services.export import (
    generate_csv,
    parse_backup,
    records_to_json_list,
    serialize_backup,
)
from production_tracker.services.storage.interface import RecordTableInterface
from production_tracker.services.storage.local_cache import (
    DELETED_QUEUE_KEY,
    RECORDS_KEY,
    LocalKeyValueStore,
)

if TYPE_CHECKING:
    from production_tracker.services.settings_store import SettingsStore


DateLike = Union[date, str, None]
RecordsCallback = Callable[[list[InstallationRecord]], Union[None, Awaitable[None]]]


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class RecordStore:
    """
    Local-first record storage with best-effort remote sync.

    Args:
        local_store: Device key-value store holding the cache
        settings_store: Source of prices and the device user id
        remote: Remote table; None means local-only operation
        is_online: Connectivity probe, consulted before every remote call
        clock: Current time in epoch milliseconds
        today: Current calendar date (default for new records)
        audit: Sync event logger
    """

    def __init__(
        self,
        local_store: LocalKeyValueStore,
        settings_store: "SettingsStore",
        remote: Optional[RecordTableInterface] = None,
        is_online: Optional[ConnectivityProbe] = None,
        clock: Callable[[], int] = _epoch_millis,
        today: Callable[[], date] = date.today,
        audit: Optional[SyncAuditLogger] = None,
    ):
        self._local = local_store
        self._settings = settings_store
        self._remote = remote
        self._is_online = is_online or (lambda: True)
        self._clock = clock
        self._today = today
        self._audit = audit or SyncAuditLogger()
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Local cache helpers (synchronous, never suspend)
    # -------------------------------------------------------------------------

    def _read_cache(self) -> list[InstallationRecord]:
        raw = self._local.get_json(RECORDS_KEY, [])
        if not isinstance(raw, list):
            return []
        records = []
        for item in raw:
            try:
                records.append(InstallationRecord.model_validate(item))
            except ValidationError as e:
                self._audit.remote_fallback("read_cache", f"Dropping unreadable cached record: {e}")
        return records

    def _write_cache(self, records: list[InstallationRecord]) -> list[InstallationRecord]:
        ordered = sort_records(records)
        self._local.set_json(RECORDS_KEY, records_to_json_list(ordered))
        return ordered

    def _read_deletion_queue(self) -> list[str]:
        raw = self._local.get_json(DELETED_QUEUE_KEY, [])
        if not isinstance(raw, list):
            return []
        return [str(item) for item in raw]

    def _queue_deletion(self, record_id: str) -> None:
        queue = self._read_deletion_queue()
        if record_id not in queue:
            queue.append(record_id)
            self._local.set_json(DELETED_QUEUE_KEY, queue)
        self._audit.deletion_queued(record_id)

    def _remote_available(self) -> bool:
        if self._remote is None:
            return False
        try:
            return bool(self._is_online())
        except Exception:
            return False

    def cached_records(self) -> list[InstallationRecord]:
        """Local cache as stored, without touching the network."""
        return self._read_cache()

    def pending_records(self) -> list[InstallationRecord]:
        """Cached records not yet confirmed in the remote table."""
        return [r for r in self._read_cache() if r.sync_state == SyncState.LOCAL_ONLY]

    def pending_deletions(self) -> list[str]:
        """Record IDs deleted locally whose remote deletion is still owed."""
        return self._read_deletion_queue()

    # -------------------------------------------------------------------------
    # List
    # -------------------------------------------------------------------------

    async def list_records(self) -> list[InstallationRecord]:
        """
        Return the authoritative record list, ordered by creation timestamp.

        Offline: the local cache verbatim. Online: remote rows merged with
        local records the remote table lacks (which are uploaded). The
        local cache is overwritten with the result.
        """
        async with self._lock:
            return await self._sync()

    async def _flush_deletions(self, user_id: str) -> set[str]:
        """Retry queued remote deletions. Returns IDs still owed."""
        queue = self._read_deletion_queue()
        if not queue:
            return set()
        try:
            await self._remote.delete_many(queue, user_id)
        except Exception as e:
            self._audit.remote_fallback("flush_deletions", str(e))
            return set(queue)
        self._local.set_json(DELETED_QUEUE_KEY, [])
        self._audit.deletions_flushed(queue)
        return set()

    async def _sync(self) -> list[InstallationRecord]:
        local = self._read_cache()
        self._audit.sync_started(len(local))

        if not self._remote_available():
            self._audit.offline_read(len(local))
            return local

        user_id = self._settings.get_device_user_id()
        try:
            still_deleted = await self._flush_deletions(user_id)
            remote = await self._remote.fetch_all(user_id)
        except Exception as e:
            self._audit.remote_fallback("list", str(e))
            return local

        # One record per id, first occurrence wins
        unique: dict[str, InstallationRecord] = {}
        for record in remote:
            if record.id not in still_deleted and record.id not in unique:
                unique[record.id] = record.with_sync_state(SyncState.SYNCED)
        remote = list(unique.values())
        remote_ids = set(unique)
        pending = [
            r.model_copy(update={"user_id": r.user_id or user_id})
            for r in local
            if r.id not in remote_ids and r.id not in still_deleted
        ]

        if pending:
            try:
                await self._remote.insert_many(pending)
            except Exception as e:
                self._audit.upload_failed([r.id for r in pending], str(e))
                pending = [r.with_sync_state(SyncState.LOCAL_ONLY) for r in pending]
            else:
                self._audit.pending_uploaded([r.id for r in pending])
                pending = [r.with_sync_state(SyncState.SYNCED) for r in pending]

        return self._write_cache(remote + pending)

    # -------------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------------

    def _resolve_date(self, date_override: DateLike) -> date:
        if date_override is None:
            return self._today()
        if isinstance(date_override, date):
            return date_override
        if not date_override.strip():
            return self._today()
        return parse_effective_date(date_override)

    def _build_records(
        self,
        install_type: InstallType,
        quantity: int,
        day: date,
        base_timestamp: int,
        description: Optional[str],
        notes: Optional[str],
        manual_amount: Optional[Decimal],
    ) -> list[InstallationRecord]:
        user_id = self._settings.get_device_user_id()
        records = []
        if manual_amount is not None:
            # Free-form entry: one record carrying the amount the technician said
            quantity = 1
            unit_price, amount, units = manual_amount, manual_amount, None
        else:
            unit_price = self._settings.effective_price(install_type)
            amount, units = unit_price, 1
        for offset in range(quantity):
            records.append(InstallationRecord(
                user_id=user_id,
                type=install_type,
                quantity=units,
                unit_price=unit_price,
                amount=amount,
                date=day,
                timestamp=base_timestamp + offset,
                description=description,
                notes=notes,
                sync_state=SyncState.LOCAL_ONLY,
            ))
        return records

    async def add_records(
        self,
        install_type: InstallType,
        quantity: int = 1,
        date_override: DateLike = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        manual_amount: Optional[Decimal] = None,
        base_timestamp: Optional[int] = None,
    ) -> list[InstallationRecord]:
        """
        Create `quantity` records of `install_type`.

        Each record carries the current price for the type and the same
        effective date; timestamps are base + position so the batch keeps
        its insertion order. The local cache is updated before returning.

        Args:
            install_type: Kind of work
            quantity: Number of records to create (>= 1)
            date_override: Day the work is attributed to (default today)
            description: Free text, mostly for SERVICE
            notes: Optional notes
            manual_amount: Create one free-form record with this amount instead
            base_timestamp: First timestamp to use instead of the clock, so a
                batch can be extended in place. Still never reuses a cached
                timestamp.

        Returns:
            The full record list after the addition

        Raises:
            ValueError: If quantity < 1, the date can't be parsed, or
                manual_amount is negative
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")
        if manual_amount is not None:
            manual_amount = Decimal(str(manual_amount))
            if manual_amount < 0:
                raise ValueError("Manual amount cannot be negative")
        day = self._resolve_date(date_override)

        async with self._lock:
            local = self._read_cache()
            # Never reuse a timestamp already in the cache
            last_timestamp = max((r.timestamp for r in local), default=-1)
            start = self._clock() if base_timestamp is None else base_timestamp
            base = max(start, last_timestamp + 1)

            new_records = self._build_records(
                install_type, quantity, day, base, description, notes, manual_amount
            )
            updated = self._write_cache(local + new_records)

            if not self._remote_available():
                self._audit.records_added(len(new_records), remote=False)
                return updated

            try:
                await self._remote.insert_many(new_records)
            except Exception as e:
                self._audit.remote_fallback("add", str(e))
                self._audit.records_added(len(new_records), remote=False)
                return updated

            self._audit.records_added(len(new_records), remote=True)
            new_ids = {r.id for r in new_records}
            self._write_cache([
                r.with_sync_state(SyncState.SYNCED) if r.id in new_ids else r
                for r in updated
            ])
            return await self._sync()

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_record(self, record_id: str) -> list[InstallationRecord]:
        """
        Delete a record by ID.

        Unknown IDs are not an error: the list comes back unchanged.
        """
        async with self._lock:
            local = self._read_cache()
            updated = self._write_cache([r for r in local if r.id != record_id])

            if self._remote is None:
                return updated

            if not self._remote_available():
                self._queue_deletion(record_id)
                return updated

            try:
                await self._remote.delete(record_id, self._settings.get_device_user_id())
            except Exception as e:
                self._audit.remote_fallback("delete", str(e))
                self._queue_deletion(record_id)
                return updated

            return await self._sync()

    async def wipe_user_data(self) -> bool:
        """
        Delete every record of this device, remotely (best effort) and
        locally. Settings are kept.
        """
        async with self._lock:
            remote_ok = False
            if self._remote_available():
                try:
                    await self._remote.delete_all(self._settings.get_device_user_id())
                    remote_ok = True
                except Exception as e:
                    self._audit.remote_fallback("wipe", str(e))
            self._local.remove(RECORDS_KEY)
            self._local.remove(DELETED_QUEUE_KEY)
            self._audit.user_data_wiped(remote=remote_ok)
            return True

    # -------------------------------------------------------------------------
    # Backup / export
    # -------------------------------------------------------------------------

    def export_backup(self) -> str:
        """The local cache as backup text. No network."""
        return serialize_backup(self._read_cache())

    def export_csv(self) -> str:
        """The local cache as a human-readable CSV. No network."""
        return generate_csv(self._read_cache())

    async def import_backup(self, text: str) -> bool:
        """
        Replace the local cache with the records in `text`.

        Returns False (cache untouched) if `text` is not a well-formed
        list of records. On True the caller must reload its state from
        list_records().
        """
        try:
            records = parse_backup(text)
        except ValueError as e:
            self._audit.backup_rejected(str(e))
            return False

        user_id = self._settings.get_device_user_id()
        claimed = [r.model_copy(update={"user_id": user_id}) for r in records]

        async with self._lock:
            self._write_cache(claimed)
        self._audit.backup_imported(len(claimed))
        return True

    # -------------------------------------------------------------------------
    # Remote status / change notifications
    # -------------------------------------------------------------------------

    async def check_backend_status(self) -> BackendStatus:
        if self._remote is None:
            return BackendStatus.DISABLED
        if not self._remote_available():
            return BackendStatus.DISCONNECTED
        if await self._remote.ping():
            return BackendStatus.CONNECTED
        return BackendStatus.DISCONNECTED

    def subscribe_changes(self, callback: RecordsCallback) -> Callable[[], None]:
        """
        Re-list on every remote change and hand the result to `callback`.

        Returns:
            A function that stops the subscription
        """
        if self._remote is None:
            return lambda: None

        async def _on_change() -> None:
            records = await self.list_records()
            result = callback(records)
            if inspect.isawaitable(result):
                await result

        return self._remote.watch(_on_change)
