"""
Storage Services Package

Local durable cache, the remote records table, and the RecordStore that
keeps them in sync. The remote table is Google Sheets today, behind an
interface so it can be swapped.
"""

from production_tracker.services.storage.interface import (
    ChangeCallback,
    NotFoundError,
    RecordTableInterface,
    RemoteServiceError,
    RemoteUnavailableError,
    StorageError,
)
from production_tracker.services.storage.local_cache import (
    DELETED_QUEUE_KEY,
    RECORDS_KEY,
    SETTINGS_KEY,
    USER_ID_KEY,
    LocalKeyValueStore,
)
from production_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRecordTable,
)
from production_tracker.services.storage.record_store import RecordStore

__all__ = [
    # Interfaces
    "ChangeCallback",
    "RecordTableInterface",
    # Exceptions
    "NotFoundError",
    "RemoteServiceError",
    "RemoteUnavailableError",
    "StorageError",
    # Local cache
    "DELETED_QUEUE_KEY",
    "RECORDS_KEY",
    "SETTINGS_KEY",
    "USER_ID_KEY",
    "LocalKeyValueStore",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsRecordTable",
    # Sync layer
    "RecordStore",
]
