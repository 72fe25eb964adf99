"""Services package."""

from production_tracker.services.connectivity import (
    BackendStatus,
    ConnectivityProbe,
    probe_from_settings,
    socket_probe,
)
from production_tracker.services.export import (
    CSV_HEADER,
    generate_csv,
    parse_backup,
    serialize_backup,
)
from production_tracker.services.settings_store import SettingsStore, clean_api_key
from production_tracker.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRecordTable,
    LocalKeyValueStore,
    NotFoundError,
    RecordStore,
    RecordTableInterface,
    RemoteServiceError,
    RemoteUnavailableError,
    StorageError,
)

__all__ = [
    # Connectivity
    "BackendStatus",
    "ConnectivityProbe",
    "probe_from_settings",
    "socket_probe",
    # Export
    "CSV_HEADER",
    "generate_csv",
    "parse_backup",
    "serialize_backup",
    # Settings
    "SettingsStore",
    "clean_api_key",
    # Storage services
    "GoogleSheetsClient",
    "GoogleSheetsRecordTable",
    "LocalKeyValueStore",
    "NotFoundError",
    "RecordStore",
    "RecordTableInterface",
    "RemoteServiceError",
    "RemoteUnavailableError",
    "StorageError",
]
