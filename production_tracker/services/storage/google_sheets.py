"""
Google Sheets Remote Table

DESIGN DECISION: A Google Sheets worksheet is the remote records table:
1. The technician can open the sheet and see every record
2. No database to run
3. Easy to export/migrate later

TRADEOFFS:
- No server-side filtering or ordering (we filter and sort in Python)
- No push notifications (changes are detected by polling)
- No transactions (batch inserts use a single append call)

The implementation follows RecordTableInterface, so the sync layer does
not change if the backend does.
"""

import asyncio
import hashlib
from typing import Callable, Iterable, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from production_tracker.audit import get_logger
from production_tracker.config import GoogleSheetsSettings, get_settings
from production_tracker.models.record import InstallationRecord, sort_records
from production_tracker.services.storage.interface import (
    ChangeCallback,
    RecordTableInterface,
    RemoteServiceError,
    RemoteUnavailableError,
    StorageError,
)


# Column order of the records worksheet
RECORD_COLUMNS = [
    "id",
    "user_id",
    "type",
    "date",
    "amount",
    "unit_price",
    "quantity",
    "timestamp",
    "description",
    "notes",
]

logger = get_logger(__name__)

_transient_retry = retry(
    retry=retry_if_exception_type(RemoteUnavailableError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    reraise=True,
)


def _translate_error(e: Exception, action: str) -> StorageError:
    """Map gspread/transport errors onto the storage exception hierarchy."""
    if isinstance(e, StorageError):
        return e
    if isinstance(e, gspread.exceptions.APIError):
        status = getattr(getattr(e, "response", None), "status_code", None)
        if status is not None and (status == 429 or status >= 500):
            return RemoteUnavailableError(f"Failed to {action}: {e}")
        return RemoteServiceError(f"Failed to {action}: {e}")
    # requests' exceptions derive from OSError
    if isinstance(e, OSError):
        return RemoteUnavailableError(f"Failed to {action}: {e}")
    return RemoteServiceError(f"Failed to {action}: {e}")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily opens the worksheet.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteServiceError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise _translate_error(e, "connect to Google Sheets")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise RemoteServiceError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_records_sheet(self) -> gspread.Worksheet:
        """Get or create the records worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.records_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.records_sheet_name,
                rows=1000,
                cols=len(RECORD_COLUMNS),
            )
            sheet.append_row(RECORD_COLUMNS)
        return sheet


class GoogleSheetsRecordTable(RecordTableInterface):
    """
    Google Sheets implementation of the remote records table.

    One record per row, columns in RECORD_COLUMNS order.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: InstallationRecord) -> list[str]:
        values = record.to_remote_row()
        return [values[column] for column in RECORD_COLUMNS]

    def _row_to_record(self, row: list[str]) -> InstallationRecord:
        padded = list(row) + [""] * (len(RECORD_COLUMNS) - len(row))
        return InstallationRecord.from_remote_row(dict(zip(RECORD_COLUMNS, padded)))

    @staticmethod
    def _owned_by(row: list[str], user_id: Optional[str]) -> bool:
        if user_id is None:
            return True
        return len(row) > 1 and row[1] == user_id

    @_transient_retry
    async def fetch_all(self, user_id: Optional[str] = None) -> list[InstallationRecord]:
        """Fetch all rows owned by `user_id`, ordered by timestamp."""
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise _translate_error(e, "fetch records")

        records = []
        seen: set[str] = set()
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            if row[0] in seen or not self._owned_by(row, user_id):
                continue
            try:
                records.append(self._row_to_record(row))
                seen.add(row[0])
            except Exception as e:
                logger.warning("remote_row_malformed", record_id=row[0], error=str(e))
                continue

        return sort_records(records)

    async def insert_many(self, records: list[InstallationRecord]) -> None:
        """
        Append all records in a single call.

        Not retried: append_rows is not idempotent.
        """
        if not records:
            return
        try:
            sheet = self._client.get_records_sheet()
            sheet.append_rows(
                [self._record_to_row(record) for record in records],
                value_input_option="RAW",
            )
        except Exception as e:
            raise _translate_error(e, "insert records")

    async def delete(self, record_id: str, user_id: Optional[str] = None) -> bool:
        """Delete a record by ID."""
        return await self.delete_many([record_id], user_id) > 0

    @_transient_retry
    async def delete_many(self, record_ids: Iterable[str], user_id: Optional[str] = None) -> int:
        """Delete matching rows, bottom-up so row indices stay valid."""
        wanted = set(record_ids)
        if not wanted:
            return 0
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()

            matches = [
                idx
                for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is header
                if row and row[0] in wanted and self._owned_by(row, user_id)
            ]
            for idx in reversed(matches):
                sheet.delete_rows(idx)
            return len(matches)
        except Exception as e:
            raise _translate_error(e, "delete records")

    @_transient_retry
    async def delete_all(self, user_id: str) -> int:
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()
            matches = [
                idx
                for idx, row in enumerate(all_rows[1:], start=2)
                if row and row[0] and self._owned_by(row, user_id)
            ]
            for idx in reversed(matches):
                sheet.delete_rows(idx)
            return len(matches)
        except Exception as e:
            raise _translate_error(e, "delete user records")

    async def ping(self) -> bool:
        try:
            self._client.get_records_sheet().row_values(1)
            return True
        except Exception as e:
            logger.warning("remote_ping_failed", error=str(e))
            return False

    def _fingerprint(self) -> str:
        rows = self._client.get_records_sheet().get_all_values()
        digest = hashlib.sha256()
        for row in rows:
            digest.update("\x1f".join(row).encode("utf-8"))
            digest.update(b"\x1e")
        return digest.hexdigest()

    def watch(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Poll the worksheet and call `callback` when its content changes.

        Must be called from a running event loop.
        """
        interval = self._client.settings.poll_interval_seconds

        async def _poll() -> None:
            last: Optional[str] = None
            while True:
                try:
                    current = await asyncio.to_thread(self._fingerprint)
                except Exception as e:
                    logger.warning("remote_watch_failed", error=str(e))
                    current = last
                if last is not None and current != last:
                    try:
                        await callback()
                    except Exception as e:
                        logger.error("remote_change_callback_failed", error=str(e))
                last = current
                await asyncio.sleep(interval)

        task = asyncio.get_running_loop().create_task(_poll())
        return task.cancel
