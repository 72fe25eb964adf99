"""
Sync Audit Logger

Every sync decision the RecordStore makes is logged: which path a call
took (offline, remote, fallback), what was uploaded, what was queued.
When a user says "my records disappeared", this log is the answer.

The audit logger:
- Only logs locally (structured JSON via structlog)
- Never raises into the caller
"""

import logging
from typing import Iterable, Optional

import structlog


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at `level`."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None):
    """Get a structlog logger bound to `name`."""
    return structlog.get_logger(name)


class SyncAuditLogger:
    """
    Structured log of record synchronisation events.

    One method per event so call sites stay short and event names stay
    consistent.
    """

    def __init__(self, logger=None):
        self._logger = logger or get_logger("production_tracker.sync")

    def _emit(self, level: str, event: str, **fields) -> None:
        try:
            getattr(self._logger, level)(event, **fields)
        except Exception:
            # Logging must never break a sync
            pass

    def sync_started(self, local_count: int) -> None:
        self._emit("debug", "sync_started", local_count=local_count)

    def offline_read(self, local_count: int) -> None:
        self._emit("info", "sync_offline_read", local_count=local_count)

    def pending_uploaded(self, record_ids: Iterable[str]) -> None:
        ids = list(record_ids)
        self._emit("info", "sync_pending_uploaded", count=len(ids), record_ids=ids)

    def upload_failed(self, record_ids: Iterable[str], error: str) -> None:
        ids = list(record_ids)
        self._emit("warning", "sync_upload_failed", count=len(ids), record_ids=ids, error=error)

    def remote_fallback(self, operation: str, error: str) -> None:
        self._emit("warning", "sync_remote_fallback", operation=operation, error=error)

    def deletion_queued(self, record_id: str) -> None:
        self._emit("info", "sync_deletion_queued", record_id=record_id)

    def deletions_flushed(self, record_ids: Iterable[str]) -> None:
        ids = list(record_ids)
        self._emit("info", "sync_deletions_flushed", count=len(ids), record_ids=ids)

    def records_added(self, count: int, remote: bool) -> None:
        self._emit("info", "records_added", count=count, remote=remote)

    def backup_imported(self, count: int) -> None:
        self._emit("info", "backup_imported", count=count)

    def backup_rejected(self, error: str) -> None:
        self._emit("warning", "backup_rejected", error=error)

    def user_data_wiped(self, remote: bool) -> None:
        self._emit("warning", "user_data_wiped", remote=remote)
