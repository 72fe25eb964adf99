"""Audit logging package."""

from production_tracker.audit.logger import SyncAuditLogger, configure_logging, get_logger

__all__ = ["SyncAuditLogger", "configure_logging", "get_logger"]
