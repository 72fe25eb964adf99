"""
Data Models Package

This package contains all Pydantic models used in the Jarvis Production Tracker.
All data flowing through the system must conform to these schemas.
"""

from production_tracker.models.record import (
    DEFAULT_PRICES,
    TYPE_LABELS,
    ChatMessage,
    InstallationRecord,
    InstallType,
    Sender,
    SyncState,
    label_for,
    parse_effective_date,
    sort_records,
)
from production_tracker.models.preferences import (
    Theme,
    UserProfile,
    UserSettings,
    VoiceSettings,
)
from production_tracker.models.intent import (
    CorrectionIntent,
    ExtractionParseError,
    ExtractionResult,
    GeneralChatIntent,
    IntentType,
    LoggingIntent,
    QueryIntent,
    RecordDraft,
    general_chat,
    parse_extraction,
)

__all__ = [
    # Record models
    "DEFAULT_PRICES",
    "TYPE_LABELS",
    "ChatMessage",
    "InstallationRecord",
    "InstallType",
    "Sender",
    "SyncState",
    "label_for",
    "parse_effective_date",
    "sort_records",
    # Settings models
    "Theme",
    "UserProfile",
    "UserSettings",
    "VoiceSettings",
    # Intent models
    "CorrectionIntent",
    "ExtractionParseError",
    "ExtractionResult",
    "GeneralChatIntent",
    "IntentType",
    "LoggingIntent",
    "QueryIntent",
    "RecordDraft",
    "general_chat",
    "parse_extraction",
]
