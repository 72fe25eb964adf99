"""AI Agents package."""

from production_tracker.agents.intent_agent import (
    ChatSession,
    CredentialError,
    IntentAgent,
    IntentExtractionError,
    RecentContext,
    build_recent_context,
    build_system_instruction,
)
from production_tracker.models.intent import ExtractionParseError

__all__ = [
    "ChatSession",
    "CredentialError",
    "ExtractionParseError",
    "IntentAgent",
    "IntentExtractionError",
    "RecentContext",
    "build_recent_context",
    "build_system_instruction",
]
