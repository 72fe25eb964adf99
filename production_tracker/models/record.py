"""
Core Data Models for Jarvis Production Tracker

A record is one billable unit of completed work. Records are created only
by the RecordStore and never mutated afterwards: a correction deletes or
adds records instead of editing them.

DESIGN DECISION: The unit price is copied into every record when it is
created. Changing the price table later never changes past earnings.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class InstallType(str, Enum):
    """Kinds of billable work."""
    RESIDENTIAL = "RESIDENTIAL"
    CORPORATE = "CORPORATE"
    POLE = "POLE"
    SERVICE = "SERVICE"


class SyncState(str, Enum):
    """
    Whether a record is known to exist in the remote table.

    Only the local cache carries this flag; the remote table never does.
    """
    LOCAL_ONLY = "LOCAL_ONLY"
    SYNCED = "SYNCED"


class Sender(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


TYPE_LABELS: dict[InstallType, str] = {
    InstallType.RESIDENTIAL: "Residencial",
    InstallType.CORPORATE: "Corporativo",
    InstallType.POLE: "Poste",
    InstallType.SERVICE: "Servicio Gral.",
}

CalendarDay = date

DEFAULT_PRICES: dict[InstallType, Decimal] = {
    InstallType.RESIDENTIAL: Decimal("7"),
    InstallType.CORPORATE: Decimal("10"),
    InstallType.POLE: Decimal("8"),
    InstallType.SERVICE: Decimal("15"),
}


def label_for(install_type: InstallType) -> str:
    """Human label for an installation type."""
    return TYPE_LABELS.get(install_type, install_type.value)


# =============================================================================
# RECORD MODEL
# =============================================================================

class InstallationRecord(BaseModel):
    """
    One billable unit of completed work.

    `date` is the calendar day the work is attributed to; `timestamp`
    (epoch milliseconds) is the creation time and the ordering key.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Unique record ID"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Device/user that owns the record"
    )
    type: InstallType
    quantity: Optional[int] = Field(
        default=1,
        ge=1,
        description="Units covered by this record (None for free-form service)"
    )
    unit_price: Decimal = Field(
        ...,
        ge=0,
        description="Price per unit at creation time"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Total earned for this record"
    )
    date: CalendarDay = Field(
        ...,
        description="Day the work is attributed to"
    )
    timestamp: int = Field(
        ...,
        ge=0,
        description="Creation time in epoch milliseconds"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    sync_state: SyncState = Field(
        default=SyncState.LOCAL_ONLY,
    )

    @model_validator(mode='after')
    def validate_amount(self) -> 'InstallationRecord':
        """Total must equal quantity times the snapshotted unit price."""
        if self.quantity is not None:
            if self.amount != self.unit_price * self.quantity:
                raise ValueError("Amount must equal quantity x unit price")
        return self

    @property
    def label(self) -> str:
        return label_for(self.type)

    @property
    def created_at(self) -> datetime:
        """Creation time as a local datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000)

    def with_sync_state(self, state: SyncState) -> 'InstallationRecord':
        """Return a copy carrying the given sync state."""
        if self.sync_state == state:
            return self
        return self.model_copy(update={"sync_state": state})

    def to_remote_row(self) -> dict:
        """Column values for the remote table (no local-only fields)."""
        return {
            "id": self.id,
            "user_id": self.user_id or "",
            "type": self.type.value,
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "unit_price": str(self.unit_price),
            "quantity": "" if self.quantity is None else str(self.quantity),
            "timestamp": str(self.timestamp),
            "description": self.description or "",
            "notes": self.notes or "",
        }

    @classmethod
    def from_remote_row(cls, row: dict) -> 'InstallationRecord':
        """Build a record from remote column values. Remote rows are synced by definition."""
        quantity = row.get("quantity")
        return cls(
            id=str(row["id"]),
            user_id=row.get("user_id") or None,
            type=InstallType(row["type"]),
            date=parse_effective_date(str(row["date"])),
            amount=Decimal(str(row["amount"])),
            unit_price=Decimal(str(row.get("unit_price") or row["amount"])),
            quantity=int(quantity) if quantity not in (None, "") else None,
            timestamp=int(float(row["timestamp"])),
            description=row.get("description") or None,
            notes=row.get("notes") or None,
            sync_state=SyncState.SYNCED,
        )


def parse_effective_date(value: str) -> date:
    """
    Parse a date override.

    Accepts a plain calendar day (2024-03-01) or a full ISO datetime
    (2024-03-01T09:30:00); only the calendar day is kept.
    """
    value = value.strip()
    if "T" in value or " " in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return date.fromisoformat(value)


def sort_records(records: list[InstallationRecord]) -> list[InstallationRecord]:
    """Order records by creation timestamp ascending (ties broken by id)."""
    return sorted(records, key=lambda r: (r.timestamp, r.id))


# =============================================================================
# CONVERSATION MODEL
# =============================================================================

class ChatMessage(BaseModel):
    """Ephemeral transcript entry. Never persisted."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    sender: Sender
    text: str
    created_at: datetime = Field(default_factory=datetime.now)
