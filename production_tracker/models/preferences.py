"""
User settings model.

One settings object per device. It is stored locally by the SettingsStore
and never sent to the remote table (only the optional API key is used,
and only for calls to the AI service).
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from production_tracker.models.record import DEFAULT_PRICES, InstallType


class UserProfile(str, Enum):
    """Kind of technician using the app."""
    INSTALLER = "INSTALLER"
    TECHNICIAN = "TECHNICIAN"


class Theme(str, Enum):
    DARK = "dark"
    LIGHT = "light"


class VoiceSettings(BaseModel):
    """Speech synthesis parameters."""

    voice_uri: str = Field(
        default="",
        description="Selected voice identifier (empty = best available)"
    )
    pitch: float = Field(default=0.8, ge=0.0, le=2.0)
    rate: float = Field(default=1.1, ge=0.1, le=10.0)


class UserSettings(BaseModel):
    """
    User preferences.

    The price table always holds an entry for every installation type.
    Missing entries are filled from DEFAULT_PRICES when the model is built.
    """

    nickname: str = Field(default="", max_length=50)
    profile: UserProfile = Field(default=UserProfile.INSTALLER)
    theme: Theme = Field(default=Theme.DARK)
    tts_enabled: bool = Field(default=True)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    monthly_goal: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Monthly earnings goal (0 = unset)"
    )
    prices: dict[InstallType, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_PRICES)
    )
    api_key: str = Field(
        default="",
        description="Manually entered Gemini API key (overrides environment)"
    )

    @field_validator('prices')
    @classmethod
    def complete_price_table(cls, v: dict[InstallType, Decimal]) -> dict[InstallType, Decimal]:
        """Backfill missing types and enforce the remote constraint on SERVICE."""
        table = dict(DEFAULT_PRICES)
        table.update(v)
        for install_type, price in table.items():
            if price < 0:
                raise ValueError(f"Price for {install_type.value} cannot be negative")
        if table[InstallType.SERVICE] <= 0:
            raise ValueError("SERVICE price must be greater than 0")
        return table
