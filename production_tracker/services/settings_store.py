"""
Settings Store

Loads and saves the user's preferences on the device.

Saved settings may come from an older version of the app that did not
know about some fields yet. Loading merges field by field: whatever was
saved and is still valid is kept, everything else comes from the
defaults. The price table and the voice parameters are merged key by key.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import uuid4

from pydantic import ValidationError

from production_tracker.audit import get_logger
from production_tracker.models.preferences import UserSettings, VoiceSettings
from production_tracker.models.record import DEFAULT_PRICES, InstallType
from production_tracker.services.storage.local_cache import (
    SETTINGS_KEY,
    USER_ID_KEY,
    LocalKeyValueStore,
)


logger = get_logger(__name__)

_INVISIBLE = re.compile(r"[\s\u200b-\u200d\ufeff]")


def clean_api_key(key: Optional[str]) -> str:
    """Strip whitespace and zero-width characters pasted along with a key."""
    return _INVISIBLE.sub("", key or "")


def _to_price(value: Any) -> Optional[Decimal]:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not price.is_finite():
        return None
    return price


class SettingsStore:
    """
    Durable user settings.

    The store keeps the last loaded value in memory; `save()` replaces both
    the stored and the in-memory value.
    """

    def __init__(self, local_store: LocalKeyValueStore, device_id: Optional[str] = None):
        self._local = local_store
        self._device_id = device_id
        self._current: Optional[UserSettings] = None

    @property
    def current(self) -> UserSettings:
        """Settings in effect (loaded on first access)."""
        if self._current is None:
            self._current = self.load()
        return self._current

    def load(self) -> UserSettings:
        """
        Read persisted settings merged over the defaults.

        Absent or unreadable settings yield the defaults.
        """
        saved = self._local.get_json(SETTINGS_KEY)
        if not isinstance(saved, dict):
            self._current = UserSettings()
            return self._current

        self._current = self._merge(saved)
        return self._current

    def _merge(self, saved: dict[str, Any]) -> UserSettings:
        defaults = UserSettings()
        merged: dict[str, Any] = {}

        for name in UserSettings.model_fields:
            if name in ("prices", "voice") or name not in saved:
                continue
            try:
                UserSettings.model_validate({name: saved[name]})
            except ValidationError as e:
                logger.warning("settings_field_invalid", field=name, error=str(e))
                continue
            merged[name] = saved[name]

        voice = defaults.voice.model_dump()
        saved_voice = saved.get("voice")
        if isinstance(saved_voice, dict):
            for key, value in saved_voice.items():
                if key not in voice:
                    continue
                try:
                    VoiceSettings.model_validate({key: value})
                except ValidationError:
                    continue
                voice[key] = value
        merged["voice"] = voice

        prices = dict(defaults.prices)
        saved_prices = saved.get("prices")
        if isinstance(saved_prices, dict):
            for key, value in saved_prices.items():
                try:
                    install_type = InstallType(key)
                except ValueError:
                    continue
                price = _to_price(value)
                if price is not None and price >= 0:
                    prices[install_type] = price
        if prices[InstallType.SERVICE] <= 0:
            prices[InstallType.SERVICE] = DEFAULT_PRICES[InstallType.SERVICE]
        merged["prices"] = prices

        return UserSettings.model_validate(merged)

    def save(self, settings: UserSettings) -> None:
        """Persist the full settings object, replacing any prior value."""
        self._local.set_json(SETTINGS_KEY, settings.model_dump(mode="json"))
        self._current = settings

    def effective_price(self, install_type: InstallType) -> Decimal:
        """
        Price used for new records of `install_type`.

        Falls back to the built-in default if the configured price is
        missing or not a positive number.
        """
        price = self.current.prices.get(install_type)
        if price is None or not price.is_finite() or price <= 0:
            return DEFAULT_PRICES[install_type]
        return price

    def effective_api_key(self, fallback: str = "") -> str:
        """User-entered key if present, else the environment key."""
        user_key = clean_api_key(self.current.api_key)
        if user_key:
            return user_key
        return clean_api_key(fallback)

    def get_device_user_id(self) -> str:
        """
        Stable identifier of this device's data in the remote table.

        Generated once and persisted.
        """
        if self._device_id:
            return self._device_id
        stored = self._local.get_text(USER_ID_KEY)
        if stored and stored.strip():
            self._device_id = stored.strip()
        else:
            self._device_id = str(uuid4())
            self._local.set_text(USER_ID_KEY, self._device_id)
        return self._device_id
