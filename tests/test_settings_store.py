"""Tests for the SettingsStore: defaults, merge on load, prices, device id."""

from decimal import Decimal

import pytest

from production_tracker.models import InstallType, Theme, UserProfile, UserSettings
from production_tracker.services import SettingsStore, clean_api_key
from production_tracker.services.storage import SETTINGS_KEY, USER_ID_KEY


class TestLoad:

    def test_defaults_when_nothing_saved(self, settings_store):
        settings = settings_store.load()
        assert settings == UserSettings()
        assert settings.voice.pitch == 0.8
        assert settings.voice.rate == 1.1

    def test_defaults_when_saved_value_is_not_an_object(self, local_store, settings_store):
        local_store.set_json(SETTINGS_KEY, ["not", "settings"])
        assert settings_store.load() == UserSettings()

    def test_defaults_when_saved_value_is_corrupt(self, local_store, settings_store):
        local_store.set_text(SETTINGS_KEY, "{broken")
        assert settings_store.load() == UserSettings()

    def test_older_schema_keeps_saved_fields(self, local_store, settings_store):
        """Fields missing from an older save take their defaults."""
        local_store.set_json(SETTINGS_KEY, {"nickname": "Leo", "profile": "TECHNICIAN"})

        settings = settings_store.load()

        assert settings.nickname == "Leo"
        assert settings.profile == UserProfile.TECHNICIAN
        assert settings.theme == Theme.DARK
        assert settings.tts_enabled is True
        assert settings.monthly_goal == Decimal("0")

    def test_invalid_field_is_dropped_alone(self, local_store, settings_store):
        local_store.set_json(SETTINGS_KEY, {"nickname": "Ana", "theme": "neon"})

        settings = settings_store.load()

        assert settings.nickname == "Ana"
        assert settings.theme == Theme.DARK

    def test_prices_merge_key_by_key(self, local_store, settings_store):
        local_store.set_json(SETTINGS_KEY, {"prices": {"RESIDENTIAL": "9.5", "UNKNOWN": 3}})

        prices = settings_store.load().prices

        assert prices[InstallType.RESIDENTIAL] == Decimal("9.5")
        assert prices[InstallType.CORPORATE] == Decimal("10")
        assert prices[InstallType.POLE] == Decimal("8")
        assert prices[InstallType.SERVICE] == Decimal("15")

    def test_non_positive_service_price_falls_back(self, local_store, settings_store):
        local_store.set_json(SETTINGS_KEY, {"prices": {"SERVICE": 0, "POLE": "abc"}})

        prices = settings_store.load().prices

        assert prices[InstallType.SERVICE] == Decimal("15")
        assert prices[InstallType.POLE] == Decimal("8")

    def test_voice_merge_key_by_key(self, local_store, settings_store):
        local_store.set_json(SETTINGS_KEY, {"voice": {"rate": 1.5}})

        voice = settings_store.load().voice

        assert voice.rate == 1.5
        assert voice.pitch == 0.8


class TestSave:

    def test_save_then_load_round_trip(self, local_store, settings_store):
        saved = UserSettings(
            nickname="Carla",
            profile=UserProfile.TECHNICIAN,
            monthly_goal=Decimal("600"),
            prices={InstallType.POLE: Decimal("11")},
        )
        settings_store.save(saved)

        assert SettingsStore(local_store).load() == saved
        assert settings_store.current == saved

    def test_negative_price_rejected_by_model(self):
        with pytest.raises(ValueError):
            UserSettings(prices={InstallType.RESIDENTIAL: Decimal("-1")})


class TestEffectiveValues:

    def test_zero_price_uses_default(self, settings_store):
        settings_store.save(UserSettings(prices={InstallType.RESIDENTIAL: Decimal("0")}))
        assert settings_store.effective_price(InstallType.RESIDENTIAL) == Decimal("7")

    def test_configured_price_used(self, settings_store):
        settings_store.save(UserSettings(prices={InstallType.CORPORATE: Decimal("12")}))
        assert settings_store.effective_price(InstallType.CORPORATE) == Decimal("12")

    def test_api_key_prefers_user_value(self, settings_store):
        settings_store.save(UserSettings(api_key=" user-key\u200b "))
        assert settings_store.effective_api_key("env-key") == "user-key"

    def test_api_key_falls_back_to_environment(self, settings_store):
        assert settings_store.effective_api_key(" env-key\n") == "env-key"

    def test_clean_api_key_strips_invisible_characters(self):
        assert clean_api_key("\ufeffAIza Sy\u200cAB\r\n") == "AIzaSyAB"
        assert clean_api_key(None) == ""


class TestDeviceUserId:

    def test_generated_once_and_persisted(self, local_store):
        first = SettingsStore(local_store).get_device_user_id()
        second = SettingsStore(local_store).get_device_user_id()

        assert first
        assert first == second
        assert local_store.get_text(USER_ID_KEY) == first

    def test_configured_id_wins(self, local_store):
        assert SettingsStore(local_store, device_id="fixed").get_device_user_id() == "fixed"
