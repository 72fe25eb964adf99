"""
Main Orchestrator for Jarvis Production Tracker

This module ties the components together and defines the end-to-end
flows the UI drives:
1. Chat turn (message -> extract intent -> apply records -> reply)
2. Quick add (type + quantity -> records -> confirmation)
3. Maintenance (delete, refresh, settings, backup import/export)

DESIGN DECISION: The controller enforces the boundaries:
- Records are only written through the RecordStore
- The assistant's intent is applied, never its arithmetic
- One chat turn at a time

Turn states:

    IDLE -> AWAITING_EXTRACTION -> APPLYING_RECORDS -> IDLE
    IDLE -> AWAITING_EXTRACTION -> IDLE

Every turn ends in IDLE, whatever fails in between.
"""

from datetime import date
from enum import Enum
from typing import Callable, Optional, Union

from production_tracker.agents import (
    IntentAgent,
    build_recent_context,
)
from production_tracker.agents.intent_agent import RETRY_RESPONSE
from production_tracker.audit import SyncAuditLogger, configure_logging, get_logger
from production_tracker.config import get_settings
from production_tracker.models import (
    ChatMessage,
    CorrectionIntent,
    InstallationRecord,
    InstallType,
    LoggingIntent,
    Sender,
    UserSettings,
    VoiceSettings,
    label_for,
)
from production_tracker.queries import last_batch
from production_tracker.services import (
    ConnectivityProbe,
    GoogleSheetsClient,
    GoogleSheetsRecordTable,
    LocalKeyValueStore,
    RecordStore,
    SettingsStore,
    probe_from_settings,
)


logger = get_logger(__name__)

GREETING = "Sistema en línea. Esperando informe de producción."

Speaker = Callable[[str, VoiceSettings], None]
RecordsListener = Callable[[list[InstallationRecord]], None]


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_EXTRACTION = "awaiting_extraction"
    APPLYING_RECORDS = "applying_records"


class TurnInProgressError(Exception):
    """A chat turn was submitted while another one is running."""
    pass


def quick_add_confirmation(install_type: InstallType, quantity: int) -> str:
    label = label_for(install_type)
    if quantity > 1:
        return f"Registrados {quantity} servicios de {label}."
    return f"Registro de {label} completado."


class JarvisController:
    """
    Application controller behind the UI.

    Holds the current record list and the chat transcript. The UI renders
    `records` and `messages` and calls the async methods below.

    Args:
        record_store: Sync layer for records
        settings_store: Durable user settings
        agent: Intent extraction agent
        is_online: Connectivity probe (the agent skips the network when offline)
        env_api_key: Key from the environment, used when the user set none
        speaker: Called with every assistant reply when TTS is enabled
        on_records_changed: Called with the new list after every change
        today: Current calendar date
    """

    def __init__(
        self,
        record_store: RecordStore,
        settings_store: SettingsStore,
        agent: IntentAgent,
        is_online: Optional[ConnectivityProbe] = None,
        env_api_key: str = "",
        speaker: Optional[Speaker] = None,
        on_records_changed: Optional[RecordsListener] = None,
        today: Callable[[], date] = date.today,
    ):
        self._store = record_store
        self._settings = settings_store
        self._agent = agent
        self._is_online = is_online or (lambda: True)
        self._env_api_key = env_api_key
        self._today = today
        self.speaker = speaker
        self.on_records_changed = on_records_changed

        self.state = TurnState.IDLE
        self.records: list[InstallationRecord] = self._store.cached_records()
        self.messages: list[ChatMessage] = [
            ChatMessage(sender=Sender.ASSISTANT, text=GREETING)
        ]
        self._configure_agent(self._settings.current)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.state != TurnState.IDLE

    @property
    def settings(self) -> UserSettings:
        return self._settings.current

    @property
    def store(self) -> RecordStore:
        return self._store

    def transcript(self) -> list[ChatMessage]:
        return list(self.messages)

    def _configure_agent(self, settings: UserSettings) -> None:
        api_key = self._settings.effective_api_key(self._env_api_key)
        self._agent.configure(api_key, settings.profile)

    def _set_records(self, records: list[InstallationRecord]) -> None:
        self.records = records
        if self.on_records_changed is not None:
            try:
                self.on_records_changed(records)
            except Exception as e:
                logger.error("records_listener_failed", error=str(e))

    def _reply(self, text: str) -> ChatMessage:
        message = ChatMessage(sender=Sender.ASSISTANT, text=text)
        self.messages.append(message)
        settings = self._settings.current
        if settings.tts_enabled and self.speaker is not None and text:
            try:
                self.speaker(text, settings.voice)
            except Exception as e:
                logger.warning("speech_failed", error=str(e))
        return message

    def _online(self) -> bool:
        try:
            return bool(self._is_online())
        except Exception:
            return False

    # -------------------------------------------------------------------------
    # Chat turn
    # -------------------------------------------------------------------------

    async def submit_message(self, text: str) -> Optional[ChatMessage]:
        """
        Run one chat turn.

        Returns:
            The assistant's reply, or None if `text` was blank

        Raises:
            TurnInProgressError: If a turn is already running
        """
        if self.is_busy:
            raise TurnInProgressError("A message is already being processed")
        if not text or not text.strip():
            return None

        self.messages.append(ChatMessage(sender=Sender.USER, text=text.strip()))
        self.state = TurnState.AWAITING_EXTRACTION
        try:
            context = build_recent_context(self.records, self._today())
            result = await self._agent.extract_safe(
                text.strip(), context, online=self._online()
            )

            if isinstance(result, LoggingIntent) and result.drafts:
                self.state = TurnState.APPLYING_RECORDS
                await self._apply_drafts(result)
            elif isinstance(result, CorrectionIntent):
                self.state = TurnState.APPLYING_RECORDS
                await self._apply_correction(result)

            reply_text = result.response_text
        except Exception as e:
            logger.error("turn_failed", error=str(e))
            reply_text = RETRY_RESPONSE
        finally:
            self.state = TurnState.IDLE

        return self._reply(reply_text)

    async def _apply_drafts(self, intent: LoggingIntent) -> None:
        records = self.records
        for draft in intent.drafts:
            records = await self._store.add_records(
                draft.type,
                draft.effective_quantity,
                draft.effective_date,
                description=draft.description,
                manual_amount=draft.manual_amount,
            )
        self._set_records(records)

    async def _apply_correction(self, intent: CorrectionIntent) -> None:
        """Grow or shrink the last batch to `new_quantity` records."""
        batch = last_batch(self.records)
        if not batch:
            logger.info("correction_ignored", reason="no records")
            return
        newest = batch[-1]
        if intent.type is not None and intent.type != newest.type:
            logger.info("correction_ignored", reason="type mismatch", type=intent.type)
            return

        current = len(batch)
        target = intent.new_quantity
        records = self.records
        # Extensions continue the batch timestamps so it stays one batch
        next_timestamp = newest.timestamp + 1
        if target > current and newest.quantity is None:
            # Free-form entries are added one at a time
            for _ in range(target - current):
                records = await self._store.add_records(
                    newest.type,
                    1,
                    newest.date,
                    description=newest.description,
                    manual_amount=newest.amount,
                    base_timestamp=next_timestamp,
                )
        elif target > current:
            records = await self._store.add_records(
                newest.type,
                target - current,
                newest.date,
                base_timestamp=next_timestamp,
            )
        elif target < current:
            for record in reversed(batch[target:]):
                records = await self._store.delete_record(record.id)
        self._set_records(records)

    # -------------------------------------------------------------------------
    # Direct actions
    # -------------------------------------------------------------------------

    async def quick_add(
        self,
        install_type: InstallType,
        quantity: int = 1,
        date_override: Union[date, str, None] = None,
    ) -> ChatMessage:
        """Add records without the assistant and confirm in the chat."""
        records = await self._store.add_records(install_type, quantity, date_override)
        self._set_records(records)
        return self._reply(quick_add_confirmation(install_type, quantity))

    async def delete_record(self, record_id: str) -> list[InstallationRecord]:
        records = await self._store.delete_record(record_id)
        self._set_records(records)
        return records

    async def refresh(self) -> list[InstallationRecord]:
        """Reload from the sync layer (also the remote-change handler)."""
        records = await self._store.list_records()
        self._set_records(records)
        return records

    def subscribe_remote_changes(self) -> Callable[[], None]:
        """Keep `records` current while the remote table changes."""
        return self._store.subscribe_changes(self._set_records)

    async def wipe_data(self) -> list[InstallationRecord]:
        await self._store.wipe_user_data()
        return await self.refresh()

    def update_settings(self, new_settings: UserSettings) -> None:
        """Persist settings; a new API key or profile restarts the chat."""
        self._settings.save(new_settings)
        self._configure_agent(new_settings)

    async def validate_api_key(self, api_key: str) -> tuple[bool, Optional[str]]:
        """Ping the AI service with `api_key` (or the environment key)."""
        return await self._agent.validate_api_key(api_key or self._env_api_key)

    async def import_backup(self, text: str) -> bool:
        """Replace local records with a backup. False if it is not valid."""
        if not await self._store.import_backup(text):
            return False
        await self.refresh()
        return True

    def export_backup(self) -> str:
        return self._store.export_backup()

    def export_csv(self) -> str:
        return self._store.export_csv()


def create_app_components(
    use_storage: bool = True,
    speaker: Optional[Speaker] = None,
) -> JarvisController:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect the Google Sheets remote table.
                    Set to False to run local-only.
        speaker: Text-to-speech hook

    Returns:
        A ready JarvisController
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    storage_settings = settings.storage
    local_store = LocalKeyValueStore(storage_settings.data_dir)
    settings_store = SettingsStore(local_store, device_id=storage_settings.device_id)

    remote = None
    if use_storage:
        try:
            remote = GoogleSheetsRecordTable(GoogleSheetsClient())
        except Exception as e:
            # Remote table not configured - continue local-only
            logger.warning("remote_table_unavailable", error=str(e))
            remote = None

    is_online = probe_from_settings(settings.app)
    record_store = RecordStore(
        local_store,
        settings_store,
        remote=remote,
        is_online=is_online,
        audit=SyncAuditLogger(),
    )

    gemini_settings = settings.gemini
    agent = IntentAgent(gemini_settings, profile=settings_store.current.profile)

    return JarvisController(
        record_store,
        settings_store,
        agent,
        is_online=is_online,
        env_api_key=gemini_settings.api_key,
        speaker=speaker,
    )
