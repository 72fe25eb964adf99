"""
Flow tests for the JarvisController.

The agent is a fake that returns queued intents; the record store is the
real one over the in-memory remote table.
"""

from decimal import Decimal

import pytest

from conftest import TODAY, make_record
from production_tracker.agents.intent_agent import RETRY_RESPONSE
from production_tracker.models import (
    CorrectionIntent,
    GeneralChatIntent,
    InstallType,
    LoggingIntent,
    QueryIntent,
    RecordDraft,
    Sender,
    UserProfile,
    UserSettings,
)
from production_tracker.queries import last_batch
from production_tracker.orchestrator import (
    GREETING,
    JarvisController,
    TurnInProgressError,
    TurnState,
    quick_add_confirmation,
)


class FakeAgent:
    def __init__(self):
        self.results = []
        self.contexts = []
        self.configured = []
        self.online_flags = []
        self.fail_with = None

    def configure(self, api_key, profile):
        self.configured.append((api_key, profile))

    async def extract_safe(self, text, recent_context, *, online=True):
        self.contexts.append(recent_context)
        self.online_flags.append(online)
        if self.fail_with is not None:
            raise self.fail_with
        return self.results.pop(0)

    async def validate_api_key(self, api_key):
        return (len(api_key) >= 30, None)


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def spoken():
    return []


@pytest.fixture
def controller(record_store, settings_store, agent, connectivity, spoken):
    return JarvisController(
        record_store,
        settings_store,
        agent,
        is_online=connectivity,
        env_api_key="env-key",
        speaker=lambda text, voice: spoken.append((text, voice.rate)),
        today=lambda: TODAY,
    )


class TestChatTurn:

    def test_starts_with_greeting(self, controller):
        assert [m.text for m in controller.transcript()] == [GREETING]
        assert controller.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self, controller, agent):
        assert await controller.submit_message("   ") is None
        assert len(controller.messages) == 1
        assert agent.contexts == []

    @pytest.mark.asyncio
    async def test_logging_applies_every_draft(self, controller, agent, spoken, remote):
        agent.results.append(LoggingIntent(
            drafts=[
                RecordDraft(type=InstallType.RESIDENTIAL, quantity=3),
                RecordDraft(type=InstallType.POLE, date="2024-03-14"),
            ],
            response_text="Registradas 3 residenciales y 1 poste.",
        ))

        reply = await controller.submit_message("3 residenciales y un poste ayer")

        assert reply.text == "Registradas 3 residenciales y 1 poste."
        assert [m.sender for m in controller.messages] == [
            Sender.ASSISTANT, Sender.USER, Sender.ASSISTANT,
        ]
        assert [r.type for r in controller.records] == [InstallType.RESIDENTIAL] * 3 + [InstallType.POLE]
        assert len(remote.rows) == 4
        assert spoken == [("Registradas 3 residenciales y 1 poste.", 1.1)]
        assert controller.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_amounts_come_from_price_table(self, controller, agent):
        agent.results.append(LoggingIntent(
            drafts=[RecordDraft(type=InstallType.CORPORATE, quantity=2)],
            response_text="Ok",
        ))
        await controller.submit_message("2 corporativos")
        assert [r.amount for r in controller.records] == [Decimal("10"), Decimal("10")]

    @pytest.mark.asyncio
    async def test_query_changes_nothing(self, controller, agent):
        agent.results.append(QueryIntent(response_text="Hoy llevas $0."))
        reply = await controller.submit_message("¿cuánto llevo?")
        assert reply.text == "Hoy llevas $0."
        assert controller.records == []

    @pytest.mark.asyncio
    async def test_context_reflects_latest_records(self, controller, agent):
        await controller.quick_add(InstallType.POLE, 2)
        agent.results.append(GeneralChatIntent(response_text="Hola"))

        await controller.submit_message("hola")

        context = agent.contexts[0]
        assert context.last_type == InstallType.POLE
        assert context.last_batch_size == 2
        assert context.today_total == Decimal("16")

    @pytest.mark.asyncio
    async def test_offline_flag_passed_to_agent(self, controller, agent, connectivity):
        connectivity.online = False
        agent.results.append(GeneralChatIntent(response_text="IA offline"))
        await controller.submit_message("hola")
        assert agent.online_flags == [False]

    @pytest.mark.asyncio
    async def test_failure_ends_idle_with_error_reply(self, controller, agent):
        agent.fail_with = RuntimeError("boom")
        reply = await controller.submit_message("hola")
        assert reply.text == RETRY_RESPONSE
        assert controller.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_second_turn_while_busy_rejected(self, controller):
        controller.state = TurnState.AWAITING_EXTRACTION
        assert controller.is_busy
        with pytest.raises(TurnInProgressError):
            await controller.submit_message("hola")

    @pytest.mark.asyncio
    async def test_silent_when_tts_disabled(self, controller, agent, spoken):
        controller.update_settings(UserSettings(tts_enabled=False))
        agent.results.append(GeneralChatIntent(response_text="Hola"))
        await controller.submit_message("hola")
        assert spoken == []


class TestCorrection:

    @pytest.mark.asyncio
    async def test_shrink_last_batch(self, controller, agent):
        await controller.quick_add(InstallType.CORPORATE, 1)
        await controller.quick_add(InstallType.RESIDENTIAL, 3)
        agent.results.append(CorrectionIntent(new_quantity=1, response_text="Corregido a 1."))

        await controller.submit_message("no, era 1")

        assert [r.type for r in controller.records] == [InstallType.CORPORATE, InstallType.RESIDENTIAL]

    @pytest.mark.asyncio
    async def test_grow_last_batch(self, controller, agent):
        await controller.quick_add(InstallType.POLE, 2)
        agent.results.append(CorrectionIntent(new_quantity=5, response_text="Corregido a 5."))

        await controller.submit_message("eran 5")

        assert len(controller.records) == 5
        assert all(r.type == InstallType.POLE for r in controller.records)

    @pytest.mark.asyncio
    async def test_consecutive_corrections_resize_one_batch(self, controller, agent):
        await controller.quick_add(InstallType.POLE, 3)
        agent.results.append(CorrectionIntent(new_quantity=5, response_text="Corregido a 5."))
        agent.results.append(CorrectionIntent(new_quantity=4, response_text="Corregido a 4."))

        await controller.submit_message("eran 5")
        assert len(last_batch(controller.records)) == 5

        await controller.submit_message("no, eran 4")

        assert len(controller.records) == 4
        assert len(last_batch(controller.records)) == 4

    @pytest.mark.asyncio
    async def test_zero_removes_batch(self, controller, agent):
        await controller.quick_add(InstallType.POLE, 2)
        agent.results.append(CorrectionIntent(new_quantity=0, response_text="Anulado."))

        await controller.submit_message("bórralo")

        assert controller.records == []

    @pytest.mark.asyncio
    async def test_type_mismatch_ignored(self, controller, agent):
        await controller.quick_add(InstallType.POLE, 2)
        agent.results.append(CorrectionIntent(
            new_quantity=1, type=InstallType.SERVICE, response_text="Ok",
        ))

        await controller.submit_message("el servicio era 1")

        assert len(controller.records) == 2


class TestDirectActions:

    def test_confirmation_texts(self):
        assert quick_add_confirmation(InstallType.POLE, 3) == "Registrados 3 servicios de Poste."
        assert quick_add_confirmation(InstallType.RESIDENTIAL, 1) == "Registro de Residencial completado."

    @pytest.mark.asyncio
    async def test_quick_add_confirms_in_chat(self, controller, spoken):
        changes = []
        controller.on_records_changed = changes.append

        message = await controller.quick_add(InstallType.CORPORATE, 2, "2024-03-01")

        assert message.text == "Registrados 2 servicios de Corporativo."
        assert controller.messages[-1] is message
        assert len(controller.records) == 2
        assert changes == [controller.records]
        assert spoken[-1][0] == message.text

    @pytest.mark.asyncio
    async def test_delete_record(self, controller):
        await controller.quick_add(InstallType.RESIDENTIAL, 2)
        target = controller.records[0].id

        await controller.delete_record(target)

        assert target not in [r.id for r in controller.records]

    @pytest.mark.asyncio
    async def test_refresh_picks_up_remote_rows(self, controller, remote):
        remote.seed(make_record(timestamp=1))
        await controller.refresh()
        assert len(controller.records) == 1

    @pytest.mark.asyncio
    async def test_remote_changes_update_records(self, controller, remote):
        controller.subscribe_remote_changes()
        remote.seed(make_record(timestamp=1))
        await remote.notify()
        assert len(controller.records) == 1

    @pytest.mark.asyncio
    async def test_backup_round_trip(self, controller):
        await controller.quick_add(InstallType.POLE, 1)
        exported = controller.export_backup()

        assert await controller.import_backup("not json") is False
        assert await controller.import_backup(exported) is True
        assert controller.export_backup() == exported

    @pytest.mark.asyncio
    async def test_wipe_data(self, controller, remote):
        await controller.quick_add(InstallType.POLE, 3)
        await controller.wipe_data()
        assert controller.records == []
        assert remote.rows == {}

    def test_export_csv(self, controller):
        assert controller.export_csv().startswith("Fecha,Hora,Tipo,Monto,ID")


class TestSettings:

    def test_agent_configured_with_environment_key(self, agent, controller):
        assert agent.configured[0] == ("env-key", UserProfile.INSTALLER)

    def test_update_settings_reconfigures_agent(self, controller, agent, settings_store):
        controller.update_settings(UserSettings(api_key="user-key", profile=UserProfile.TECHNICIAN))

        assert agent.configured[-1] == ("user-key", UserProfile.TECHNICIAN)
        assert settings_store.load().profile == UserProfile.TECHNICIAN

    @pytest.mark.asyncio
    async def test_validate_api_key_uses_environment_key(self, controller):
        assert await controller.validate_api_key("") == (False, None)
