"""Tests for the intent extraction agent (Gemini mocked)."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import TODAY, make_record
from production_tracker.agents import (
    CredentialError,
    IntentAgent,
    IntentExtractionError,
    RecentContext,
    build_recent_context,
    build_system_instruction,
)
from production_tracker.agents.intent_agent import (
    CREDENTIAL_RESPONSE,
    OFFLINE_RESPONSE,
    RETRY_RESPONSE,
)
from production_tracker.config import GeminiSettings
from production_tracker.models import (
    ExtractionParseError,
    GeneralChatIntent,
    InstallType,
    LoggingIntent,
    UserProfile,
)


VALID_KEY = "AIzaSy" + "x" * 33


def make_agent(api_key: str = VALID_KEY) -> IntentAgent:
    return IntentAgent(GeminiSettings(api_key=api_key, history_turns=2))


def mock_genai(reply: str = "{}", side_effect=None):
    """Patch the Gemini module; returns (patcher, chat mock)."""
    genai = MagicMock()
    chat = MagicMock()
    chat.history = []
    if side_effect is not None:
        chat.send_message_async = AsyncMock(side_effect=side_effect)
    else:
        chat.send_message_async = AsyncMock(return_value=MagicMock(text=reply))
    genai.GenerativeModel.return_value.start_chat.return_value = chat
    return patch("production_tracker.agents.intent_agent.genai", genai), genai, chat


CONTEXT = RecentContext(today=TODAY)


class TestExtract:

    @pytest.mark.asyncio
    async def test_offline_short_circuits(self):
        patcher, genai, chat = mock_genai()
        with patcher:
            result = await make_agent().extract("3 residenciales", CONTEXT, online=False)

        assert isinstance(result, GeneralChatIntent)
        assert result.response_text == OFFLINE_RESPONSE
        genai.GenerativeModel.assert_not_called()
        chat.send_message_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_logging_reply_parsed(self):
        reply = (
            '{"intent": "LOGGING", "records": [{"type": "RESIDENTIAL", "quantity": 3}],'
            ' "jarvisResponse": "Registradas 3 residenciales."}'
        )
        patcher, genai, chat = mock_genai(reply)
        with patcher:
            result = await make_agent().extract("hice 3 residenciales", CONTEXT)

        assert isinstance(result, LoggingIntent)
        assert result.drafts[0].type == InstallType.RESIDENTIAL
        assert result.drafts[0].quantity == 3
        genai.configure.assert_called_with(api_key=VALID_KEY)
        sent = chat.send_message_async.call_args.args[0]
        assert "hice 3 residenciales" in sent
        assert "2024-03-15" in sent

    @pytest.mark.asyncio
    async def test_session_reused_across_turns(self):
        patcher, genai, _ = mock_genai('{"intent": "GENERAL_CHAT", "jarvisResponse": "Hola"}')
        agent = make_agent()
        with patcher:
            await agent.extract("hola", CONTEXT)
            await agent.extract("hola otra vez", CONTEXT)

        assert genai.GenerativeModel.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_is_credential_error(self):
        patcher, genai, _ = mock_genai()
        with patcher:
            with pytest.raises(CredentialError):
                await make_agent(api_key="").extract("hola", CONTEXT)
        genai.GenerativeModel.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_key_is_credential_error(self):
        patcher, _, _ = mock_genai(side_effect=google_exceptions.PermissionDenied("API key not valid"))
        agent = make_agent()
        with patcher:
            with pytest.raises(CredentialError):
                await agent.extract("hola", CONTEXT)
        assert agent.session.initialized is False

    @pytest.mark.asyncio
    async def test_other_failures_are_extraction_errors(self):
        patcher, _, _ = mock_genai(side_effect=RuntimeError("socket closed"))
        agent = make_agent()
        with patcher:
            with pytest.raises(IntentExtractionError):
                await agent.extract("hola", CONTEXT)
        assert agent.session.initialized is False

    @pytest.mark.asyncio
    async def test_malformed_reply_is_parse_error(self):
        patcher, _, _ = mock_genai('{"intent": "LOGGING", "records": [{"type": "ROOF"}]}')
        agent = make_agent()
        with patcher:
            with pytest.raises(ExtractionParseError):
                await agent.extract("hola", CONTEXT)
        assert agent.session.initialized is False

    @pytest.mark.asyncio
    async def test_history_trimmed_to_configured_turns(self):
        patcher, _, chat = mock_genai('{"intent": "GENERAL_CHAT", "jarvisResponse": "Hola"}')
        chat.history = list(range(10))
        with patcher:
            await make_agent().extract("hola", CONTEXT)
        assert chat.history == [6, 7, 8, 9]


class TestExtractSafe:

    @pytest.mark.asyncio
    async def test_credential_message(self):
        result = await make_agent(api_key="").extract_safe("hola", CONTEXT)
        assert result.response_text == CREDENTIAL_RESPONSE

    @pytest.mark.asyncio
    async def test_retry_message(self):
        patcher, _, _ = mock_genai("not json")
        with patcher:
            result = await make_agent().extract_safe("hola", CONTEXT)
        assert isinstance(result, GeneralChatIntent)
        assert result.response_text == RETRY_RESPONSE


class TestConfigure:

    def test_new_key_resets_session(self):
        patcher, _, _ = mock_genai()
        agent = make_agent()
        with patcher:
            agent.session.get(VALID_KEY, UserProfile.INSTALLER)
        assert agent.session.initialized

        agent.configure(VALID_KEY, UserProfile.INSTALLER)
        assert agent.session.initialized

        agent.configure(VALID_KEY, UserProfile.TECHNICIAN)
        assert agent.session.initialized is False

    def test_system_instruction_mentions_profile_and_types(self):
        text = build_system_instruction(UserProfile.TECHNICIAN)
        assert "Técnico de Servicio" in text
        for install_type in InstallType:
            assert install_type.value in text
        assert "jarvisResponse" in text


class TestValidateApiKey:

    @pytest.mark.asyncio
    async def test_short_key_rejected_without_network(self):
        patcher, genai, _ = mock_genai()
        with patcher:
            assert await make_agent().validate_api_key("short") == (False, "Key inválida")
        genai.GenerativeModel.assert_not_called()

    @pytest.mark.asyncio
    async def test_working_key(self):
        patcher, genai, _ = mock_genai()
        genai.GenerativeModel.return_value.generate_content_async = AsyncMock()
        with patcher:
            assert await make_agent().validate_api_key(f"  {VALID_KEY}\n") == (True, None)

    @pytest.mark.asyncio
    async def test_failing_key(self):
        patcher, genai, _ = mock_genai()
        genai.GenerativeModel.return_value.generate_content_async = AsyncMock(
            side_effect=google_exceptions.Unauthenticated("bad key")
        )
        with patcher:
            assert await make_agent().validate_api_key(VALID_KEY) == (False, "Error de validación")


class TestRecentContext:

    def test_context_from_records(self):
        records = [
            make_record(install_type="POLE", amount="8", day=date(2024, 3, 14), timestamp=10),
            make_record(timestamp=20),
            make_record(timestamp=21),
        ]
        context = build_recent_context(records, TODAY)

        assert context.last_type == InstallType.RESIDENTIAL
        assert context.last_date == TODAY
        assert context.last_batch_size == 2
        assert context.today_total == Decimal("14")
        assert context.month_total == Decimal("22")
        assert "Residencial" in context.describe()

    def test_context_without_records(self):
        context = build_recent_context([], TODAY)
        assert context.last_type is None
        assert "no hay registros" in context.describe()
