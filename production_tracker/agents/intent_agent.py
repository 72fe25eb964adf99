"""
Intent Extraction Agent

DESIGN DECISION: The LLM is a TRANSLATOR, not a bookkeeper.
It turns what the technician says ("hoy hice 3 residenciales y un poste")
into a structured intent. It never computes amounts and never writes
records: the controller applies the intent through the RecordStore,
which prices every record from the user's price table.

CRITICAL BOUNDARIES:
- CAN: Classify the message (LOGGING, QUERY, CORRECTION, GENERAL_CHAT)
- CAN: Propose record drafts (type, quantity, date, description)
- CAN: Answer questions FROM the context it is given
- CANNOT: Invent prices or totals that are not in the context
- CANNOT: Persist anything

The reply is untrusted text. It is parsed into the closed set of intent
variants in production_tracker.models.intent; anything else is a parse
error, never a silent default.

The chat session is an explicit object owned by the agent. It is reset
whenever the API key or the user profile changes, and after any failure.
"""

import json
from datetime import date
from decimal import Decimal
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel

from production_tracker.audit import get_logger
from production_tracker.config import GeminiSettings, get_settings
from production_tracker.models.intent import (
    RESPONSE_SCHEMA,
    ExtractionParseError,
    ExtractionResult,
    general_chat,
    parse_extraction,
)
from production_tracker.models.preferences import UserProfile
from production_tracker.models.record import (
    TYPE_LABELS,
    InstallationRecord,
    InstallType,
)
from production_tracker.queries.stats import dashboard_stats, last_batch
from production_tracker.services.settings_store import clean_api_key


logger = get_logger(__name__)

OFFLINE_RESPONSE = "IA offline, usa el registro manual."
CREDENTIAL_RESPONSE = (
    "No tengo una API key válida. Configúrala en Ajustes para usar el asistente."
)
RETRY_RESPONSE = "Error de conexión con la IA. Inténtalo de nuevo."

MIN_API_KEY_LENGTH = 30


# =============================================================================
# EXCEPTIONS
# =============================================================================

class IntentExtractionError(Exception):
    """The AI service failed to produce a reply."""
    pass


class CredentialError(IntentExtractionError):
    """No API key, or the AI service rejected it."""
    pass


# =============================================================================
# PROMPT CONTEXT
# =============================================================================

class RecentContext(BaseModel):
    """What the assistant is told about the technician's latest work."""

    today: date
    last_type: Optional[InstallType] = None
    last_date: Optional[date] = None
    last_batch_size: int = 0
    today_total: Decimal = Decimal("0")
    today_count: int = 0
    month_total: Decimal = Decimal("0")

    def describe(self) -> str:
        lines = [f"Hoy es {self.today.isoformat()}."]
        if self.last_type is not None:
            lines.append(
                f"Último registro: {TYPE_LABELS[self.last_type]} ({self.last_type.value}) "
                f"del {self.last_date.isoformat()}, lote de {self.last_batch_size}."
            )
        else:
            lines.append("Todavía no hay registros.")
        lines.append(
            f"Producción de hoy: {self.today_count} registros, ${self.today_total}. "
            f"Total del mes: ${self.month_total}."
        )
        return "\n".join(lines)


def build_recent_context(records: list[InstallationRecord], today: date) -> RecentContext:
    """Summarise the record list for the next assistant turn."""
    stats = dashboard_stats(records, today)
    batch = last_batch(records)
    newest = batch[-1] if batch else None
    return RecentContext(
        today=today,
        last_type=newest.type if newest else None,
        last_date=newest.date if newest else None,
        last_batch_size=len(batch),
        today_total=stats.today_total,
        today_count=stats.today_count,
        month_total=stats.month_total,
    )


# Spoken names the technicians use, mapped to the record type
TYPE_SYNONYMS: dict[InstallType, list[str]] = {
    InstallType.RESIDENTIAL: ["residencial", "casa", "hogar", "instalación residencial"],
    InstallType.CORPORATE: ["corporativo", "corp", "empresa", "instalación corporativa"],
    InstallType.POLE: ["poste", "postes", "tendido en poste"],
    InstallType.SERVICE: [
        "servicio", "servicio básico", "recableado", "mudanza", "relocalización",
        "reparación", "visita técnica",
    ],
}


def build_system_instruction(profile: UserProfile) -> str:
    """System prompt: persona, intents, type vocabulary and reply schema."""
    role = "Técnico de Servicio" if profile == UserProfile.TECHNICIAN else "Instalador de Fibra"
    vocabulary = "\n".join(
        f'- {", ".join(f"{word!r}" for word in words)} -> {install_type.value}'
        for install_type, words in TYPE_SYNONYMS.items()
    )
    return f"""Eres Jarvis, asistente de producción de un técnico de fibra óptica. Usuario: {role}.

INTENCIONES:
1. LOGGING: el usuario informa trabajo hecho. Devuelve un elemento en "records" por cada tipo mencionado, con su cantidad.
   - "date" solo si menciona otro día (formato YYYY-MM-DD, relativo a la fecha de hoy del contexto).
   - Para servicios con monto dicho explícitamente usa "manualAmount" y "description".
   - Nunca calcules montos: los precios los pone la aplicación.
2. QUERY: pregunta sobre su producción. Responde SOLO con los datos del contexto. Si no están, dilo.
3. CORRECTION: corrige la cantidad del último registro ("no, eran 2"). Usa "newQuantity" con la cantidad correcta (0 para anularlo). Si el usuario nombra el tipo, inclúyelo en "type".
4. GENERAL_CHAT: cualquier otra cosa.

TIPOS VÁLIDOS Y SINÓNIMOS:
{vocabulary}

Responde SIEMPRE con un objeto JSON que cumpla este esquema:
{json.dumps(RESPONSE_SCHEMA, ensure_ascii=False)}

"jarvisResponse" es una respuesta breve, profesional y confirmatoria en español."""


def build_turn_message(text: str, context: RecentContext) -> str:
    return f"CONTEXTO:\n{context.describe()}\n\nMENSAJE: {json.dumps(text, ensure_ascii=False)}"


# =============================================================================
# CHAT SESSION
# =============================================================================

class ChatSession:
    """
    The assistant conversation, created lazily.

    Holds the underlying Gemini chat until `reset()`; the next turn then
    starts a fresh conversation with the current key and profile.
    """

    def __init__(self, settings: GeminiSettings):
        self._settings = settings
        self._chat = None

    @property
    def initialized(self) -> bool:
        return self._chat is not None

    def reset(self) -> None:
        self._chat = None

    def get(self, api_key: str, profile: UserProfile):
        """Return the live chat, creating it if needed."""
        if self._chat is None:
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(
                model_name=self._settings.model_name,
                system_instruction=build_system_instruction(profile),
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                    "response_mime_type": "application/json",
                },
            )
            self._chat = model.start_chat(history=[])
        return self._chat

    def trim(self) -> None:
        """Keep only the configured number of turns."""
        if self._chat is None:
            return
        keep = self._settings.history_turns * 2  # user + model per turn
        history = list(self._chat.history)
        if len(history) > keep:
            self._chat.history = history[len(history) - keep:] if keep else []


# =============================================================================
# AGENT
# =============================================================================

def _is_credential_failure(e: Exception) -> bool:
    if isinstance(e, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
        return True
    if isinstance(e, google_exceptions.InvalidArgument):
        return "api key" in str(e).lower() or "api_key" in str(e).lower()
    return False


class IntentAgent:
    """
    Turns one chat message into a validated intent.

    RESPONSIBILITIES:
    - Build the session with persona and schema
    - Send the message with explicit recent context
    - Parse the reply strictly

    BOUNDARIES:
    - NEVER writes records
    - NEVER calls the network when offline
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        profile: UserProfile = UserProfile.INSTALLER,
    ):
        self._settings = settings or get_settings().gemini
        self._api_key = clean_api_key(self._settings.api_key)
        self._profile = profile
        self.session = ChatSession(self._settings)

    def configure(self, api_key: str, profile: UserProfile) -> None:
        """Use a new key/profile. The session restarts if either changed."""
        api_key = clean_api_key(api_key)
        if api_key != self._api_key or profile != self._profile:
            self.session.reset()
        self._api_key = api_key
        self._profile = profile

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    async def extract(
        self,
        text: str,
        recent_context: RecentContext,
        *,
        online: bool = True,
    ) -> ExtractionResult:
        """
        Classify `text` and extract its intent.

        Args:
            text: The technician's message
            recent_context: Summary of the latest records and totals
            online: False returns the offline reply without any network call

        Returns:
            One of the intent variants

        Raises:
            CredentialError: No key configured, or the key was rejected
            ExtractionParseError: The reply did not match the schema
            IntentExtractionError: Any other AI service failure
        """
        if not online:
            return general_chat(OFFLINE_RESPONSE)
        if not self._api_key:
            raise CredentialError("No API key configured")

        try:
            chat = self.session.get(self._api_key, self._profile)
            response = await chat.send_message_async(build_turn_message(text, recent_context))
            raw = response.text or "{}"
        except Exception as e:
            self.session.reset()
            if _is_credential_failure(e):
                logger.warning("intent_credentials_rejected", error=str(e))
                raise CredentialError(str(e)) from e
            logger.error("intent_extraction_failed", error=str(e))
            raise IntentExtractionError(str(e)) from e

        try:
            result = parse_extraction(raw)
        except ExtractionParseError as e:
            self.session.reset()
            logger.warning("intent_reply_rejected", error=str(e), raw=raw[:500])
            raise

        self.session.trim()
        logger.info("intent_extracted", intent=result.intent)
        return result

    async def extract_safe(
        self,
        text: str,
        recent_context: RecentContext,
        *,
        online: bool = True,
    ) -> ExtractionResult:
        """Like extract(), but failures become a user-facing chat reply."""
        try:
            return await self.extract(text, recent_context, online=online)
        except CredentialError:
            return general_chat(CREDENTIAL_RESPONSE)
        except (IntentExtractionError, ExtractionParseError):
            return general_chat(RETRY_RESPONSE)

    async def validate_api_key(self, raw_key: str) -> tuple[bool, Optional[str]]:
        """
        Check a key with a minimal request.

        Returns:
            (valid, error message or None)
        """
        api_key = clean_api_key(raw_key)
        if len(api_key) < MIN_API_KEY_LENGTH:
            return False, "Key inválida"
        try:
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(model_name=self._settings.model_name)
            await model.generate_content_async("Hi")
        except Exception as e:
            logger.warning("api_key_validation_failed", error=str(e))
            return False, "Error de validación"
        finally:
            # The probe reconfigured the client; the chat must follow the real key
            self.session.reset()
            if self._api_key:
                genai.configure(api_key=self._api_key)
        return True, None
