"""
Intent models for the conversational assistant.

The assistant's reply is untrusted. It is validated against a closed set of
variants, tagged by `intent`:

    LOGGING      -> record drafts to create
    QUERY        -> question about production, answered in text only
    CORRECTION   -> change the size of the last logged batch
    GENERAL_CHAT -> small talk, nothing to apply

Wire field names follow the JSON schema sent to the model
(`jarvisResponse`, `newQuantity`, `manualAmount`); Python code uses the
snake_case attribute names.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from production_tracker.models.record import (
    CalendarDay,
    InstallType,
    parse_effective_date,
)


class IntentType(str, Enum):
    LOGGING = "LOGGING"
    QUERY = "QUERY"
    CORRECTION = "CORRECTION"
    GENERAL_CHAT = "GENERAL_CHAT"


class ExtractionParseError(ValueError):
    """The assistant's reply did not match the expected schema."""
    pass


class RecordDraft(BaseModel):
    """A record the assistant proposes. The RecordStore decides the rest."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    type: InstallType
    quantity: Optional[int] = Field(default=None, ge=1)
    date: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None, max_length=500)
    manual_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        alias="manualAmount",
    )

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        """Reject dates we could not hand to the RecordStore."""
        if v is None or not v.strip():
            return None
        parse_effective_date(v)
        return v.strip()

    @property
    def effective_quantity(self) -> int:
        return self.quantity or 1

    @property
    def effective_date(self) -> Optional[CalendarDay]:
        return parse_effective_date(self.date) if self.date else None


class _IntentBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_text: str = Field(
        default="",
        alias="jarvisResponse",
    )


class LoggingIntent(_IntentBase):
    intent: Literal["LOGGING"] = "LOGGING"
    drafts: list[RecordDraft] = Field(default_factory=list, alias="records")


class QueryIntent(_IntentBase):
    intent: Literal["QUERY"] = "QUERY"


class CorrectionIntent(_IntentBase):
    intent: Literal["CORRECTION"] = "CORRECTION"
    new_quantity: int = Field(..., ge=0, alias="newQuantity")
    type: Optional[InstallType] = None


class GeneralChatIntent(_IntentBase):
    intent: Literal["GENERAL_CHAT"] = "GENERAL_CHAT"


ExtractionResult = Annotated[
    Union[LoggingIntent, QueryIntent, CorrectionIntent, GeneralChatIntent],
    Field(discriminator="intent"),
]

_RESULT_ADAPTER: TypeAdapter = TypeAdapter(ExtractionResult)


def parse_extraction(raw: str) -> ExtractionResult:
    """
    Strictly parse the assistant's JSON reply.

    Raises:
        ExtractionParseError: If the text is not JSON or does not match
            any intent variant.
    """
    try:
        data = json.loads(raw.strip() or "{}")
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f"Reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionParseError("Reply must be a JSON object")

    # Non-logging replies often carry an empty "records" array; ignore it
    if data.get("intent") != IntentType.LOGGING.value:
        data.pop("records", None)

    try:
        return _RESULT_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ExtractionParseError(f"Reply does not match schema: {e}") from e


def general_chat(text: str) -> GeneralChatIntent:
    """Build a plain text reply that applies nothing."""
    return GeneralChatIntent(response_text=text)


# JSON schema sent to the model with every session
RESPONSE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "enum": [i.value for i in IntentType],
        },
        "records": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": [t.value for t in InstallType]},
                    "quantity": {"type": "integer"},
                    "date": {"type": "string"},
                    "description": {"type": "string"},
                    "manualAmount": {"type": "number"},
                },
                "required": ["type"],
            },
        },
        "newQuantity": {"type": "integer"},
        "type": {"type": "string", "enum": [t.value for t in InstallType]},
        "jarvisResponse": {"type": "string"},
    },
    "required": ["intent", "jarvisResponse"],
}
