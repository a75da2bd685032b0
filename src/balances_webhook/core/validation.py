"""
Schema validation for inbound webhook payloads, and the source classification
policy shared by the validator and the router.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from ..models.schemas import CamelModel, SourceType, TransactionEvent, ValidationIssue

logger = logging.getLogger(__name__)

# Common validation limits
MAX_MESSAGE_LENGTH = 2000
MAX_SOURCE_VALUE_LENGTH = 255
MAX_SOURCE_NAME_LENGTH = 50
MAX_WEBHOOK_ID_LENGTH = 255
MAX_AMOUNT = 999_999_999_999

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+\d{10,15}$")
WEBHOOK_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"
SOURCE_NAME_PATTERN = r"^[a-z0-9_-]+$"
CURRENCY_PATTERN = r"^[A-Z]{3}$"


# ---------------------------------------------------------------------------
# Source classification policy
# ---------------------------------------------------------------------------

def classify_source_value(value: str) -> SourceType:
    """
    Infer the source type of a routing address.

    Contains '@' -> email, starts with '+' -> phone, anything else is an
    opaque webhook identifier. '@' is checked first, so "+57@x.co" is an email.
    """
    text = value.strip()
    if "@" in text:
        return "email"
    if text.startswith("+"):
        return "phone"
    return "webhook"


def is_valid_source_value(value: str, source_type: SourceType) -> bool:
    """Check a routing address against the shape required for its type."""
    text = value.strip()
    if source_type == "email":
        return EMAIL_PATTERN.match(text) is not None
    if source_type == "phone":
        return PHONE_PATTERN.match(text) is not None
    return len(text) > 0


def normalize_source_value(value: str, source_type: SourceType) -> str:
    """Canonical stored form: emails lower-cased, phones without whitespace, the rest trimmed."""
    if source_type == "email":
        return value.strip().lower()
    if source_type == "phone":
        return re.sub(r"\s+", "", value)
    return value.strip()


def parse_iso_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Any form dateutil's strict ISO parser reads is accepted, including the
    basic format, week dates and comma decimals. A timestamp without an
    offset is taken to be UTC.

    Raises:
        ValueError: If the text is not an ISO-8601 datetime or names an impossible instant
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid ISO 8601 timestamp: {value!r}")

    parsed = isoparse(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _check_timestamp(value: str) -> str:
    try:
        parse_iso_timestamp(value)
    except ValueError:
        raise PydanticCustomError("iso_datetime", "Invalid ISO 8601 timestamp format") from None
    return value


# ---------------------------------------------------------------------------
# Payload schemas
# ---------------------------------------------------------------------------

class StructuredWebhookRequest(CamelModel):
    """Structured (v2) webhook payload. Fields arrive pre-parsed and are only validated."""

    model_config = ConfigDict(extra="forbid")

    source: str = Field(..., min_length=1, max_length=MAX_SOURCE_NAME_LENGTH, pattern=SOURCE_NAME_PATTERN)
    timestamp: str
    source_from: str = Field(..., min_length=1, max_length=MAX_SOURCE_VALUE_LENGTH)
    source_to: str = Field(..., min_length=1, max_length=MAX_SOURCE_VALUE_LENGTH)
    event: TransactionEvent
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    amount: float = Field(..., gt=0, le=MAX_AMOUNT, strict=True, allow_inf_nan=False)
    currency: str = Field("COP", min_length=3, max_length=3, pattern=CURRENCY_PATTERN)
    webhook_id: str = Field(..., min_length=1, max_length=MAX_WEBHOOK_ID_LENGTH, pattern=WEBHOOK_ID_PATTERN)
    metadata: Optional[Dict[str, Any]] = None  # Passed through untouched

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        return _check_timestamp(v)

    @field_validator("source_from", "source_to")
    @classmethod
    def validate_source_value(cls, v: str) -> str:
        if not is_valid_source_value(v, classify_source_value(v)):
            raise PydanticCustomError("source_value_format", "Invalid source value format")
        return v

    @property
    def amount_decimal(self) -> Decimal:
        """Amount as a Decimal, built from its shortest repr so no float noise leaks in."""
        return Decimal(str(self.amount))

    def metadata_text(self, key: str) -> Optional[str]:
        """Return a metadata value if the caller sent it as a non-empty string."""
        value = (self.metadata or {}).get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class SmsWebhookRequest(CamelModel):
    """Free-text (v1) webhook payload carrying a raw bank SMS."""

    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    timestamp: str
    phone: str = Field(
        ...,
        min_length=1,
        max_length=MAX_SOURCE_VALUE_LENGTH,
        validation_alias=AliasChoices("phone", "contact"),
    )
    webhook_id: str = Field(..., min_length=1, max_length=MAX_WEBHOOK_ID_LENGTH, pattern=WEBHOOK_ID_PATTERN)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        return _check_timestamp(v)


# ---------------------------------------------------------------------------
# Validation entry points
# ---------------------------------------------------------------------------

@dataclass
class ValidationResult:
    """Outcome of validating one payload: typed data, or the list of failed constraints."""

    success: bool
    data: Optional[BaseModel] = None
    errors: List[ValidationIssue] = field(default_factory=list)


def format_validation_errors(error: ValidationError) -> List[ValidationIssue]:
    """Flatten a pydantic ValidationError into (field, message, code) triples."""
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "body"
        issues.append(ValidationIssue(field=location, message=err["msg"], code=err["type"]))
    return issues


def _validate(model: type, payload: Any) -> ValidationResult:
    try:
        return ValidationResult(success=True, data=model.model_validate(payload))
    except ValidationError as e:
        issues = format_validation_errors(e)
        logger.info(
            f"{model.__name__} validation failed: "
            + ", ".join(f"{issue.field}: {issue.message}" for issue in issues)
        )
        return ValidationResult(success=False, errors=issues)


def validate_structured_payload(payload: Any) -> ValidationResult:
    """Validate a decoded JSON value against the structured webhook schema."""
    return _validate(StructuredWebhookRequest, payload)


def validate_sms_payload(payload: Any) -> ValidationResult:
    """Validate a decoded JSON value against the free-text webhook schema."""
    return _validate(SmsWebhookRequest, payload)
