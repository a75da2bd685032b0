"""
Pydantic schemas shared by the parser, the pipeline and the API layer.
"""
from datetime import date as date_type
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceType = Literal["email", "phone", "webhook"]
TransactionEvent = Literal["deposit", "withdrawal", "transfer"]
WebhookStatus = Literal["processed", "error", "duplicate"]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParsedMessage(CamelModel):
    """Result of running a free-text bank message through a grammar parser."""

    success: bool
    amount: Optional[Decimal] = None
    sender_name: Optional[str] = None
    account: Optional[str] = None
    date: Optional[date_type] = None
    time: Optional[str] = None  # 24h HH:MM
    error_reason: Optional[str] = None


class ValidationIssue(CamelModel):
    """One failed schema constraint: which field, why, and a stable code."""

    field: str
    message: str
    code: str


class WebhookResponse(CamelModel):
    """Body returned to webhook senders."""

    status: WebhookStatus
    webhook_id: str
    transaction_id: Optional[str] = None
    source_id: Optional[str] = None
    error: Optional[str] = None
    details: Optional[List[ValidationIssue]] = None


class CreateSourceRequest(CamelModel):
    """Body for explicitly registering a source."""

    source_type: SourceType
    source_value: str = Field(..., min_length=1, max_length=255)


class UserSourceRequest(CamelModel):
    """Body for subscribing a user to a source."""

    user_id: str = Field(..., min_length=1, max_length=36)
    source_id: str = Field(..., min_length=1, max_length=36)
