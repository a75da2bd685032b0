"""
Webhook processor for orchestrating the ingest workflow.

One call handles one delivery end to end: envelope checks, payload validation
or free-text parsing, source resolution, idempotent storage. Every failure is
turned into a WebhookOutcome here, so callers never see an exception.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from config.settings import Settings
from .envelope import FixedWindowRateLimiter, client_ip, validate_envelope
from .exceptions import (
    ErrorCode,
    MessageParseError,
    NoSubscribersError,
    PayloadValidationError,
    PersistenceError,
    WebhookError,
)
from .logging import set_correlation_id
from .parse_error_repository import ParseErrorRepository
from .source_resolver import SourceResolver
from .transaction_repository import TransactionRepository
from .validation import (
    SmsWebhookRequest,
    StructuredWebhookRequest,
    classify_source_value,
    validate_sms_payload,
    validate_structured_payload,
)
from ..models.schemas import ValidationIssue, WebhookResponse
from ..parsers.bancolombia_parser import parse_bancolombia_sms

logger = logging.getLogger(__name__)

UNKNOWN_WEBHOOK_ID = "unknown"


@dataclass
class WebhookOutcome:
    """Terminal result of one delivery, with the HTTP status it maps to."""

    status: str
    http_status: int
    webhook_id: str
    transaction_id: Optional[str] = None
    source_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    details: Optional[List[ValidationIssue]] = None
    user_ids: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        """Response body in camelCase with absent fields left out."""
        response = WebhookResponse(
            status=self.status,
            webhook_id=self.webhook_id,
            transaction_id=self.transaction_id,
            source_id=self.source_id,
            error=self.error,
            details=self.details,
        )
        return response.model_dump(by_alias=True, exclude_none=True)


def _peek_webhook_id(data: Any) -> str:
    # Best effort before validation, so even rejected payloads are traceable
    if isinstance(data, dict):
        value = data.get("webhookId")
        if isinstance(value, str) and value:
            return value[:255]
    return UNKNOWN_WEBHOOK_ID


class WebhookProcessor:
    """Main processor for handling webhook deliveries."""

    def __init__(self, db: Session, settings: Settings, rate_limiter: Optional[FixedWindowRateLimiter] = None):
        self.db = db
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.source_resolver = SourceResolver(db)
        self.transactions = TransactionRepository(db)
        self.parse_errors = ParseErrorRepository(db)

    def handle_structured(self, headers: Mapping[str, str], body: bytes, peer: Optional[str] = None) -> WebhookOutcome:
        """
        Process a structured (v2) delivery.

        Args:
            headers: Request headers
            body: Raw request body
            peer: Socket address of the caller, used when no proxy header is present

        Returns:
            The outcome; processed and duplicate both map to 200
        """
        started = time.perf_counter()
        set_correlation_id()
        webhook_id = UNKNOWN_WEBHOOK_ID

        try:
            data = validate_envelope(
                headers,
                body,
                client_ip(headers, peer),
                webhook_secret=self.settings.webhook_secret,
                max_payload_bytes=self.settings.structured_max_payload_bytes,
                max_request_age=timedelta(minutes=self.settings.structured_max_request_age_minutes),
                rate_limiter=self.rate_limiter,
            )
            webhook_id = _peek_webhook_id(data)
            set_correlation_id(webhook_id)

            result = validate_structured_payload(data)
            if not result.success:
                raise PayloadValidationError(result.errors, webhook_id)
            payload: StructuredWebhookRequest = result.data

            source_type = classify_source_value(payload.source_to)
            source = self.source_resolver.find_or_create_source(source_type, payload.source_to)

            user_ids = self.source_resolver.get_users_for_source(source.id)
            if not user_ids:
                raise NoSubscribersError(source.id)

            stored = self.transactions.create_transaction(source.id, payload)
            outcome = WebhookOutcome(
                status="processed" if stored.created else "duplicate",
                http_status=200,
                webhook_id=webhook_id,
                transaction_id=stored.transaction.id,
                source_id=source.id,
                user_ids=user_ids,
            )

        except WebhookError as e:
            outcome = self._error_outcome(e, webhook_id)
        except Exception as e:
            logger.exception(f"Unhandled error processing structured webhook {webhook_id}: {e}")
            outcome = self._internal_error(webhook_id)

        self._log_outcome("structured", outcome, started)
        return outcome

    def handle_sms(self, headers: Mapping[str, str], body: bytes, peer: Optional[str] = None) -> WebhookOutcome:
        """
        Process a free-text (v1) delivery carrying a raw bank SMS.

        A message that does not parse is recorded as a ParseError and answered
        with 400. Every parsed message lands on the single configured SMS source.
        """
        started = time.perf_counter()
        set_correlation_id()
        webhook_id = UNKNOWN_WEBHOOK_ID

        try:
            data = validate_envelope(
                headers,
                body,
                client_ip(headers, peer),
                webhook_secret=self.settings.webhook_secret,
                max_payload_bytes=self.settings.sms_max_payload_bytes,
                max_request_age=timedelta(minutes=self.settings.sms_max_request_age_minutes),
                rate_limiter=self.rate_limiter,
            )
            webhook_id = _peek_webhook_id(data)
            set_correlation_id(webhook_id)

            result = validate_sms_payload(data)
            if not result.success:
                raise PayloadValidationError(result.errors, webhook_id)
            request: SmsWebhookRequest = result.data

            existing = self.transactions.get_transaction_by_webhook_id(webhook_id)
            if existing is not None:
                outcome = WebhookOutcome(
                    status="duplicate",
                    http_status=200,
                    webhook_id=webhook_id,
                    transaction_id=existing.id,
                )
            else:
                parsed = parse_bancolombia_sms(request.message)
                if not parsed.success:
                    self._record_parse_error(request, parsed.error_reason)
                    raise MessageParseError(parsed.error_reason)

                source = self.source_resolver.find_or_create_source("webhook", self.settings.sms_source_value)
                stored = self.transactions.create_sms_transaction(
                    source.id, parsed, request, currency=self.settings.default_currency
                )
                outcome = WebhookOutcome(
                    status="processed" if stored.created else "duplicate",
                    http_status=200,
                    webhook_id=webhook_id,
                    transaction_id=stored.transaction.id,
                )

        except WebhookError as e:
            outcome = self._error_outcome(e, webhook_id)
        except Exception as e:
            logger.exception(f"Unhandled error processing SMS webhook {webhook_id}: {e}")
            outcome = self._internal_error(webhook_id)

        self._log_outcome("sms", outcome, started)
        return outcome

    def _record_parse_error(self, request: SmsWebhookRequest, reason: str) -> None:
        # Losing the audit row must not change the answer the sender gets
        try:
            self.parse_errors.create_parse_error(request.message, reason, request.webhook_id)
        except PersistenceError as e:
            logger.error(f"Parse error for webhook {request.webhook_id} not recorded: {e.message}")

    def _error_outcome(self, error: WebhookError, webhook_id: str) -> WebhookOutcome:
        outcome = WebhookOutcome(
            status="error",
            http_status=error.status_code,
            webhook_id=webhook_id,
            error=error.message,
            error_code=error.error_code,
        )
        if isinstance(error, NoSubscribersError):
            outcome.source_id = error.source_id
        if isinstance(error, PayloadValidationError):
            outcome.details = error.issues
        return outcome

    def _internal_error(self, webhook_id: str) -> WebhookOutcome:
        return WebhookOutcome(
            status="error",
            http_status=500,
            webhook_id=webhook_id,
            error="Internal server error",
            error_code=ErrorCode.INTERNAL_ERROR,
        )

    def _log_outcome(self, path: str, outcome: WebhookOutcome, started: float) -> None:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        extra = {
            "webhook_id": outcome.webhook_id,
            "outcome": outcome.status,
            "http_status": outcome.http_status,
            "elapsed_ms": elapsed_ms,
        }
        if outcome.status == "error":
            extra["error_code"] = outcome.error_code.value if outcome.error_code else None
            level = logging.ERROR if outcome.http_status >= 500 else logging.WARNING
            logger.log(
                level,
                f"{path} webhook {outcome.webhook_id} failed ({outcome.http_status}): {outcome.error} in {elapsed_ms}ms",
                extra=extra,
            )
        else:
            extra["transaction_id"] = outcome.transaction_id
            extra["users_notified"] = len(outcome.user_ids)
            logger.info(
                f"{path} webhook {outcome.webhook_id} {outcome.status}: "
                f"transaction {outcome.transaction_id} in {elapsed_ms}ms",
                extra=extra,
            )
