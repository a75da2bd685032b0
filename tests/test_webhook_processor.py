"""
Tests for the webhook processor outcomes.
"""
import json
import logging
from unittest.mock import MagicMock

import pytest

from balances_webhook.core.envelope import FixedWindowRateLimiter
from balances_webhook.core.exceptions import ErrorCode, PersistenceError, SourceResolutionError
from balances_webhook.core.logging import get_correlation_id
from balances_webhook.core.webhook_processor import WebhookProcessor
from balances_webhook.models.parse_error import ParseError
from balances_webhook.models.source import Source
from balances_webhook.models.transaction import Transaction


def encode(payload):
    return json.dumps(payload).encode("utf-8")


class TestStructuredWebhook:

    @pytest.fixture(autouse=True)
    def _processor(self, db_session, test_settings, auth_headers):
        self.db = db_session
        self.headers = auth_headers
        self.processor = WebhookProcessor(db_session, test_settings)

    def test_processed(self, subscribed_source, structured_payload):
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.status == "processed"
        assert outcome.http_status == 200
        assert outcome.webhook_id == "dup-1"
        assert outcome.source_id == subscribed_source.id
        assert outcome.user_ids == ["user-1"]
        assert self.db.query(Transaction).filter_by(id=outcome.transaction_id).count() == 1

    def test_duplicate_returns_the_first_transaction(self, subscribed_source, structured_payload):
        first = self.processor.handle_structured(self.headers, encode(structured_payload))
        second = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert second.status == "duplicate"
        assert second.http_status == 200
        assert second.transaction_id == first.transaction_id
        assert self.db.query(Transaction).count() == 1

    def test_routes_on_normalized_source_to(self, subscribed_source, structured_payload):
        structured_payload["sourceTo"] = "  OWNER@Example.com "
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.status == "processed"
        assert outcome.source_id == subscribed_source.id

    def test_no_subscribers(self, owner_source, structured_payload):
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.status == "error"
        assert outcome.http_status == 404
        assert outcome.error == "No users configured for this source"
        assert outcome.error_code == ErrorCode.NO_SUBSCRIBERS
        assert outcome.source_id == owner_source.id
        assert outcome.to_response()["sourceId"] == owner_source.id
        assert self.db.query(Transaction).count() == 0

    def test_unknown_source_is_created_then_reported_without_subscribers(self, structured_payload):
        structured_payload["sourceTo"] = "+573001234567"
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.http_status == 404
        source = self.db.query(Source).one()
        assert source.source_type == "phone"
        assert outcome.source_id == source.id

    def test_validation_failure(self, subscribed_source, structured_payload):
        structured_payload["amount"] = -100
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.status == "error"
        assert outcome.http_status == 400
        assert outcome.webhook_id == "dup-1"
        assert outcome.error.startswith("Validation failed: amount:")
        assert [issue.field for issue in outcome.details] == ["amount"]

        body = outcome.to_response()
        assert body["details"][0]["field"] == "amount"
        assert body["details"][0]["code"] == "greater_than"
        assert self.db.query(Transaction).count() == 0

    def test_envelope_rejection_touches_nothing(self, structured_payload):
        outcome = self.processor.handle_structured({"Content-Type": "application/json"}, encode(structured_payload))

        assert outcome.http_status == 401
        assert outcome.webhook_id == "unknown"
        assert self.db.query(Source).count() == 0

    def test_invalid_json(self):
        outcome = self.processor.handle_structured(self.headers, b"{broken")

        assert outcome.http_status == 400
        assert outcome.error == "Invalid JSON payload"
        assert outcome.error_code == ErrorCode.INVALID_JSON

    def test_oversized_body(self, structured_payload):
        structured_payload["metadata"] = {"blob": "x" * 20_000}
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))
        assert outcome.http_status == 413

    def test_missing_secret(self, db_session, test_settings, structured_payload):
        processor = WebhookProcessor(db_session, test_settings.model_copy(update={"webhook_secret": ""}))
        outcome = processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.http_status == 500
        assert outcome.error == "Server configuration error"

    def test_rate_limited(self, db_session, test_settings, subscribed_source, structured_payload):
        processor = WebhookProcessor(db_session, test_settings, FixedWindowRateLimiter(1, 60))
        processor.handle_structured(self.headers, encode(structured_payload), peer="10.0.0.1")
        outcome = processor.handle_structured(self.headers, encode(structured_payload), peer="10.0.0.1")

        assert outcome.http_status == 429
        assert outcome.error_code == ErrorCode.RATE_LIMITED

    def test_source_failure(self, subscribed_source, structured_payload):
        self.processor.source_resolver.find_or_create_source = MagicMock(side_effect=SourceResolutionError())
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.http_status == 500
        assert outcome.error == "Failed to process source"

    def test_storage_failure(self, subscribed_source, structured_payload):
        self.processor.transactions.create_transaction = MagicMock(side_effect=PersistenceError())
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.http_status == 500
        assert outcome.error == "Failed to store transaction"
        assert outcome.source_id is None

    def test_unexpected_exception_is_contained(self, subscribed_source, structured_payload):
        self.processor.transactions.create_transaction = MagicMock(side_effect=RuntimeError("boom"))
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert outcome.status == "error"
        assert outcome.http_status == 500
        assert outcome.error == "Internal server error"
        assert "boom" not in json.dumps(outcome.to_response())

    def test_outcome_is_logged_with_correlation_id(self, subscribed_source, structured_payload, caplog):
        caplog.set_level(logging.INFO, logger="balances_webhook.core.webhook_processor")
        outcome = self.processor.handle_structured(self.headers, encode(structured_payload))

        assert get_correlation_id() == "dup-1"
        records = [r for r in caplog.records if getattr(r, "webhook_id", None) == "dup-1"]
        assert len(records) == 1
        assert records[0].outcome == outcome.status
        assert records[0].http_status == 200
        assert records[0].elapsed_ms >= 0


class TestSmsWebhook:

    @pytest.fixture(autouse=True)
    def _processor(self, db_session, test_settings, auth_headers):
        self.db = db_session
        self.headers = auth_headers
        self.settings = test_settings
        self.processor = WebhookProcessor(db_session, test_settings)

    def test_processed(self, sms_payload):
        outcome = self.processor.handle_sms(self.headers, encode(sms_payload))

        assert outcome.status == "processed"
        assert outcome.http_status == 200
        assert "sourceId" not in outcome.to_response()

        txn = self.db.query(Transaction).one()
        assert txn.id == outcome.transaction_id
        assert txn.sender_name == "MARIA CUBAQUE"

        source = self.db.query(Source).one()
        assert (source.source_type, source.source_value) == ("webhook", self.settings.sms_source_value)
        assert txn.source_id == source.id

    def test_no_subscribers_needed(self, sms_payload):
        # Single-tenant path: nobody subscribed and the message is still stored
        assert self.processor.handle_sms(self.headers, encode(sms_payload)).status == "processed"

    def test_duplicate(self, sms_payload):
        first = self.processor.handle_sms(self.headers, encode(sms_payload))
        second = self.processor.handle_sms(self.headers, encode(sms_payload))

        assert second.status == "duplicate"
        assert second.transaction_id == first.transaction_id
        assert self.db.query(Transaction).count() == 1

    def test_parse_failure_is_recorded(self, sms_payload):
        sms_payload["message"] = "Nequi: Recibiste $100,000 de PEDRO LOPEZ"
        outcome = self.processor.handle_sms(self.headers, encode(sms_payload))

        assert outcome.status == "error"
        assert outcome.http_status == 400
        assert outcome.error.startswith("Parse failed: ")
        assert outcome.error_code == ErrorCode.PARSE_ERROR

        record = self.db.query(ParseError).one()
        assert record.webhook_id == "sms-1"
        assert record.raw_message == sms_payload["message"]
        assert record.resolved is False
        assert self.db.query(Transaction).count() == 0

    def test_parse_error_write_failure_does_not_change_the_answer(self, sms_payload):
        sms_payload["message"] = "Nequi: Recibiste $100,000 de PEDRO LOPEZ"
        self.processor.parse_errors.create_parse_error = MagicMock(side_effect=PersistenceError("down"))

        outcome = self.processor.handle_sms(self.headers, encode(sms_payload))

        assert outcome.http_status == 400
        assert outcome.error_code == ErrorCode.PARSE_ERROR

    def test_invalid_payload(self, sms_payload):
        del sms_payload["timestamp"]
        outcome = self.processor.handle_sms(self.headers, encode(sms_payload))

        assert outcome.http_status == 400
        assert outcome.error_code == ErrorCode.VALIDATION_ERROR
        assert self.db.query(ParseError).count() == 0

    def test_sms_size_limit_is_smaller(self, sms_payload):
        sms_payload["message"] = "x" * 1500
        body = encode(sms_payload)
        headers = dict(self.headers, **{"Content-Length": str(len(body) + 10_000)})

        assert self.processor.handle_sms(headers, body).http_status == 413
