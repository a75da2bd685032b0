"""
Tests for the Bancolombia SMS parser.
"""
from datetime import date
from decimal import Decimal

import pytest

from balances_webhook.parsers.bancolombia_parser import BancolombiaParser, parse_bancolombia_sms
from balances_webhook.parsers.base_parser import BaseParser

VALID_SMS = (
    "Bancolombia: Recibiste una transferencia por $190,000 de MARIA CUBAQUE "
    "en tu cuenta **7251, el 04/09/2025 a las 08:06"
)


def make_sms(amount="190,000", sender="MARIA CUBAQUE", account="7251", day="04/09/2025", time="08:06"):
    return (
        f"Bancolombia: Recibiste una transferencia por ${amount} de {sender} "
        f"en tu cuenta **{account}, el {day} a las {time}"
    )


class TestBancolombiaParser:
    """Test Bancolombia parser functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.parser = BancolombiaParser()

    def test_parses_transfer_notification(self):
        result = self.parser.parse(VALID_SMS)

        assert result.success is True
        assert result.amount == Decimal("190000")
        assert result.sender_name == "MARIA CUBAQUE"
        assert result.account == "7251"
        assert result.date == date(2025, 9, 4)
        assert result.time == "08:06"
        assert result.error_reason is None

    def test_amount_with_cents(self):
        result = self.parser.parse(make_sms(amount="1,250.50"))
        assert result.success is True
        assert result.amount == Decimal("1250.50")

    def test_amount_with_several_thousands_groups(self):
        result = self.parser.parse(make_sms(amount="12,345,678"))
        assert result.amount == Decimal("12345678")

    def test_accented_sender_name(self):
        result = self.parser.parse(make_sms(sender="JOSÉ PEÑA"))
        assert result.success is True
        assert result.sender_name == "JOSÉ PEÑA"

    def test_surrounding_whitespace_and_trailing_period(self):
        result = self.parser.parse(f"  {VALID_SMS}.  ")
        assert result.success is True
        assert result.time == "08:06"

    def test_rejects_other_bank(self):
        result = self.parser.parse("Nequi: Recibiste $100,000 de PEDRO LOPEZ")

        assert result.success is False
        assert result.error_reason
        assert result.amount is None

    def test_rejects_other_bancolombia_template(self):
        result = self.parser.parse("Bancolombia: Pagaste $50,000 a TIENDA XYZ desde tu cuenta **7251")

        assert result.success is False
        assert "template" in result.error_reason

    @pytest.mark.parametrize("day", ["32/13/2025", "31/02/2025", "00/09/2025"])
    def test_impossible_date_is_a_failure(self, day):
        result = self.parser.parse(make_sms(day=day))

        assert result.success is False
        assert result.error_reason == f"Invalid date: {day}"

    def test_leap_day(self):
        result = self.parser.parse(make_sms(day="29/02/2024"))
        assert result.date == date(2024, 2, 29)

    @pytest.mark.parametrize("time", ["24:00", "08:60"])
    def test_impossible_time_is_a_failure(self, time):
        result = self.parser.parse(make_sms(time=time))

        assert result.success is False
        assert result.error_reason.startswith("Invalid time")

    def test_zero_amount_is_a_failure(self):
        result = self.parser.parse(make_sms(amount="0"))

        assert result.success is False
        assert result.error_reason == "Invalid amount: 0"

    def test_account_must_be_four_digits(self):
        assert self.parser.parse(make_sms(account="72510")).success is False

    @pytest.mark.parametrize("message", [None, 123, b"bytes", ["list"]])
    def test_non_string_input_never_raises(self, message):
        result = self.parser.parse(message)

        assert result.success is False
        assert result.error_reason == "Message must be a string"

    @pytest.mark.parametrize("message", ["", "   \n"])
    def test_empty_message(self, message):
        result = self.parser.parse(message)
        assert result.success is False
        assert result.error_reason == "Message is empty"

    def test_can_parse(self):
        assert self.parser.can_parse(VALID_SMS) is True
        assert self.parser.can_parse("Nequi: Recibiste $100,000 de PEDRO LOPEZ") is False
        assert self.parser.can_parse(None) is False

    def test_is_deterministic(self):
        assert self.parser.parse(VALID_SMS) == self.parser.parse(VALID_SMS)


class TestParseBancolombiaSms:

    def test_module_helper_uses_shared_parser(self):
        result = parse_bancolombia_sms(VALID_SMS)
        assert result.success is True
        assert result.amount == Decimal("190000")

    def test_result_serializes_in_camel_case(self):
        data = parse_bancolombia_sms(VALID_SMS).model_dump(by_alias=True, mode="json")
        assert data["senderName"] == "MARIA CUBAQUE"
        assert data["date"] == "2025-09-04"


class TestBaseParserHelpers:

    def test_parse_amount(self):
        assert BaseParser.parse_amount("1,000.25") == Decimal("1000.25")
        assert BaseParser.parse_amount("abc") is None
        assert BaseParser.parse_amount("-5") is None
        assert BaseParser.parse_amount(None) is None

    def test_build_date(self):
        assert BaseParser.build_date("04", "09", "2025") == date(2025, 9, 4)
        assert BaseParser.build_date("32", "13", "2025") is None

    def test_build_time(self):
        assert BaseParser.build_time("8", "6") == "08:06"
        assert BaseParser.build_time("23", "59") == "23:59"
        assert BaseParser.build_time("24", "00") is None
