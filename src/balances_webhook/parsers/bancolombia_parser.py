"""
Bancolombia SMS parser for incoming transfer notifications.

Handles exactly one template:

    Bancolombia: Recibiste una transferencia por $190,000 de MARIA CUBAQUE
    en tu cuenta **7251, el 04/09/2025 a las 08:06

Anything else is rejected rather than guessed at.
"""
import re

from .base_parser import BaseParser
from ..models.schemas import ParsedMessage

BANCOLOMBIA_TRANSFER_PATTERN = re.compile(
    r"^Bancolombia:\s+Recibiste\s+una\s+transferencia\s+por\s+"
    r"\$(?P<amount>\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?)\s+"
    r"de\s+(?P<sender>[A-Za-zÁÉÍÓÚÜÑáéíóúüñ][A-Za-zÁÉÍÓÚÜÑáéíóúüñ .'-]*?)\s+"
    r"en\s+tu\s+cuenta\s+\*\*(?P<account>\d{4}),\s+"
    r"el\s+(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})\s+"
    r"a\s+las\s+(?P<hour>\d{2}):(?P<minute>\d{2})\.?$"
)

BANK_PREFIX = "Bancolombia:"


class BancolombiaParser(BaseParser):
    """Parser for Bancolombia 'Recibiste una transferencia' SMS messages."""

    def __init__(self):
        super().__init__("bancolombia")
        self.pattern = BANCOLOMBIA_TRANSFER_PATTERN

    def can_parse(self, message: str) -> bool:
        """Check the message against the transfer template."""
        if not isinstance(message, str):
            return False
        return self.pattern.match(message.strip()) is not None

    def parse(self, message: str) -> ParsedMessage:
        """Parse a transfer notification into amount, sender, account, date and time."""
        if not isinstance(message, str):
            return self.failure("Message must be a string")

        text = message.strip()
        if not text:
            return self.failure("Message is empty")

        match = self.pattern.match(text)
        if not match:
            if not text.startswith(BANK_PREFIX):
                return self.failure("Message is not a Bancolombia notification")
            return self.failure("Message does not match the Bancolombia transfer template")

        amount = self.parse_amount(match.group("amount"))
        if amount is None:
            return self.failure(f"Invalid amount: {match.group('amount')}")

        sender_name = match.group("sender").strip()
        if not sender_name:
            return self.failure("Missing sender name")

        day, month, year = match.group("day", "month", "year")
        transaction_date = self.build_date(day, month, year)
        if transaction_date is None:
            return self.failure(f"Invalid date: {day}/{month}/{year}")

        hour, minute = match.group("hour", "minute")
        transaction_time = self.build_time(hour, minute)
        if transaction_time is None:
            return self.failure(f"Invalid time: {hour}:{minute}")

        return ParsedMessage(
            success=True,
            amount=amount,
            sender_name=sender_name,
            account=match.group("account"),
            date=transaction_date,
            time=transaction_time,
        )


_default_parser = BancolombiaParser()


def parse_bancolombia_sms(message: str) -> ParsedMessage:
    """Parse one Bancolombia SMS with the shared parser instance."""
    return _default_parser.parse(message)
