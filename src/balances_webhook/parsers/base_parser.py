"""
Base parser class for free-text bank notification extraction.
"""
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging

from ..models.schemas import ParsedMessage

logger = logging.getLogger(__name__)


class BaseParser(ABC):
    """Abstract base class for bank message parsers.

    Parsers are pure: they never touch the network or the database and
    never raise on bad input. Every outcome is a ``ParsedMessage``.
    """

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        self.logger = logging.getLogger(f"{__name__}.{provider_name}")

    @abstractmethod
    def can_parse(self, message: str) -> bool:
        """
        Check if this parser recognises the message template.

        Args:
            message: Raw notification text

        Returns:
            True if the message matches the template, False otherwise
        """
        pass

    @abstractmethod
    def parse(self, message: str) -> ParsedMessage:
        """
        Extract transaction details from the message.

        Args:
            message: Raw notification text

        Returns:
            A successful ParsedMessage, or a failed one carrying error_reason
        """
        pass

    def failure(self, reason: str) -> ParsedMessage:
        """Build a failed result. No partial fields are carried."""
        self.logger.debug(f"Parse failed: {reason}")
        return ParsedMessage(success=False, error_reason=reason)

    @staticmethod
    def parse_amount(raw: str) -> Optional[Decimal]:
        """
        Parse an amount with comma thousands separators ("190,000" or "1,250.50").

        Returns:
            A positive Decimal, or None if the text is not a usable amount
        """
        try:
            amount = Decimal(raw.replace(",", ""))
        except (InvalidOperation, AttributeError):
            return None
        if not amount.is_finite() or amount <= 0:
            return None
        return amount

    @staticmethod
    def build_date(day: str, month: str, year: str) -> Optional[date]:
        """Build a calendar date; impossible dates (32/13/2025) give None instead of wrapping."""
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None

    @staticmethod
    def build_time(hour: str, minute: str) -> Optional[str]:
        """Normalise a 24h time to HH:MM, rejecting out-of-range values."""
        h, m = int(hour), int(minute)
        if not (0 <= h <= 23 and 0 <= m <= 59):
            return None
        return f"{h:02d}:{m:02d}"
