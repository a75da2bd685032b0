"""
Transaction repository: idempotent persistence keyed by webhook id.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import PersistenceError
from .validation import SmsWebhookRequest, StructuredWebhookRequest, parse_iso_timestamp
from ..models.schemas import ParsedMessage
from ..models.source import UserSource
from ..models.transaction import Transaction

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
MAX_TEXT_LENGTH = 255


@dataclass
class StoreResult:
    """The stored row and whether this call created it (False means duplicate)."""

    transaction: Transaction
    created: bool


def split_timestamp(timestamp: str) -> tuple:
    """Split an ISO-8601 timestamp into its UTC date and UTC time (whole seconds)."""
    moment = parse_iso_timestamp(timestamp).astimezone(timezone.utc)
    return moment.date(), moment.time().replace(microsecond=0)


def _clip(value: Optional[str]) -> Optional[str]:
    return value[:MAX_TEXT_LENGTH] if value else None


class TransactionRepository:
    """Writes and reads transactions. At most one row ever exists per webhook id."""

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(self, source_id: str, payload: StructuredWebhookRequest) -> StoreResult:
        """
        Store a validated structured payload.

        Sender name and account number come from metadata when the caller
        supplies them as strings. Amounts are stored in cents, rounded half
        to even, so 10.555 is kept as 10.56 and 75000.125 as 75000.12.
        """
        transaction_date, transaction_time = split_timestamp(payload.timestamp)
        return self._store({
            "source_id": source_id,
            "amount": payload.amount_decimal.quantize(CENTS, rounding=ROUND_HALF_EVEN),
            "currency": payload.currency,
            "sender_name": _clip(payload.metadata_text("senderName")),
            "account_number": _clip(payload.metadata_text("accountNumber")),
            "transaction_date": transaction_date,
            "transaction_time": transaction_time,
            "raw_message": payload.message,
            "webhook_id": payload.webhook_id,
            "event": payload.event,
            "status": "processed",
        })

    def create_sms_transaction(
        self,
        source_id: str,
        parsed: ParsedMessage,
        request: SmsWebhookRequest,
        currency: str = "COP",
    ) -> StoreResult:
        """Store a successfully parsed free-text message as a deposit, dated as printed in the SMS."""
        return self._store({
            "source_id": source_id,
            "amount": parsed.amount.quantize(CENTS),
            "currency": currency,
            "sender_name": _clip(parsed.sender_name),
            "account_number": parsed.account,
            "transaction_date": parsed.date,
            "transaction_time": datetime.strptime(parsed.time, "%H:%M").time(),
            "raw_message": request.message,
            "webhook_id": request.webhook_id,
            "event": "deposit",
            "status": "processed",
        })

    def _store(self, values: Dict[str, Any]) -> StoreResult:
        webhook_id = values["webhook_id"]
        try:
            # Fast path; the unique index on webhook_id is what actually decides
            existing = self.get_transaction_by_webhook_id(webhook_id)
            if existing is not None:
                logger.info(f"Duplicate webhook id {webhook_id}, existing transaction {existing.id}")
                return StoreResult(existing, created=False)

            transaction = Transaction(**values)
            self.db.add(transaction)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                existing = self.get_transaction_by_webhook_id(webhook_id)
                if existing is None:
                    logger.error(f"Constraint violation storing webhook {webhook_id}: {e}")
                    raise PersistenceError() from e
                logger.info(f"Webhook id {webhook_id} inserted concurrently, existing transaction {existing.id}")
                return StoreResult(existing, created=False)

            self.db.refresh(transaction)
            logger.info(f"Stored transaction {transaction.id} for webhook {webhook_id}")
            return StoreResult(transaction, created=True)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store transaction for webhook {webhook_id}: {e}")
            raise PersistenceError() from e

    def get_transaction_by_webhook_id(self, webhook_id: str) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.webhook_id == webhook_id).first()

    def get_transactions_for_user(self, user_id: str, limit: int = 100, offset: int = 0) -> List[Transaction]:
        """Newest-first transactions from every source the user is actively subscribed to."""
        try:
            return (
                self.db.query(Transaction)
                .join(UserSource, UserSource.source_id == Transaction.source_id)
                .filter(UserSource.user_id == user_id, UserSource.is_active.is_(True))
                .order_by(Transaction.created_at.desc(), Transaction.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get transactions for user {user_id}: {e}")
            raise PersistenceError("Failed to load transactions") from e

    def get_transaction_metrics(
        self,
        user_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Total, count and average of processed transactions.

        Args:
            user_id: Restrict to the user's active sources
            start_date: Inclusive lower bound on transaction_date
            end_date: Inclusive upper bound on transaction_date

        Returns:
            Dict with total_amount, transaction_count and average_amount
        """
        query = self.db.query(
            func.coalesce(func.sum(Transaction.amount), 0),
            func.count(Transaction.id),
        ).filter(Transaction.status == "processed")

        if user_id:
            query = query.join(UserSource, UserSource.source_id == Transaction.source_id).filter(
                UserSource.user_id == user_id, UserSource.is_active.is_(True)
            )
        if start_date:
            query = query.filter(Transaction.transaction_date >= start_date)
        if end_date:
            query = query.filter(Transaction.transaction_date <= end_date)

        try:
            total, count = query.one()
        except SQLAlchemyError as e:
            logger.error(f"Failed to compute transaction metrics: {e}")
            raise PersistenceError("Failed to compute metrics") from e

        total = Decimal(str(total or 0)).quantize(CENTS)
        average = (total / count).quantize(CENTS) if count else Decimal("0.00")
        return {
            "total_amount": total,
            "transaction_count": count,
            "average_amount": average,
        }
