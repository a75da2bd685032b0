"""
Transaction model for storing parsed and validated bank notifications.
"""
import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text, Time
from sqlalchemy.sql import func

from .database import Base

TRANSACTION_EVENTS = ("deposit", "withdrawal", "transfer")
TRANSACTION_STATUSES = ("processed", "failed", "duplicate", "pending")


class Transaction(Base):
    """Transaction model, one row per webhook delivery."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source_id = Column(String(36), ForeignKey("sources.id", ondelete="RESTRICT"), nullable=False, index=True)
    # 14 digits so the validator's upper bound (999,999,999,999) fits with cents
    amount = Column(Numeric(14, 2, asdecimal=True), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    sender_name = Column(String(255), nullable=True)
    account_number = Column(String(255), nullable=True)
    transaction_date = Column(Date, nullable=False)
    transaction_time = Column(Time, nullable=False)
    raw_message = Column(Text, nullable=False)  # Original message, kept verbatim for audit
    parsed_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    webhook_id = Column(String(255), unique=True, nullable=False)
    event = Column(String(20), nullable=False, default="deposit")
    status = Column(String(20), nullable=False, default="processed")
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint("event IN ('deposit', 'withdrawal', 'transfer')", name="ck_transactions_event"),
        CheckConstraint(
            "status IN ('processed', 'failed', 'duplicate', 'pending')", name="ck_transactions_status"
        ),
        Index("idx_transactions_source_date", "source_id", "transaction_date"),
        Index("idx_transactions_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Transaction(id={self.id}, amount={self.amount}, webhook_id='{self.webhook_id}')>"

    def to_dict(self) -> dict:
        """Convert transaction to dictionary."""
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "senderName": self.sender_name,
            "accountNumber": self.account_number,
            "transactionDate": self.transaction_date.isoformat() if self.transaction_date else None,
            "transactionTime": self.transaction_time.strftime("%H:%M:%S") if self.transaction_time else None,
            "rawMessage": self.raw_message,
            "parsedAt": self.parsed_at.isoformat() if self.parsed_at else None,
            "webhookId": self.webhook_id,
            "event": self.event,
            "status": self.status,
        }
