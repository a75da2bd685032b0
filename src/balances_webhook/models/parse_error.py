"""
ParseError model: audit trail of free-text messages the parser rejected.
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.sql import func

from .database import Base


class ParseError(Base):
    """A failed parse attempt. Append-only except for the resolved flag."""

    __tablename__ = "parse_errors"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    raw_message = Column(Text, nullable=False)
    error_reason = Column(Text, nullable=False)
    webhook_id = Column(String(255), nullable=False, index=True)
    occurred_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    resolved = Column(Boolean, nullable=False, default=False, index=True)

    def __repr__(self):
        return f"<ParseError(id={self.id}, webhook_id='{self.webhook_id}', resolved={self.resolved})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rawMessage": self.raw_message,
            "errorReason": self.error_reason,
            "webhookId": self.webhook_id,
            "occurredAt": self.occurred_at.isoformat() if self.occurred_at else None,
            "resolved": self.resolved,
        }
