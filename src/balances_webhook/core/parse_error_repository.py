"""
Parse error repository: audit trail of free-text messages that failed to parse.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import NotFoundError, PersistenceError
from ..models.parse_error import ParseError

logger = logging.getLogger(__name__)


class ParseErrorRepository:

    def __init__(self, db: Session):
        self.db = db

    def create_parse_error(self, raw_message: str, error_reason: str, webhook_id: str) -> ParseError:
        """
        Record a failed parse.

        Raises:
            PersistenceError: If the record cannot be written
        """
        record = ParseError(raw_message=raw_message, error_reason=error_reason, webhook_id=webhook_id)
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record parse error for webhook {webhook_id}: {e}")
            raise PersistenceError("Failed to record parse error") from e
        self.db.refresh(record)
        return record

    def get_parse_errors(self, resolved: Optional[bool] = None, limit: int = 100, offset: int = 0) -> List[ParseError]:
        """Newest-first parse errors, optionally filtered on the resolved flag."""
        query = self.db.query(ParseError)
        if resolved is not None:
            query = query.filter(ParseError.resolved.is_(resolved))
        return query.order_by(ParseError.occurred_at.desc(), ParseError.id).offset(offset).limit(limit).all()

    def resolve_parse_error(self, parse_error_id: str) -> ParseError:
        """Mark a parse error as handled by an operator."""
        record = self.db.query(ParseError).filter(ParseError.id == parse_error_id).first()
        if record is None:
            raise NotFoundError("Parse error", parse_error_id)
        record.resolved = True
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Parse error {parse_error_id} marked resolved")
        return record
