"""
Source and UserSource models: where notifications come from and who sees them.
"""
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base

SOURCE_TYPES = ("email", "phone", "webhook")


def _new_id() -> str:
    return str(uuid.uuid4())


class Source(Base):
    """A canonical contact point (email, phone or webhook id) transactions are routed through."""

    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=_new_id)
    source_type = Column(String(20), nullable=False, index=True)
    source_value = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("source_type", "source_value", name="uq_sources_type_value"),
        CheckConstraint(
            "source_type IN ('email', 'phone', 'webhook')", name="ck_sources_source_type"
        ),
    )

    def __repr__(self):
        return f"<Source(id={self.id}, type={self.source_type}, value='{self.source_value}')>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sourceType": self.source_type,
            "sourceValue": self.source_value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class UserSource(Base):
    """Subscription of a user to a source. Deactivated, never deleted."""

    __tablename__ = "user_sources"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, index=True)
    source_id = Column(String(36), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "source_id", name="uq_user_sources_user_source"),
        Index("idx_user_sources_user_active", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<UserSource(user_id={self.user_id}, source_id={self.source_id}, active={self.is_active})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "sourceId": self.source_id,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
