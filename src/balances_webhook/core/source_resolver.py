"""
Source resolver: maps routing addresses to canonical sources and sources to
their subscribed users.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import AlreadyAssociatedError, NotFoundError, SourceResolutionError
from .validation import normalize_source_value
from ..models.source import SOURCE_TYPES, Source, UserSource

logger = logging.getLogger(__name__)


class SourceResolver:
    """Find-or-create for sources and management of user subscriptions."""

    def __init__(self, db: Session):
        self.db = db

    def _find_source(self, source_type: str, source_value: str) -> Optional[Source]:
        return self.db.query(Source).filter(
            Source.source_type == source_type,
            Source.source_value == source_value,
        ).first()

    def find_or_create_source(self, source_type: str, source_value: str) -> Source:
        """
        Return the source for (type, value), creating it on first sighting.

        The unique constraint on (source_type, source_value) decides races: a
        create that loses to a concurrent insert falls back to the lookup.

        Raises:
            SourceResolutionError: If the store cannot be read or written
        """
        if source_type not in SOURCE_TYPES:
            raise SourceResolutionError(f"Invalid source type: {source_type}")

        value = normalize_source_value(source_value, source_type)

        try:
            source = self._find_source(source_type, value)
            if source:
                return source

            source = Source(source_type=source_type, source_value=value)
            self.db.add(source)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info(f"Source {source_type}:{value} created concurrently, retrying lookup")
                source = self._find_source(source_type, value)
                if source is None:
                    raise SourceResolutionError()
                return source

            self.db.refresh(source)
            logger.info(f"Created source {source.id} ({source_type}:{value})")
            return source

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to find or create source {source_type}:{value}: {e}")
            raise SourceResolutionError() from e

    def get_source_by_id(self, source_id: str) -> Optional[Source]:
        try:
            return self.db.query(Source).filter(Source.id == source_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load source {source_id}: {e}")
            raise SourceResolutionError() from e

    def get_users_for_source(self, source_id: str) -> List[str]:
        """
        User ids with an active subscription to the source.

        An empty list means nobody is subscribed. Store failures raise instead,
        so the two cases never look alike.
        """
        try:
            rows = self.db.query(UserSource.user_id).filter(
                UserSource.source_id == source_id,
                UserSource.is_active.is_(True),
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get users for source {source_id}: {e}")
            raise SourceResolutionError("Failed to find users for source") from e
        return [row.user_id for row in rows]

    def get_sources_for_user(self, user_id: str) -> List[Source]:
        try:
            return (
                self.db.query(Source)
                .join(UserSource, UserSource.source_id == Source.id)
                .filter(UserSource.user_id == user_id, UserSource.is_active.is_(True))
                .order_by(Source.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get sources for user {user_id}: {e}")
            raise SourceResolutionError() from e

    def add_user_source(self, user_id: str, source_id: str) -> UserSource:
        """
        Subscribe a user to a source.

        A previously deactivated subscription is switched back on.

        Raises:
            NotFoundError: If the source does not exist
            AlreadyAssociatedError: If the subscription is already active
        """
        if self.get_source_by_id(source_id) is None:
            raise NotFoundError("Source", source_id)

        link = self.db.query(UserSource).filter(
            UserSource.user_id == user_id,
            UserSource.source_id == source_id,
        ).first()

        if link is not None:
            if link.is_active:
                raise AlreadyAssociatedError(user_id, source_id)
            link.is_active = True
        else:
            link = UserSource(user_id=user_id, source_id=source_id, is_active=True)
            self.db.add(link)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyAssociatedError(user_id, source_id)

        self.db.refresh(link)
        logger.info(f"User {user_id} subscribed to source {source_id}")
        return link

    def remove_user_source(self, user_id: str, source_id: str) -> bool:
        """Deactivate a subscription. Returns False if there was no active one."""
        link = self.db.query(UserSource).filter(
            UserSource.user_id == user_id,
            UserSource.source_id == source_id,
            UserSource.is_active.is_(True),
        ).first()
        if link is None:
            return False

        link.is_active = False
        self.db.commit()
        logger.info(f"User {user_id} unsubscribed from source {source_id}")
        return True
