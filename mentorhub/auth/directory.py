import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mentorhub.models.user import User
from mentorhub.scheduling.errors import LedgerUnavailable

logger = logging.getLogger(__name__)


class UserDirectory:
    """Resolves a caller id to the role stored on the user record."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def role_of(self, user_id: int) -> str | None:
        db = self._session_factory()
        try:
            row = db.query(User.role).filter(User.id == user_id).first()
        except SQLAlchemyError as exc:
            logger.exception('Failed to look up role for user %s', user_id)
            raise LedgerUnavailable('User directory is unavailable. Please try again shortly.') from exc
        finally:
            db.close()
        return row[0] if row else None
