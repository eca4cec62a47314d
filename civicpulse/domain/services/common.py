"""
Caller checks and commit handling shared by the domain services.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AuthError, PermissionDeniedError, RemoteError
from ..models import SessionContext

logger = logging.getLogger(__name__)


def require_session(session: Optional[SessionContext]) -> SessionContext:
    if session is None:
        raise AuthError("Not authenticated")
    return session


def require_active(session: Optional[SessionContext]) -> SessionContext:
    """Authenticated and not banned."""
    session = require_session(session)
    if session.is_banned:
        raise PermissionDeniedError("Account is banned")
    return session


def require_admin(session: Optional[SessionContext]) -> SessionContext:
    session = require_session(session)
    if not session.is_admin:
        raise PermissionDeniedError("Admin access required")
    return session


@contextmanager
def database_errors(db: Session, action: str):
    """Roll back and re-raise any SQLAlchemy failure inside the block as RemoteError."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while trying to {action}: {e}")
        raise RemoteError(f"Failed to {action}") from e


def commit(db: Session, action: str) -> None:
    """Commit the unit of work; roll back and raise RemoteError if storage fails."""
    with database_errors(db, action):
        db.commit()
