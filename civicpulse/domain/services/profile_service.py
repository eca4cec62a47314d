from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from .common import commit, require_admin
from ..errors import NotFoundError, PermissionDeniedError
from ..models import SessionContext
from ...infrastructure import models

logger = logging.getLogger(__name__)


class ProfileService:
    """Profile lookup and admin moderation of users."""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: UUID) -> models.User:
        user = self.db.query(models.User).filter(models.User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_profiles(self, session: Optional[SessionContext]) -> List[models.User]:
        require_admin(session)
        return self.db.query(models.User).order_by(models.User.username).all()

    def report_count(self, user_id: UUID) -> int:
        return self.db.query(models.Report).filter(models.Report.user_id == user_id).count()

    def set_banned(self, user_id: UUID, banned: bool, session: Optional[SessionContext]) -> models.User:
        """
        Ban or unban a user (admin only). Admins cannot be banned.
        """
        session = require_admin(session)
        user = self.get_profile(user_id)
        if user.is_admin and banned:
            raise PermissionDeniedError("Admins cannot be banned")

        user.is_banned = bool(banned)
        commit(self.db, "update ban flag")
        self.db.refresh(user)
        logger.info(f"User {user.id} {'banned' if banned else 'unbanned'} by admin {session.user_id}")
        return user
