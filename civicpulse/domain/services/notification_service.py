"""
In-app notification relay.

Notifications are appended by other users' actions (comments, status
changes, badge grants) and read by their owner. Listing is a pure read;
acknowledging is a separate call to mark_read().
"""
import logging
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .interfaces import INotificationRelay
from .common import commit
from ..models import NotificationType
from ...core.config import settings
from ...infrastructure import models

logger = logging.getLogger(__name__)


def report_link(report_id: UUID) -> str:
    return f"/reports/{report_id}"


class NotificationService(INotificationRelay):

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        owner_id: UUID,
        type: NotificationType,
        message: str,
        link: Optional[str] = None,
        commit_now: bool = True
    ) -> models.Notification:
        """
        Append an unread notification for one user.

        With commit_now=False the row joins the caller's transaction, which
        is how fan-out from status changes and comments works.
        """
        notification = models.Notification(
            user_id=owner_id,
            type=NotificationType(type).value,
            message=message[:500],
            link=link,
            is_read=False,
        )
        self.db.add(notification)
        if commit_now:
            commit(self.db, "create notification")
            self.db.refresh(notification)
        return notification

    def notify_many(
        self,
        owner_ids: Iterable[UUID],
        type: NotificationType,
        message: str,
        link: Optional[str] = None,
        exclude: Optional[UUID] = None
    ) -> List[models.Notification]:
        """Fan the same notification out to several users, once each. Does not commit."""
        created = []
        seen = set()
        for owner_id in owner_ids:
            if owner_id is None or owner_id == exclude or owner_id in seen:
                continue
            seen.add(owner_id)
            created.append(self.create(owner_id, type, message, link, commit_now=False))
        if created:
            logger.info(f"Queued {len(created)} {NotificationType(type).value} notifications")
        return created

    def list_recent(self, user_id: UUID, limit: Optional[int] = None) -> List[models.Notification]:
        """Newest-first notifications for a user. Does not change read state."""
        if limit is None:
            limit = settings.NOTIFICATION_LIST_LIMIT
        return self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id
        ).order_by(
            models.Notification.created_at.desc()
        ).limit(limit).all()

    def unread_count(self, user_id: UUID) -> int:
        return self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read == False
        ).count()

    def mark_read(self, user_id: UUID, notification_ids: Optional[List[UUID]] = None) -> int:
        """
        Mark the user's unread notifications as read.

        Args:
            user_id: Owner of the notifications; other users' rows are never touched
            notification_ids: Restrict to these ids, or None for all

        Returns:
            Number of notifications that changed state
        """
        query = self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read == False
        )
        if notification_ids is not None:
            if not notification_ids:
                return 0
            query = query.filter(models.Notification.id.in_(notification_ids))

        updated = query.update({"is_read": True}, synchronize_session="fetch")
        commit(self.db, "mark notifications read")
        return updated
