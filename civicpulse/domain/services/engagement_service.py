"""
Engagement tracker: follows and comments on reports.

Follower counts are never stored. They are counted on demand from the
follows table, whose unique (report_id, user_id) index keeps follow()
idempotent even when two requests race.
"""
import logging
from typing import Dict, Iterator, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .interfaces import IEngagementTracker
from .common import commit, database_errors, require_active
from .badge_service import BadgeService, add_points
from .notification_service import NotificationService, report_link
from .report_service import ReportService
from ..errors import ValidationError, NotFoundError
from ..models import SessionContext, NotificationType
from ...infrastructure import models

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500


class EngagementService(IEngagementTracker):

    def __init__(self, db: Session):
        self.db = db
        self.reports = ReportService(db)

    # =========================================================================
    # Follows
    # =========================================================================

    def follow(self, report_id: UUID, session: Optional[SessionContext]) -> int:
        """Follow a report if not already following. Returns the follower count."""
        session = require_active(session)
        report = self.reports.get(report_id, session)

        if not self.is_following(report.id, session.user_id):
            self.db.add(models.Follow(report_id=report.id, user_id=session.user_id))
            with database_errors(self.db, "follow report"):
                try:
                    self.db.commit()
                    logger.info(f"User {session.user_id} followed report {report.id}")
                except IntegrityError:
                    # A concurrent request inserted the same pair first
                    self.db.rollback()

        return self.follower_count(report.id)

    def unfollow(self, report_id: UUID, session: Optional[SessionContext]) -> int:
        """
        Remove the follow if present. Returns the follower count.
        Hidden reports included.
        """
        session = require_active(session)
        report = self.reports.find(report_id)

        removed = self.db.query(models.Follow).filter(
            models.Follow.report_id == report.id,
            models.Follow.user_id == session.user_id
        ).delete(synchronize_session="fetch")
        commit(self.db, "unfollow report")
        if removed:
            logger.info(f"User {session.user_id} unfollowed report {report.id}")

        return self.follower_count(report.id)

    def is_following(self, report_id: UUID, user_id: UUID) -> bool:
        return self.db.query(models.Follow).filter(
            models.Follow.report_id == report_id,
            models.Follow.user_id == user_id
        ).first() is not None

    def follower_count(self, report_id: UUID) -> int:
        return self.db.query(models.Follow).filter(
            models.Follow.report_id == report_id
        ).count()

    def follower_counts(self, report_ids: List[UUID]) -> Dict[UUID, int]:
        """Follower counts for several reports in one grouped query."""
        if not report_ids:
            return {}
        rows = self.db.query(
            models.Follow.report_id, func.count(models.Follow.id)
        ).filter(
            models.Follow.report_id.in_(report_ids)
        ).group_by(models.Follow.report_id).all()
        return {report_id: count for report_id, count in rows}

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(
        self,
        report_id: UUID,
        session: Optional[SessionContext],
        text: str
    ) -> models.Comment:
        """
        Append a comment, notify the report owner and re-evaluate the
        commenter's badges, all in one transaction.
        """
        session = require_active(session)
        content = (text or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

        report = self.reports.get(report_id, session)
        author = self.db.query(models.User).filter(models.User.id == session.user_id).first()
        if not author:
            raise NotFoundError(f"Profile {session.user_id} not found")

        comment = models.Comment(report_id=report.id, user_id=author.id, content=content)
        self.db.add(comment)
        add_points(author, 'comment_posted')

        if report.user_id != author.id:
            name = author.display_name or author.username
            NotificationService(self.db).create(
                report.user_id,
                NotificationType.COMMENT,
                f'{name} commented on "{report.title}"',
                report_link(report.id),
                commit_now=False,
            )

        BadgeService(self.db).evaluate(author.id, commit_now=False)
        commit(self.db, "add comment")
        self.db.refresh(comment)
        logger.info(f"Comment {comment.id} added to report {report.id} by {author.id}")
        return comment

    def _comment_query(self, report_id: UUID):
        return self.db.query(models.Comment).filter(
            models.Comment.report_id == report_id
        ).order_by(
            models.Comment.created_at.desc(),
            models.Comment.id.desc()
        )

    def list_comments(self, report_id: UUID, limit: int = 50, offset: int = 0,
                      viewer: Optional[SessionContext] = None) -> List[models.Comment]:
        """Newest-first comments on a report."""
        report = self.reports.get(report_id, viewer)
        return self._comment_query(report.id).offset(offset).limit(limit).all()

    def iter_comments(self, report_id: UUID, batch_size: int = 50,
                      viewer: Optional[SessionContext] = None) -> Iterator[models.Comment]:
        """
        Lazily yield comments newest-first, fetching batch_size rows at a time.

        Uses keyset pagination on (created_at, id), so comments posted while
        iterating are not yielded twice. Call again to restart from the top.
        """
        report = self.reports.get(report_id, viewer)
        return self._iter_batches(report.id, batch_size)

    def _iter_batches(self, report_id: UUID, batch_size: int) -> Iterator[models.Comment]:
        last = None
        while True:
            query = self._comment_query(report_id)
            if last is not None:
                query = query.filter(or_(
                    models.Comment.created_at < last.created_at,
                    and_(models.Comment.created_at == last.created_at, models.Comment.id < last.id)
                ))
            batch = query.limit(batch_size).all()
            yield from batch
            if len(batch) < batch_size:
                return
            last = batch[-1]

    def comment_count(self, report_id: UUID) -> int:
        return self.db.query(models.Comment).filter(
            models.Comment.report_id == report_id
        ).count()

    def comment_counts(self, report_ids: List[UUID]) -> Dict[UUID, int]:
        if not report_ids:
            return {}
        rows = self.db.query(
            models.Comment.report_id, func.count(models.Comment.id)
        ).filter(
            models.Comment.report_id.in_(report_ids)
        ).group_by(models.Comment.report_id).all()
        return {report_id: count for report_id, count in rows}
