"""
Report store: creation, lookup, feed, status and visibility.

Status transitions are deliberately permissive: any of the four statuses can
follow any other, including reopening a CLOSED report.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID
from PIL import Image, UnidentifiedImageError
import io
import logging

from sqlalchemy.orm import Session

from .interfaces import IReportStore
from .common import commit, database_errors, require_active, require_admin
from .badge_service import BadgeService, add_points
from .notification_service import NotificationService, report_link
from ..errors import ValidationError, NotFoundError, PermissionDeniedError, RemoteError
from ..models import (
    SessionContext, ReportCategory, ReportStatus, NotificationType, STATUS_STEPS, TimelineStep
)
from ...core.config import settings
from ...infrastructure import models
from ...infrastructure.storage import get_storage_service

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 2000


@dataclass
class ImageUpload:
    content: bytes
    filename: str
    content_type: str = "image/jpeg"


def status_index(status: str) -> int:
    return STATUS_STEPS.index(ReportStatus(status))


def build_timeline(status: str) -> List[TimelineStep]:
    """Status steps in display order, marking those reached so far."""
    current = status_index(status)
    return [
        TimelineStep(status=step, index=idx, reached=idx <= current, current=idx == current)
        for idx, step in enumerate(STATUS_STEPS)
    ]


def validate_image(upload: ImageUpload) -> None:
    if not upload.content:
        raise ValidationError("Image file is empty")
    if len(upload.content) > settings.MAX_IMAGE_BYTES:
        raise ValidationError(f"Image exceeds {settings.MAX_IMAGE_BYTES // (1024 * 1024)} MB limit")
    if upload.content_type and not upload.content_type.startswith("image/"):
        raise ValidationError(f"Unsupported file type: {upload.content_type}")
    try:
        Image.open(io.BytesIO(upload.content)).verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(f"Invalid image: {e}")


class ReportService(IReportStore):

    def __init__(self, db: Session):
        self.db = db
        self.storage = get_storage_service()

    # =========================================================================
    # Creation
    # =========================================================================

    async def create(
        self,
        session: Optional[SessionContext],
        title: str,
        description: str,
        category: str,
        latitude: float,
        longitude: float,
        image: Optional[ImageUpload] = None
    ) -> models.Report:
        """
        Create a report with status OPEN, visible.

        Raises:
            AuthError: No session
            PermissionDeniedError: Caller is banned
            ValidationError: Empty title/description, unknown category, bad coordinates or image
            RemoteError: Storage or database failure
        """
        session = require_active(session)

        title = (title or "").strip()
        description = (description or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if not description:
            raise ValidationError("Description is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        try:
            category = ReportCategory(category)
        except ValueError:
            raise ValidationError(f"Unknown category: {category}")
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValidationError("Coordinates out of range")

        owner = self.db.query(models.User).filter(models.User.id == session.user_id).first()
        if not owner:
            raise NotFoundError(f"Profile {session.user_id} not found")

        image_url = None
        image_path = None
        if image is not None:
            validate_image(image)
            image_url, image_path = await self.storage.upload_image(
                image.content, image.filename, image.content_type, str(session.user_id)
            )

        report = models.Report(
            user_id=session.user_id,
            title=title,
            description=description,
            category=category.value,
            status=ReportStatus.OPEN.value,
            latitude=latitude,
            longitude=longitude,
            image_url=image_url,
            image_path=image_path,
            is_hidden=False,
        )
        self.db.add(report)

        try:
            with database_errors(self.db, "create report"):
                add_points(owner, 'report_submitted')
                BadgeService(self.db).evaluate(session.user_id, commit_now=False)
                self.db.commit()
        except RemoteError:
            if image_path:
                await self.storage.delete_image(image_path)
            raise

        self.db.refresh(report)
        logger.info(f"Report created: {report.id} by {session.user_id} ({category.value})")
        return report

    # =========================================================================
    # Reads
    # =========================================================================

    def find(self, report_id: UUID) -> models.Report:
        """Lookup by id regardless of visibility."""
        report = self.db.query(models.Report).filter(models.Report.id == report_id).first()
        if not report:
            raise NotFoundError("Report not found")
        return report

    def get(self, report_id: UUID, viewer: Optional[SessionContext] = None) -> models.Report:
        """Hidden reports resolve only for admins and their owner."""
        report = self.find(report_id)
        if report.is_hidden and not self._can_see_hidden(report, viewer):
            raise NotFoundError("Report not found")
        return report

    def list_feed(
        self,
        viewer: Optional[SessionContext] = None,
        limit: int = 50,
        offset: int = 0,
        category: Optional[ReportCategory] = None,
        status: Optional[ReportStatus] = None,
        include_hidden: bool = False
    ) -> List[models.Report]:
        """Newest-first reports. include_hidden is admin only."""
        if include_hidden:
            require_admin(viewer)

        query = self.db.query(models.Report)
        if not include_hidden:
            query = query.filter(models.Report.is_hidden == False)
        if category is not None:
            query = query.filter(models.Report.category == ReportCategory(category).value)
        if status is not None:
            query = query.filter(models.Report.status == ReportStatus(status).value)

        return query.order_by(
            models.Report.created_at.desc()
        ).offset(offset).limit(limit).all()

    def timeline(self, report: models.Report) -> List[TimelineStep]:
        return build_timeline(report.status)

    def can_edit_status(self, report: models.Report, viewer: Optional[SessionContext]) -> bool:
        if viewer is None or viewer.is_banned:
            return False
        return viewer.is_admin or report.user_id == viewer.user_id

    # =========================================================================
    # Mutations
    # =========================================================================

    def update_status(
        self,
        report_id: UUID,
        new_status: ReportStatus,
        session: Optional[SessionContext]
    ) -> models.Report:
        """
        Set the status to exactly the requested value.

        Only the owner or an admin may do this. A real change notifies the owner
        (unless they made it) and all followers except the actor. While the report
        is hidden only followers who are admins hear about it.
        """
        session = require_active(session)
        try:
            new_status = ReportStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown status: {new_status}")

        report = self.get(report_id, session)
        if not self.can_edit_status(report, session):
            raise PermissionDeniedError("Only the report owner or an admin can change its status")

        old_status = report.status
        if old_status == new_status.value:
            return report

        report.status = new_status.value

        followers = self.db.query(models.Follow.user_id).filter(
            models.Follow.report_id == report.id
        )
        if report.is_hidden:
            # Followers who can no longer open the report are not told about it
            followers = followers.join(
                models.User, models.User.id == models.Follow.user_id
            ).filter(models.User.is_admin == True)
        follower_ids = [row[0] for row in followers.all()]
        label = new_status.value.replace("_", " ").lower()
        NotificationService(self.db).notify_many(
            [report.user_id] + follower_ids,
            NotificationType.STATUS_CHANGE,
            f'"{report.title}" is now {label}',
            report_link(report.id),
            exclude=session.user_id,
        )

        if new_status == ReportStatus.CLOSED:
            BadgeService(self.db).evaluate(report.user_id, commit_now=False)

        commit(self.db, "update report status")
        self.db.refresh(report)
        logger.info(f"Report {report.id} status {old_status} -> {new_status.value} by {session.user_id}")
        return report

    def set_visibility(
        self,
        report_id: UUID,
        hidden: bool,
        session: Optional[SessionContext]
    ) -> models.Report:
        """Hide or unhide a report (admin only). Status is untouched."""
        session = require_admin(session)
        report = self.get(report_id, session)
        report.is_hidden = bool(hidden)
        commit(self.db, "update report visibility")
        self.db.refresh(report)
        logger.info(f"Report {report.id} {'hidden' if hidden else 'unhidden'} by admin {session.user_id}")
        return report

    # =========================================================================
    # Helpers
    # =========================================================================

    def _can_see_hidden(self, report: models.Report, viewer: Optional[SessionContext]) -> bool:
        if viewer is None:
            return False
        return viewer.is_admin or report.user_id == viewer.user_id

    def owners(self, reports: List[models.Report]) -> Dict[UUID, models.User]:
        user_ids = list({r.user_id for r in reports})
        if not user_ids:
            return {}
        users = self.db.query(models.User).filter(models.User.id.in_(user_ids)).all()
        return {u.id: u for u in users}
