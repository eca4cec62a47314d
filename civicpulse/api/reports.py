from fastapi import APIRouter, UploadFile, File, Form, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..infrastructure import models
from ..domain.errors import CivicPulseError
from ..domain.models import (
    SessionContext, ReportCategory, ReportStatus, ReportResponse, ReportDetailResponse,
    ReportStatusUpdate, ReportVisibilityUpdate
)
from ..domain.services.report_service import ReportService, ImageUpload, status_index
from ..domain.services.engagement_service import EngagementService
from .deps import get_current_session, get_optional_session, get_admin_session, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


def serialize_reports(db: Session, reports: List[models.Report]) -> List[ReportResponse]:
    """Attach author info and engagement counts with one query per aggregate."""
    report_service = ReportService(db)
    engagement = EngagementService(db)
    ids = [r.id for r in reports]
    owners = report_service.owners(reports)
    followers = engagement.follower_counts(ids)
    comments = engagement.comment_counts(ids)

    out = []
    for report in reports:
        owner = owners.get(report.user_id)
        response = ReportResponse.model_validate(report)
        response.username = (owner.display_name or owner.username) if owner else None
        response.avatar_url = owner.avatar_url if owner else None
        response.follower_count = followers.get(report.id, 0)
        response.comment_count = comments.get(report.id, 0)
        response.status_index = status_index(report.status)
        out.append(response)
    return out


def serialize_detail(db: Session, report: models.Report, viewer: Optional[SessionContext]) -> ReportDetailResponse:
    base = serialize_reports(db, [report])[0]
    reports = ReportService(db)
    engagement = EngagementService(db)
    return ReportDetailResponse(
        **base.model_dump(),
        timeline=reports.timeline(report),
        is_following=engagement.is_following(report.id, viewer.user_id) if viewer else False,
        can_edit_status=reports.can_edit_status(report, viewer),
    )


@router.get("/", response_model=List[ReportResponse])
def list_reports(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    category: Optional[ReportCategory] = None,
    status: Optional[ReportStatus] = None,
    db: Session = Depends(get_db)
):
    """
    Feed of visible reports, newest first.
    """
    try:
        reports = ReportService(db).list_feed(
            limit=limit, offset=offset, category=category, status=status
        )
        return serialize_reports(db, reports)
    except CivicPulseError as e:
        raise http_error(e, "Failed to list reports")


@router.post("/", response_model=ReportDetailResponse, status_code=201)
async def create_report(
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(ReportCategory.INFRASTRUCTURE.value),
    latitude: float = Form(..., ge=-90, le=90),
    longitude: float = Form(..., ge=-180, le=180),
    image: Optional[UploadFile] = File(None),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Submit a new report. The photo is optional; when given it is uploaded
    to object storage and its public URL stored on the report.
    """
    upload = None
    if image is not None and image.filename:
        content = await image.read()
        upload = ImageUpload(
            content=content,
            filename=image.filename,
            content_type=image.content_type or "application/octet-stream",
        )

    try:
        report = await ReportService(db).create(
            session, title, description, category, latitude, longitude, image=upload
        )
        return serialize_detail(db, report, session)
    except CivicPulseError as e:
        raise http_error(e, "Failed to submit report. Please try again.")


@router.get("/{report_id}", response_model=ReportDetailResponse)
def get_report(
    report_id: UUID,
    viewer: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db)
):
    """
    Report detail with status timeline, follower count and the viewer's follow state.
    """
    try:
        report = ReportService(db).get(report_id, viewer)
        return serialize_detail(db, report, viewer)
    except CivicPulseError as e:
        raise http_error(e, "Failed to get report")


@router.patch("/{report_id}/status", response_model=ReportDetailResponse)
def update_report_status(
    report_id: UUID,
    body: ReportStatusUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Change a report's status (owner or admin). Any transition is allowed.
    """
    try:
        report = ReportService(db).update_status(report_id, body.status, session)
        return serialize_detail(db, report, session)
    except CivicPulseError as e:
        raise http_error(e, "Failed to update status")


@router.patch("/{report_id}/visibility", response_model=ReportDetailResponse)
def update_report_visibility(
    report_id: UUID,
    body: ReportVisibilityUpdate,
    session: SessionContext = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Hide or unhide a report (admin only).
    """
    try:
        report = ReportService(db).set_visibility(report_id, body.hidden, session)
        return serialize_detail(db, report, session)
    except CivicPulseError as e:
        raise http_error(e, "Failed to update report")
